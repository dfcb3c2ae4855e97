from .stats import TrafficSnapshot, IPTraffic, TrafficReport, HealthReport
from .common import Direction, HealthStatus

__all__ = [
    "TrafficSnapshot",
    "IPTraffic",
    "TrafficReport",
    "HealthReport",
    "Direction",
    "HealthStatus",
]
