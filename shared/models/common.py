from enum import Enum


class Direction(str, Enum):
    INBOUND = "inbound"    # backend -> client
    OUTBOUND = "outbound"  # client -> backend


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
