from datetime import datetime
from typing import Dict
from pydantic import BaseModel, Field

from .common import HealthStatus


class TrafficSnapshot(BaseModel):
    """Point-in-time copy of both ledger directions."""
    inbound: Dict[str, int] = Field(default_factory=dict)   # ip -> bytes received by the client
    outbound: Dict[str, int] = Field(default_factory=dict)  # ip -> bytes sent by the client
    timestamp: datetime


class IPTraffic(BaseModel):
    """Counters for a single source IP."""
    ip: str
    inbound: int = 0
    outbound: int = 0


class TrafficReport(BaseModel):
    """Snapshot pushed to a collector."""
    hostname: str
    version: str
    traffic: TrafficSnapshot


class HealthReport(BaseModel):
    status: HealthStatus = HealthStatus.HEALTHY
    active_sessions: int = 0
    cpu_percent: float = 0.0
    memory_percent: float = 0.0
