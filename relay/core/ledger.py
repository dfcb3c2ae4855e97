"""Per-IP traffic accounting."""

import logging
import threading
from datetime import datetime, timezone
from typing import Dict

from shared.models import Direction, IPTraffic, TrafficSnapshot

logger = logging.getLogger(__name__)


class TrafficCounter:
    """Cumulative byte counts keyed by source IP, guarded by its own lock.

    Counts only ever grow; entries appear on first traffic and are never removed.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._counters: Dict[str, int] = {}

    def add(self, ip: str, byte_count: int):
        if byte_count <= 0:
            return
        with self._lock:
            self._counters[ip] = self._counters.get(ip, 0) + byte_count

    def get(self, ip: str) -> int:
        with self._lock:
            return self._counters.get(ip, 0)

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._counters)

    def __len__(self) -> int:
        with self._lock:
            return len(self._counters)


class TrafficLedger:
    """Inbound and outbound counters.

    The two directions are separate counters so the two copy tasks of a
    session never contend for the same lock.
    """

    def __init__(self):
        self.inbound = TrafficCounter()
        self.outbound = TrafficCounter()

    def counter(self, direction: Direction) -> TrafficCounter:
        if direction == Direction.INBOUND:
            return self.inbound
        return self.outbound

    def add(self, direction: Direction, ip: str, byte_count: int):
        """Credit byte_count bytes to ip in the given direction."""
        self.counter(direction).add(ip, byte_count)

    def get(self, ip: str) -> IPTraffic:
        return IPTraffic(
            ip=ip,
            inbound=self.inbound.get(ip),
            outbound=self.outbound.get(ip)
        )

    def snapshot(self) -> TrafficSnapshot:
        # Each direction is copied under its own lock; the pair is not atomic.
        return TrafficSnapshot(
            inbound=self.inbound.snapshot(),
            outbound=self.outbound.snapshot(),
            timestamp=datetime.now(timezone.utc)
        )
