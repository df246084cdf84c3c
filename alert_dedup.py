"""Cooldown gate for new-pool alerts.

An address is either *uncooled* (never alerted, or its cooldown has run out)
or *cooling down*.  A qualifying pool alerts only from the uncooled state.
Selecting alerts is side-effect free; the cooldown starts only when the
caller commits the alerts it actually emitted.
"""

from __future__ import annotations

import time
from typing import Callable, Dict, Iterable, List, Optional

from config import NewPoolSettings
from feature_builder import age_minutes
from log_utils import setup_logger
from pool_schema import PoolSnapshot, coerce_float

logger = setup_logger(__name__)


def is_new_pool_candidate(snapshot: PoolSnapshot, params: NewPoolSettings, *, now: float) -> bool:
    return (
        age_minutes(snapshot.created_at, now) <= params.max_age_minutes
        and coerce_float(snapshot.liquidity_usd) >= params.min_liquidity_usd
        and coerce_float(snapshot.volume24_usd) >= params.min_volume24_usd
        and coerce_float(snapshot.buyers24) >= params.min_buyers24
    )


class NewPoolAlertDeduplicator:
    """Emit at most one alert per address per cooldown window."""

    def __init__(self, params: NewPoolSettings, *, clock: Callable[[], float] = time.time) -> None:
        self.params = params
        self._clock = clock
        self._last_alert: Dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._last_alert)

    def last_alert(self, address: str) -> float:
        """Timestamp of the last alert for ``address`` (``0.0`` when never alerted)."""

        return self._last_alert.get(address, 0.0)

    def is_cooling_down(self, address: str, *, now: Optional[float] = None) -> bool:
        if address not in self._last_alert:
            return False
        ts = self._clock() if now is None else now
        return (ts - self._last_alert[address]) < self.params.cooldown_seconds

    def select(self, snapshots: Iterable[PoolSnapshot], *, now: Optional[float] = None) -> List[PoolSnapshot]:
        """Return the qualifying, uncooled snapshots without touching any cooldown."""

        ts = float(self._clock() if now is None else now)
        alerts: List[PoolSnapshot] = []
        seen = set()
        for snapshot in snapshots:
            if snapshot.address in seen or not is_new_pool_candidate(snapshot, self.params, now=ts):
                continue
            if self.is_cooling_down(snapshot.address, now=ts):
                logger.debug("New-pool alert for %s suppressed by cooldown", snapshot.address)
                continue
            seen.add(snapshot.address)
            alerts.append(snapshot)
        return alerts

    def commit(self, alerts: Iterable[PoolSnapshot], *, now: Optional[float] = None) -> None:
        """Start the cooldown for every alert that was actually emitted."""

        ts = float(self._clock() if now is None else now)
        names = []
        for snapshot in alerts:
            self._last_alert[snapshot.address] = ts
            names.append(snapshot.name or snapshot.address)
        if names:
            logger.info("New-pool alerts: %s", ", ".join(names))

    def check(self, snapshots: Iterable[PoolSnapshot], *, now: Optional[float] = None) -> List[PoolSnapshot]:
        """Select alerts and start their cooldowns in one step."""

        ts = float(self._clock() if now is None else now)
        alerts = self.select(snapshots, now=ts)
        self.commit(alerts, now=ts)
        return alerts


__all__ = ["NewPoolAlertDeduplicator", "is_new_pool_candidate"]
