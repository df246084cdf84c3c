"""Per-pool bounded volume history and rolling statistics."""

from __future__ import annotations

import time
from collections import deque
from typing import Any, Callable, Deque, Dict, Iterable, List, Mapping, Optional

import numpy as np

from log_utils import setup_logger
from pool_schema import HistoryPoint, HistoryStats, coerce_float

logger = setup_logger(__name__)


class HistoryTracker:
    """Keep the most recent ``max_points`` volume observations per address.

    Series are created lazily on the first ``record`` for an address and are
    never dropped; the oldest point is evicted once a series is full.
    """

    def __init__(
        self,
        max_points: int = 4032,
        *,
        trend_window: int = 12,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.max_points = max(1, int(max_points))
        self.trend_window = max(2, int(trend_window))
        self._clock = clock
        self._series: Dict[str, Deque[HistoryPoint]] = {}

    def __len__(self) -> int:
        return len(self._series)

    def __contains__(self, address: object) -> bool:
        return address in self._series

    def addresses(self) -> List[str]:
        return list(self._series)

    def _series_for(self, address: str) -> Deque[HistoryPoint]:
        series = self._series.get(address)
        if series is None:
            series = deque(maxlen=self.max_points)
            self._series[address] = series
        return series

    def record(self, address: str, value: Any, *, timestamp: Optional[float] = None) -> None:
        """Append ``value`` for ``address`` stamped with the current time."""

        ts = float(timestamp if timestamp is not None else self._clock())
        self._series_for(address).append(HistoryPoint(t=ts, v=coerce_float(value)))

    def series(self, address: str) -> List[HistoryPoint]:
        """Return a copy of the series for ``address``, oldest first."""

        return list(self._series.get(address, ()))

    def values(self, address: str) -> List[float]:
        return [point.v for point in self._series.get(address, ())]

    def stats(self, address: str) -> HistoryStats:
        """Return average, trend and volatility for ``address``.

        Trend compares the first and last of the most recent
        ``trend_window`` points; volatility is the population standard
        deviation over the average, in percent.
        """

        values = self.values(address)
        if not values:
            return HistoryStats()

        data = np.asarray(values, dtype=float)
        average = float(data.mean())

        recent = data[-self.trend_window :]
        trend = 0.0
        if recent.size > 1 and recent[0] != 0:
            trend = float((recent[-1] - recent[0]) / recent[0])

        volatility = 0.0
        if average != 0:
            volatility = float(data.std() / average * 100.0)

        return HistoryStats(average=average, trend=trend, volatility=volatility)

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------
    def to_dict(self) -> Dict[str, List[Dict[str, float]]]:
        return {
            address: [{"t": point.t, "v": point.v} for point in series]
            for address, series in self._series.items()
        }

    def load_dict(self, data: Mapping[str, Any]) -> int:
        """Replace in-memory series with ``data``; returns the loaded address count.

        Malformed points are skipped and oversize series keep their newest
        ``max_points`` entries.
        """

        self._series.clear()
        if not isinstance(data, Mapping):
            logger.warning("Ignoring history payload of type %s", type(data).__name__)
            return 0
        for address, raw_points in data.items():
            if not isinstance(raw_points, Iterable) or isinstance(raw_points, (str, bytes, Mapping)):
                continue
            series = self._series_for(str(address))
            for raw in raw_points:
                if not isinstance(raw, Mapping) or "v" not in raw:
                    continue
                series.append(HistoryPoint(t=coerce_float(raw.get("t")), v=coerce_float(raw.get("v"))))
        return len(self._series)


__all__ = ["HistoryTracker"]
