"""Bounded, freshness-checked cache of the latest consensus risk per pool."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

from log_utils import setup_logger
from pool_schema import RISK_LEVELS, coerce_float

logger = setup_logger(__name__)


@dataclass
class RiskCacheEntry:
    risk: str
    updated: float


class RiskCache:
    """Address-keyed risk labels with a read-side TTL and half-eviction.

    Once a write pushes the entry count above ``max_entries`` only the most
    recently updated ``max_entries // 2`` entries survive.
    """

    def __init__(
        self,
        max_entries: int = 1000,
        *,
        ttl_seconds: float = 3600.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.max_entries = max(2, int(max_entries))
        self.ttl_seconds = float(ttl_seconds)
        self._clock = clock
        self._entries: Dict[str, RiskCacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, address: object) -> bool:
        return address in self._entries

    @property
    def retained_after_eviction(self) -> int:
        return self.max_entries // 2

    def entry(self, address: str) -> Optional[RiskCacheEntry]:
        return self._entries.get(address)

    def read(self, address: str) -> Optional[str]:
        """Return the cached label when younger than the TTL, else ``None``."""

        entry = self._entries.get(address)
        if entry is None:
            return None
        if (self._clock() - entry.updated) < self.ttl_seconds:
            return entry.risk
        return None

    def write(self, address: str, risk: str) -> None:
        self._entries[address] = RiskCacheEntry(risk=risk, updated=float(self._clock()))
        self._evict()

    def _evict(self) -> None:
        if len(self._entries) <= self.max_entries:
            return
        keep = self.retained_after_eviction
        ordered = sorted(self._entries.items(), key=lambda kv: kv[1].updated, reverse=True)
        self._entries = dict(ordered[:keep])
        logger.info("Risk cache trimmed to %d most recent entries", keep)

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------
    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        return {
            address: {"risk": entry.risk, "updated": entry.updated}
            for address, entry in self._entries.items()
        }

    def load_dict(self, data: Mapping[str, Any]) -> int:
        """Replace cached entries with ``data``, skipping unknown labels."""

        self._entries.clear()
        if not isinstance(data, Mapping):
            logger.warning("Ignoring risk cache payload of type %s", type(data).__name__)
            return 0
        for address, raw in data.items():
            if not isinstance(raw, Mapping):
                continue
            risk = str(raw.get("risk") or "").strip().lower()
            if risk not in RISK_LEVELS:
                continue
            self._entries[str(address)] = RiskCacheEntry(risk=risk, updated=coerce_float(raw.get("updated")))
        self._evict()
        return len(self._entries)


__all__ = ["RiskCache", "RiskCacheEntry"]
