"""Data containers shared across the pool ranking engine.

Snapshots arrive from the pool source once per cycle and are immutable.
Feature vectors, oracle records and ranked entries are rebuilt every cycle;
only the history series and risk cache entries outlive a cycle (see
``history_tracker`` and ``risk_cache``).

Timestamps are UNIX epoch seconds throughout.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

RISK_LEVELS: Tuple[str, ...] = ("low", "med", "high")
PREDICTIONS: Tuple[str, ...] = ("bullish", "bearish", "sideways")
DEFAULT_RISK = "med"
DEFAULT_PREDICTION = "sideways"

GECKO_POOL_URL = "https://www.geckoterminal.com/{network}/pools/{address}"


def coerce_float(value: Any, default: float = 0.0) -> float:
    """Best-effort conversion to a finite ``float``; anything else is ``default``."""

    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.replace(",", "").strip())
        except ValueError:
            return default
    else:
        return default
    if math.isnan(number) or math.isinf(number):
        return default
    return number


def parse_timestamp(value: Any) -> Optional[float]:
    """Return epoch seconds for ISO-8601 strings or numeric epoch values.

    Values above ``1e11`` are taken to be milliseconds.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        return number / 1000.0 if number > 1e11 else number
    text = str(value).strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text).timestamp()
    except ValueError:
        number = coerce_float(text, default=math.nan)
        if math.isnan(number):
            return None
        return number / 1000.0 if number > 1e11 else number


@dataclass(frozen=True)
class PoolSnapshot:
    """External attributes for one pool at one instant."""

    address: str
    name: str = ""
    liquidity_usd: float = 0.0
    volume24_usd: float = 0.0
    buys24: float = 0.0
    sells24: float = 0.0
    buyers24: float = 0.0
    price_change24_pct: float = 0.0
    market_cap_usd: float = 0.0
    fdv_usd: float = 0.0
    created_at: Optional[float] = None


def normalise_pool(item: Mapping[str, Any]) -> Optional[PoolSnapshot]:
    """Build a :class:`PoolSnapshot` from one GeckoTerminal JSON:API pool item.

    Returns ``None`` when the item carries no address.
    """

    attrs = item.get("attributes") if isinstance(item, Mapping) else None
    if not isinstance(attrs, Mapping):
        return None
    address = str(attrs.get("address") or "").strip()
    if not address:
        return None

    volume = attrs.get("volume_usd") or {}
    txns = (attrs.get("transactions") or {}).get("h24") or {}
    price_change = attrs.get("price_change_percentage") or {}

    return PoolSnapshot(
        address=address,
        name=str(attrs.get("name") or ""),
        liquidity_usd=coerce_float(attrs.get("reserve_in_usd")),
        volume24_usd=coerce_float(volume.get("h24") if isinstance(volume, Mapping) else None),
        buys24=coerce_float(txns.get("buys") if isinstance(txns, Mapping) else None),
        sells24=coerce_float(txns.get("sells") if isinstance(txns, Mapping) else None),
        buyers24=coerce_float(txns.get("buyers") if isinstance(txns, Mapping) else None),
        price_change24_pct=coerce_float(price_change.get("h24") if isinstance(price_change, Mapping) else None),
        market_cap_usd=coerce_float(attrs.get("market_cap_usd")),
        fdv_usd=coerce_float(attrs.get("fdv_usd")),
        created_at=parse_timestamp(attrs.get("pool_created_at")),
    )


@dataclass(frozen=True)
class HistoryPoint:
    t: float
    v: float


@dataclass(frozen=True)
class HistoryStats:
    average: float = 0.0
    trend: float = 0.0
    volatility: float = 0.0


@dataclass(frozen=True)
class FeatureVector:
    """Per-pool signal features for one cycle."""

    address: str
    name: str
    liquidity_usd: float
    fdv_usd: float
    age_minutes: float
    volume_now: float
    volume_delta: float
    volume_rate: float
    change24_abs: float
    buy_sell_ratio: float
    buyers24: float
    buys24: float
    sells24: float
    hist_avg: float
    hist_trend: float
    hist_vola: float
    vol_vs_avg_pct: float
    risk_level: str
    link: str = ""

    def to_prompt_dict(self) -> Dict[str, Any]:
        """Return the compact mapping sent to scoring oracles."""

        data = asdict(self)
        data.pop("link", None)
        return {key: round(value, 4) if isinstance(value, float) else value for key, value in data.items()}


@dataclass(frozen=True)
class OracleScoreRecord:
    """One oracle's validated opinion about one pool."""

    score: Optional[float] = None
    risk: Optional[str] = None
    tags: Tuple[str, ...] = ()
    reason: str = ""
    prediction: Optional[str] = None


@dataclass(frozen=True)
class OracleOutcome:
    """Result of consulting one oracle in one cycle.

    ``ok`` is ``False`` when the call failed or the payload was unusable, in
    which case ``records`` is empty and ``error`` describes the failure.
    """

    oracle: str
    ok: bool
    records: Mapping[str, OracleScoreRecord] = field(default_factory=dict)
    error: Optional[str] = None
    latency: float = 0.0


@dataclass(frozen=True)
class ConsensusRecord:
    score: float
    risk: str
    tags: Tuple[str, ...]
    reason: str
    prediction: str
    disagreement: bool
    confidence: float
    contributors: int = 1


@dataclass(frozen=True)
class RankedEntry:
    feature: FeatureVector
    snapshot: PoolSnapshot
    final_score: float
    base_hotness: float = 0.0
    burst: bool = False


@dataclass
class CycleResult:
    """Everything one cycle hands to the delivery collaborator."""

    ranked: List[RankedEntry] = field(default_factory=list)
    alerts: List[PoolSnapshot] = field(default_factory=list)
    consensus: Dict[str, ConsensusRecord] = field(default_factory=dict)
    summary: str = ""
    candidates: int = 0
    started_at: float = 0.0
    finished_at: float = 0.0


__all__ = [
    "ConsensusRecord",
    "CycleResult",
    "DEFAULT_PREDICTION",
    "DEFAULT_RISK",
    "FeatureVector",
    "GECKO_POOL_URL",
    "HistoryPoint",
    "HistoryStats",
    "OracleOutcome",
    "OracleScoreRecord",
    "PREDICTIONS",
    "PoolSnapshot",
    "RISK_LEVELS",
    "RankedEntry",
    "coerce_float",
    "normalise_pool",
    "parse_timestamp",
]
