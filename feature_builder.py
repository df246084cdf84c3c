"""Turn raw pool snapshots into per-cycle feature vectors.

``build_features`` is a pure function of its inputs: the prior-cycle volume,
history statistics and cached risk are looked up by the caller so that the
same arguments always yield the same :class:`FeatureVector`.  Missing or
non-numeric inputs are coerced to ``0`` rather than raising.
"""

from __future__ import annotations

import time
from typing import Any, Optional

from config import FilterSettings
from pool_schema import (
    DEFAULT_RISK,
    GECKO_POOL_URL,
    RISK_LEVELS,
    FeatureVector,
    HistoryStats,
    PoolSnapshot,
    coerce_float,
)


def _field(snapshot: Any, name: str) -> Any:
    if isinstance(snapshot, dict):
        return snapshot.get(name)
    return getattr(snapshot, name, None)


def age_minutes(created_at: Any, now: float) -> float:
    """Minutes elapsed since ``created_at``; a missing creation time counts as epoch 0."""

    return (coerce_float(now) - coerce_float(created_at)) / 60.0


def build_features(
    snapshot: PoolSnapshot,
    prior_volume: Optional[float],
    history_stats: Optional[HistoryStats],
    cached_risk: Optional[str],
    *,
    now: Optional[float] = None,
    network: str = "besc-hyperchain",
) -> FeatureVector:
    """Derive the :class:`FeatureVector` for ``snapshot``.

    ``prior_volume`` is the volume observed last cycle; ``None`` means the
    pool has never been seen and makes the delta zero.
    """

    ts = coerce_float(now) if now is not None else time.time()
    stats = history_stats or HistoryStats()

    address = str(_field(snapshot, "address") or "")
    volume_now = coerce_float(_field(snapshot, "volume24_usd"))
    volume_prev = volume_now if prior_volume is None else coerce_float(prior_volume)
    delta = volume_now - volume_prev
    rate = delta / volume_prev if volume_prev > 0 else 0.0

    buys = coerce_float(_field(snapshot, "buys24"))
    sells = coerce_float(_field(snapshot, "sells24"))
    buy_sell_ratio = (buys + 1.0) / (sells + 1.0) if sells > -1.0 else 0.0

    hist_avg = coerce_float(stats.average)
    vol_vs_avg_pct = (volume_now - hist_avg) / hist_avg * 100.0 if hist_avg > 0 else 0.0

    market_cap = coerce_float(_field(snapshot, "market_cap_usd"))
    fdv = market_cap or coerce_float(_field(snapshot, "fdv_usd"))

    risk = str(cached_risk).lower() if cached_risk else DEFAULT_RISK
    if risk not in RISK_LEVELS:
        risk = DEFAULT_RISK

    return FeatureVector(
        address=address,
        name=str(_field(snapshot, "name") or ""),
        liquidity_usd=coerce_float(_field(snapshot, "liquidity_usd")),
        fdv_usd=fdv,
        age_minutes=age_minutes(_field(snapshot, "created_at"), ts),
        volume_now=volume_now,
        volume_delta=delta,
        volume_rate=rate,
        change24_abs=abs(coerce_float(_field(snapshot, "price_change24_pct"))),
        buy_sell_ratio=buy_sell_ratio,
        buyers24=coerce_float(_field(snapshot, "buyers24")),
        buys24=buys,
        sells24=sells,
        hist_avg=hist_avg,
        hist_trend=coerce_float(stats.trend),
        hist_vola=coerce_float(stats.volatility),
        vol_vs_avg_pct=vol_vs_avg_pct,
        risk_level=risk,
        link=GECKO_POOL_URL.format(network=network, address=address) if address else "",
    )


def passes_quality_filters(snapshot: PoolSnapshot, filters: FilterSettings, *, now: Optional[float] = None) -> bool:
    """Return ``True`` when ``snapshot`` clears the liquidity/volume/buys/age gate."""

    ts = coerce_float(now) if now is not None else time.time()
    return (
        coerce_float(_field(snapshot, "liquidity_usd")) >= filters.min_liquidity_usd
        and coerce_float(_field(snapshot, "volume24_usd")) >= filters.min_volume24_usd
        and coerce_float(_field(snapshot, "buys24")) >= filters.min_buys24
        and age_minutes(_field(snapshot, "created_at"), ts) >= filters.min_age_minutes
    )


__all__ = ["age_minutes", "build_features", "passes_quality_filters"]
