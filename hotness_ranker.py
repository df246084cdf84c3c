"""Composite hotness ranking: heuristic signal plus weighted AI consensus."""

from __future__ import annotations

from typing import Dict, List, Mapping, Optional, Sequence

from config import HotnessSettings
from pool_schema import ConsensusRecord, FeatureVector, PoolSnapshot, RankedEntry


def base_hotness(feature: FeatureVector, params: HotnessSettings) -> float:
    """Volume plus additive boosts, minus penalties, scaled by risk."""

    volume = feature.volume_now
    burst_boost = max(0.0, feature.volume_delta) * params.burst_factor
    buyer_boost = (feature.buyers24 or 0.0) * params.buyer_factor

    if feature.age_minutes < params.recency_t1_minutes:
        recency_bonus = params.recency_r1
    elif feature.age_minutes < params.recency_t2_minutes:
        recency_bonus = params.recency_r2
    else:
        recency_bonus = 0.0

    trend_boost = volume * params.trend_factor if feature.hist_trend > params.trend_threshold else 0.0
    vola_penalty = volume * params.vola_factor if feature.hist_vola > params.vola_threshold else 0.0
    sell_penalty = volume * params.sell_factor if feature.buy_sell_ratio < params.sell_ratio_threshold else 0.0

    if feature.risk_level == "low":
        risk_adjust = params.risk_low_amplify
    elif feature.risk_level == "high":
        risk_adjust = params.risk_high_dampen
    else:
        risk_adjust = 1.0

    total = volume + burst_boost + buyer_boost + recency_bonus + trend_boost - vola_penalty - sell_penalty
    return total * risk_adjust


def consensus_score(consensus: Mapping[str, ConsensusRecord], address: str) -> float:
    record = consensus.get(address)
    return record.score if record is not None else 0.0


def final_score(feature: FeatureVector, consensus: Mapping[str, ConsensusRecord], params: HotnessSettings) -> float:
    return base_hotness(feature, params) + consensus_score(consensus, feature.address) * params.ai_weight


def is_burst(feature: FeatureVector, params: HotnessSettings) -> bool:
    """Informational burst label; plays no part in ordering."""

    return (
        feature.volume_delta >= params.burst_min_abs
        and feature.volume_rate * 100.0 >= params.burst_min_pct
    )


def rank_pools(
    features: Sequence[FeatureVector],
    snapshots: Mapping[str, PoolSnapshot],
    consensus: Mapping[str, ConsensusRecord],
    params: HotnessSettings,
    *,
    top_k: Optional[int] = None,
) -> List[RankedEntry]:
    """Score every feature and return the ``top_k`` best, highest first.

    Equal final scores are ordered by address so output is reproducible.
    """

    entries: List[RankedEntry] = []
    for feature in features:
        snapshot = snapshots.get(feature.address) or PoolSnapshot(address=feature.address, name=feature.name)
        base = base_hotness(feature, params)
        entries.append(
            RankedEntry(
                feature=feature,
                snapshot=snapshot,
                final_score=base + consensus_score(consensus, feature.address) * params.ai_weight,
                base_hotness=base,
                burst=is_burst(feature, params),
            )
        )
    entries.sort(key=lambda entry: (-entry.final_score, entry.feature.address))
    limit = params.top_k if top_k is None else top_k
    return entries[: max(0, int(limit))]


def index_snapshots(snapshots: Sequence[PoolSnapshot]) -> Dict[str, PoolSnapshot]:
    return {snapshot.address: snapshot for snapshot in snapshots}


__all__ = [
    "base_hotness",
    "consensus_score",
    "final_score",
    "index_snapshots",
    "is_burst",
    "rank_pools",
]
