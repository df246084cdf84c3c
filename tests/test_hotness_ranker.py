from dataclasses import replace

import pytest

from config import HotnessSettings
from hotness_ranker import base_hotness, final_score, is_burst, rank_pools
from pool_schema import ConsensusRecord, FeatureVector, PoolSnapshot

PARAMS = HotnessSettings()


def _feature(address="0xa", **overrides):
    data = dict(
        address=address,
        name=address,
        liquidity_usd=10_000.0,
        fdv_usd=0.0,
        age_minutes=1_000.0,
        volume_now=10_000.0,
        volume_delta=0.0,
        volume_rate=0.0,
        change24_abs=0.0,
        buy_sell_ratio=1.0,
        buyers24=0.0,
        buys24=0.0,
        sells24=0.0,
        hist_avg=0.0,
        hist_trend=0.0,
        hist_vola=0.0,
        vol_vs_avg_pct=0.0,
        risk_level="med",
    )
    data.update(overrides)
    return FeatureVector(**data)


def _consensus(score):
    return ConsensusRecord(
        score=score,
        risk="med",
        tags=(),
        reason="",
        prediction="sideways",
        disagreement=False,
        confidence=100.0,
    )


def test_plain_volume_is_base_hotness():
    assert base_hotness(_feature(), PARAMS) == pytest.approx(10_000.0)


def test_boosts_and_recency():
    feature = _feature(volume_delta=2_000.0, buyers24=5, age_minutes=30)

    # 10000 + 2000*3 + 5*100 + 1000
    assert base_hotness(feature, PARAMS) == pytest.approx(17_500.0)
    assert base_hotness(replace(feature, age_minutes=120), PARAMS) == pytest.approx(17_000.0)


def test_negative_delta_gives_no_burst_boost():
    assert base_hotness(_feature(volume_delta=-5_000.0), PARAMS) == pytest.approx(10_000.0)


def test_trend_boost_and_penalties():
    trending = _feature(hist_trend=0.5)
    volatile = _feature(hist_vola=80.0)
    dumping = _feature(buy_sell_ratio=0.2)

    assert base_hotness(trending, PARAMS) == pytest.approx(12_000.0)
    assert base_hotness(volatile, PARAMS) == pytest.approx(8_500.0)
    assert base_hotness(dumping, PARAMS) == pytest.approx(7_000.0)


def test_risk_adjustment_is_multiplicative():
    assert base_hotness(_feature(risk_level="low"), PARAMS) == pytest.approx(12_000.0)
    assert base_hotness(_feature(risk_level="high"), PARAMS) == pytest.approx(7_000.0)


def test_final_score_difference_is_weighted_consensus_delta():
    feature = _feature()
    high = final_score(feature, {"0xa": _consensus(80.0)}, PARAMS)
    low = final_score(feature, {"0xa": _consensus(55.0)}, PARAMS)

    assert high - low == pytest.approx(25.0 * PARAMS.ai_weight)


def test_missing_consensus_counts_as_zero():
    assert final_score(_feature(), {}, PARAMS) == pytest.approx(base_hotness(_feature(), PARAMS))


def test_rank_orders_descending_and_truncates():
    features = [_feature("0xa", volume_now=1_000.0), _feature("0xb", volume_now=5_000.0), _feature("0xc")]
    consensus = {"0xa": _consensus(10.0)}
    snapshots = {"0xb": PoolSnapshot(address="0xb", name="B")}

    ranked = rank_pools(features, snapshots, consensus, PARAMS, top_k=2)

    assert [entry.feature.address for entry in ranked] == ["0xa", "0xc"]
    assert ranked[0].final_score == pytest.approx(1_000.0 + 10.0 * PARAMS.ai_weight)
    assert ranked[0].base_hotness == pytest.approx(1_000.0)


def test_rank_ties_break_by_address():
    features = [_feature("0xc"), _feature("0xa"), _feature("0xb")]

    ranked = rank_pools(features, {}, {}, PARAMS)

    assert [entry.feature.address for entry in ranked] == ["0xa", "0xb", "0xc"]


def test_rank_uses_configured_top_k():
    params = replace(PARAMS, top_k=1)
    ranked = rank_pools([_feature("0xa"), _feature("0xb")], {}, {}, params)

    assert len(ranked) == 1


def test_burst_label_needs_absolute_and_percent():
    assert is_burst(_feature(volume_delta=600.0, volume_rate=0.06), PARAMS)
    assert not is_burst(_feature(volume_delta=400.0, volume_rate=0.5), PARAMS)
    assert not is_burst(_feature(volume_delta=600.0, volume_rate=0.001), PARAMS)
