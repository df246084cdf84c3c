from alert_dedup import NewPoolAlertDeduplicator, is_new_pool_candidate
from config import NewPoolSettings
from pool_schema import PoolSnapshot

T0 = 1_700_000_000.0


def _snapshot(address="0xnew", **overrides):
    data = dict(
        address=address,
        name="NEW / WBESC",
        liquidity_usd=6_000.0,
        volume24_usd=1_000.0,
        buyers24=4.0,
        created_at=T0 - 5 * 60,
    )
    data.update(overrides)
    return PoolSnapshot(**data)


def test_candidate_predicate():
    params = NewPoolSettings(max_age_minutes=10, min_liquidity_usd=5_000, min_volume24_usd=500, min_buyers24=3)

    assert is_new_pool_candidate(_snapshot(), params, now=T0)
    assert not is_new_pool_candidate(_snapshot(created_at=T0 - 11 * 60), params, now=T0)
    assert not is_new_pool_candidate(_snapshot(volume24_usd=499), params, now=T0)
    assert not is_new_pool_candidate(_snapshot(buyers24=2), params, now=T0)


def test_liquidity_below_threshold_is_excluded_even_if_fresh():
    params = NewPoolSettings(max_age_minutes=10, min_liquidity_usd=5_000, min_volume24_usd=500, min_buyers24=3)
    dedup = NewPoolAlertDeduplicator(params)

    assert dedup.check([_snapshot(liquidity_usd=4_000.0)], now=T0) == []


def _long_lived_params():
    return NewPoolSettings(max_age_minutes=600, min_liquidity_usd=0, min_volume24_usd=0, min_buyers24=0, cooldown_minutes=30)


def test_second_event_within_cooldown_is_suppressed():
    dedup = NewPoolAlertDeduplicator(_long_lived_params())
    window = dedup.params.cooldown_seconds

    first = dedup.check([_snapshot()], now=T0)
    second = dedup.check([_snapshot()], now=T0 + window - 1)

    assert len(first) == 1
    assert second == []
    assert dedup.last_alert("0xnew") == T0


def test_event_after_full_window_alerts_again():
    dedup = NewPoolAlertDeduplicator(_long_lived_params())
    window = dedup.params.cooldown_seconds

    first = dedup.check([_snapshot()], now=T0)
    second = dedup.check([_snapshot()], now=T0 + window)

    assert len(first) == 1
    assert len(second) == 1
    assert dedup.last_alert("0xnew") == T0 + window


def test_suppressed_event_does_not_reset_cooldown():
    dedup = NewPoolAlertDeduplicator(_long_lived_params())
    window = dedup.params.cooldown_seconds

    dedup.check([_snapshot()], now=T0)
    dedup.check([_snapshot()], now=T0 + window / 2)
    later = dedup.check([_snapshot()], now=T0 + window)

    assert len(later) == 1


def test_never_alerted_address_is_uncooled_with_small_clock():
    dedup = NewPoolAlertDeduplicator(_long_lived_params(), clock=lambda: 10.0)

    assert not dedup.is_cooling_down("0xnew")
    assert len(dedup.check([_snapshot(created_at=0.0)])) == 1
    assert dedup.is_cooling_down("0xnew")


def test_addresses_cool_down_independently():
    dedup = NewPoolAlertDeduplicator(_long_lived_params())

    dedup.check([_snapshot("0xa")], now=T0)
    alerts = dedup.check([_snapshot("0xa"), _snapshot("0xb")], now=T0 + 60)

    assert [snapshot.address for snapshot in alerts] == ["0xb"]
    assert len(dedup) == 2


def test_select_does_not_start_cooldown_until_commit():
    dedup = NewPoolAlertDeduplicator(_long_lived_params())

    first = dedup.select([_snapshot(), _snapshot()], now=T0)
    again = dedup.select([_snapshot()], now=T0 + 60)

    assert [snapshot.address for snapshot in first] == ["0xnew"]
    assert len(again) == 1
    assert not dedup.is_cooling_down("0xnew", now=T0 + 60)

    dedup.commit(again, now=T0 + 60)

    assert dedup.last_alert("0xnew") == T0 + 60
    assert dedup.select([_snapshot()], now=T0 + 120) == []
