"""Per-cycle orchestration of the pool ranking engine.

One cycle runs strictly in this order:

1. drop snapshots failing the quality gate;
2. select new-pool alerts that are not cooling down;
3. build features, reading history stats and the *previous* cycle's cached
   risk labels;
4. consult the oracles, which writes the fresh consensus risk into the cache
   for use by the next cycle;
5. rank and summarise the top entries;
6. commit: record this cycle's volumes into history, start cooldowns for the
   selected alerts and remember volumes for the next delta.

A cycle that raises before step 6 leaves history, cooldowns and prior
volumes untouched.

The engine owns every piece of state that outlives a cycle and refuses to
start a cycle while another one is still running.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from alert_dedup import NewPoolAlertDeduplicator
from config import EngineSettings, OracleConfig, get_summary_oracle_order
from feature_builder import build_features, passes_quality_filters
from history_tracker import HistoryTracker
from hotness_ranker import index_snapshots, rank_pools
from log_utils import setup_logger
from observability import log_event, record_metric, timed
from oracle_aggregator import ScoreAggregator
from pool_fetcher import FetchError, fetch_all_pools, fetch_with_retry
from pool_schema import CycleResult, FeatureVector, PoolSnapshot, coerce_float
from risk_cache import RiskCache
from state_store import EngineStateStore

logger = setup_logger(__name__)

SnapshotSource = Callable[[], Awaitable[List[PoolSnapshot]]]
ResultSink = Callable[[CycleResult], Any]


class CycleInProgressError(RuntimeError):
    """Raised when a cycle is started before the previous one finished."""


class PoolEngine:
    """Hold cross-cycle state and run ranking/alerting cycles."""

    def __init__(
        self,
        settings: EngineSettings,
        *,
        oracles: Sequence[OracleConfig] = (),
        history: Optional[HistoryTracker] = None,
        risk_cache: Optional[RiskCache] = None,
        deduplicator: Optional[NewPoolAlertDeduplicator] = None,
        aggregator: Optional[ScoreAggregator] = None,
        state_store: Optional[EngineStateStore] = None,
        snapshot_source: Optional[SnapshotSource] = None,
        sink: Optional[ResultSink] = None,
        fetch_sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings
        self._clock = clock
        self.history = history or HistoryTracker(
            settings.history_max_points, trend_window=settings.history_trend_window, clock=clock
        )
        self.risk_cache = risk_cache or RiskCache(
            settings.risk_cache_max_entries, ttl_seconds=settings.risk_cache_ttl_seconds, clock=clock
        )
        self.deduplicator = deduplicator or NewPoolAlertDeduplicator(settings.new_pools, clock=clock)
        self.aggregator = aggregator or ScoreAggregator(
            oracles,
            self.risk_cache,
            disagreement_threshold=settings.disagreement_threshold,
            reason_max_chars=settings.reason_max_chars,
            max_tags=settings.max_tags,
            summary_order=get_summary_oracle_order(),
            chain=settings.chain_label,
        )
        self.state_store = state_store
        self._snapshot_source = snapshot_source or self._default_source
        self._sink = sink
        self._fetch_sleep = fetch_sleep

        self.prior_volumes: Dict[str, float] = {}
        self.consecutive_failures = 0
        self.last_good: Optional[CycleResult] = None
        self._cycle_in_flight = False

    @property
    def cycle_in_flight(self) -> bool:
        return self._cycle_in_flight

    async def _default_source(self) -> List[PoolSnapshot]:
        return await fetch_all_pools(self.settings.network, pages=self.settings.fetch_pages)

    # ------------------------------------------------------------------
    # State persistence
    # ------------------------------------------------------------------
    def load_state(self) -> None:
        if self.state_store is not None:
            self.state_store.load(self.history, self.risk_cache)

    def flush_state(self) -> bool:
        if self.state_store is None:
            return True
        return self.state_store.flush(self.history, self.risk_cache)

    async def flush_state_async(self) -> bool:
        """Run :meth:`flush_state` in a worker thread so retry sleeps never block the loop."""

        return await asyncio.to_thread(self.flush_state)

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------
    def build_cycle_features(self, candidates: Sequence[PoolSnapshot], *, now: float) -> List[FeatureVector]:
        return [
            build_features(
                snapshot,
                self.prior_volumes.get(snapshot.address),
                self.history.stats(snapshot.address),
                self.risk_cache.read(snapshot.address),
                now=now,
                network=self.settings.network,
            )
            for snapshot in candidates
        ]

    def _commit_cycle(
        self,
        candidates: Sequence[PoolSnapshot],
        features: Sequence[FeatureVector],
        alerts: Sequence[PoolSnapshot],
        *,
        now: float,
    ) -> None:
        # Cross-cycle state changes only once the whole cycle has completed.
        for feature in features:
            self.history.record(feature.address, feature.volume_now, timestamp=now)
        self.deduplicator.commit(alerts, now=now)
        for snapshot in candidates:
            self.prior_volumes[snapshot.address] = coerce_float(snapshot.volume24_usd)

    async def run_cycle(self, snapshots: Sequence[PoolSnapshot], *, now: Optional[float] = None) -> CycleResult:
        """Rank ``snapshots`` and collect new-pool alerts for this cycle."""

        if self._cycle_in_flight:
            raise CycleInProgressError("previous cycle still running")
        self._cycle_in_flight = True
        try:
            return await self._run_cycle(snapshots, now=now)
        finally:
            self._cycle_in_flight = False

    async def _run_cycle(self, snapshots: Sequence[PoolSnapshot], *, now: Optional[float]) -> CycleResult:
        started = time.perf_counter()
        ts = float(self._clock() if now is None else now)
        candidates = [s for s in snapshots if passes_quality_filters(s, self.settings.filters, now=ts)]

        alerts = self.deduplicator.select(candidates, now=ts)
        features = self.build_cycle_features(candidates, now=ts)

        with timed("oracle_scoring_seconds", oracles=len(self.aggregator.oracles)):
            consensus = await self.aggregator.score(features)
        ranked = rank_pools(features, index_snapshots(candidates), consensus, self.settings.hotness)

        summary = ""
        if self.settings.summary_enabled and ranked:
            summary = await self.aggregator.summarize([entry.feature for entry in ranked])

        self._commit_cycle(candidates, features, alerts, now=ts)

        elapsed = time.perf_counter() - started
        record_metric("cycle_seconds", elapsed)
        record_metric("ranked_pools", len(ranked))
        log_event(
            logger,
            "cycle_complete",
            snapshots=len(snapshots),
            candidates=len(candidates),
            ranked=len(ranked),
            alerts=len(alerts),
            scored=len(consensus),
            seconds=round(elapsed, 3),
        )
        return CycleResult(
            ranked=ranked,
            alerts=alerts,
            consensus=consensus,
            summary=summary,
            candidates=len(candidates),
            started_at=ts,
            finished_at=float(self._clock()),
        )

    async def _deliver(self, result: CycleResult) -> None:
        if self._sink is None:
            return
        try:
            outcome = self._sink(result)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as exc:
            logger.warning("Delivery failed (ignored): %s", exc)

    def _record_failure(self, exc: BaseException) -> None:
        self.consecutive_failures += 1
        threshold = self.settings.critical_failure_threshold
        if self.consecutive_failures < threshold:
            logger.warning(
                "Cycle failed, retrying next interval (%d/%d): %s",
                self.consecutive_failures,
                threshold,
                exc,
            )
        else:
            logger.error(
                "Critical: %d consecutive cycle failures; keeping last good output: %s",
                self.consecutive_failures,
                exc,
            )

    async def run_once(self) -> Optional[CycleResult]:
        """Fetch snapshots, run one cycle, deliver and persist.

        Returns ``None`` when the cycle was skipped or failed; the previous
        successful result stays available as :attr:`last_good`.
        """

        if self._cycle_in_flight:
            logger.warning("Skipping cycle: previous cycle still running")
            return None
        try:
            kwargs: Dict[str, Any] = {}
            if self._fetch_sleep is not None:
                kwargs["sleep"] = self._fetch_sleep
            snapshots = await fetch_with_retry(
                self._snapshot_source,
                retries=self.settings.fetch_retries,
                backoff_seconds=self.settings.fetch_backoff_seconds,
                **kwargs,
            )
            result = await self.run_cycle(snapshots)
        except CycleInProgressError:
            logger.warning("Skipping cycle: previous cycle still running")
            return None
        except FetchError as exc:
            self._record_failure(exc)
            return None
        except Exception as exc:
            logger.exception("Cycle aborted by unexpected error")
            self._record_failure(exc)
            return None

        self.consecutive_failures = 0
        self.last_good = result
        await self._deliver(result)
        await self.flush_state_async()
        logger.info("Ranked %d trending pools, %d new-pool alerts", len(result.ranked), len(result.alerts))
        return result


__all__ = ["CycleInProgressError", "PoolEngine", "ResultSink", "SnapshotSource"]
