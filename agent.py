"""
Main loop for the pool radar.

Loads configuration and persisted state, then runs one ranking/alerting
cycle every ``POLL_INTERVAL_MINUTES``.  Cycle results are handed to a result
sink; the default sink only logs them, delivery to chat transports lives
outside this process.  On SIGINT/SIGTERM the loop stops after the current
cycle and the history and risk cache are flushed to disk.
"""

from __future__ import annotations

import argparse
import asyncio
import signal
from typing import List, Optional, Sequence

import config
from log_utils import setup_logger
from pool_engine import PoolEngine
from pool_schema import CycleResult
from state_store import EngineStateStore

logger = setup_logger(__name__)


def log_cycle_result(result: CycleResult) -> None:
    """Default sink: one log line per ranked pool and per alert."""

    for position, entry in enumerate(result.ranked, start=1):
        consensus = result.consensus.get(entry.feature.address)
        logger.info(
            "#%d %s final=%.1f base=%.1f ai=%s risk=%s%s",
            position,
            entry.snapshot.name or entry.feature.address,
            entry.final_score,
            entry.base_hotness,
            f"{consensus.score:.1f}" if consensus else "n/a",
            entry.feature.risk_level,
            " burst" if entry.burst else "",
        )
    for snapshot in result.alerts:
        logger.info("New pool: %s (%s)", snapshot.name or snapshot.address, snapshot.address)
    if result.summary:
        logger.info("Market insight: %s", result.summary)


def build_engine(settings: config.EngineSettings) -> PoolEngine:
    oracles = config.load_oracle_configs()
    logger.info("Oracles configured: %s", ", ".join(o.name for o in oracles) or "none")
    store = EngineStateStore(
        settings.history_file,
        settings.risk_file,
        retries=settings.state_flush_retries,
    )
    engine = PoolEngine(settings, oracles=oracles, state_store=store, sink=log_cycle_result)
    engine.load_state()
    return engine


async def run_loop(engine: PoolEngine, interval_seconds: float, *, once: bool = False) -> None:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            pass

    try:
        while not stop_event.is_set():
            await engine.run_once()
            if once:
                break
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
            except asyncio.TimeoutError:
                continue
    finally:
        logger.info("Shutting down gracefully...")
        await engine.flush_state_async()


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Rank liquidity pools and flag new launches.")
    parser.add_argument("--once", action="store_true", help="run a single cycle and exit")
    parser.add_argument(
        "--interval-minutes",
        type=float,
        default=None,
        help="override POLL_INTERVAL_MINUTES",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    settings = config.load_engine_settings()
    interval_minutes = args.interval_minutes or settings.poll_interval_minutes
    logger.info("Pool radar starting: %s", config.snapshot_settings(settings))
    engine = build_engine(settings)
    asyncio.run(run_loop(engine, interval_minutes * 60.0, once=args.once))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
