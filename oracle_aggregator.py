"""Consult several scoring oracles concurrently and reconcile their opinions.

Each configured oracle receives the full feature list for the cycle.  Calls
run concurrently and are isolated: a timeout, transport error or unusable
payload from one oracle becomes an empty :class:`OracleOutcome` and never
affects the others.  Surviving records are merged per address into a
:class:`ConsensusRecord` and the consensus risk label is written back into
the :class:`RiskCache`, where the *next* cycle's feature build picks it up.
"""

from __future__ import annotations

import asyncio
import json
import time
from collections import Counter
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

import aiohttp

from config import OracleConfig
from json_utils import iter_llm_json
from log_utils import setup_logger
from observability import log_event, record_metric
from oracle_client import OracleError, request_completion
from pool_schema import (
    DEFAULT_PREDICTION,
    DEFAULT_RISK,
    PREDICTIONS,
    RISK_LEVELS,
    ConsensusRecord,
    FeatureVector,
    OracleOutcome,
    OracleScoreRecord,
    coerce_float,
)
from risk_cache import RiskCache

logger = setup_logger(__name__)

Requester = Callable[..., Awaitable[str]]

REASON_SEPARATOR = " | "
_RISK_ALIASES = {"medium": "med", "moderate": "med", "mid": "med"}
_PREDICTION_ALIASES = {"bull": "bullish", "up": "bullish", "bear": "bearish", "down": "bearish", "neutral": "sideways"}


# ---------------------------------------------------------------------------
# Prompt construction
# ---------------------------------------------------------------------------


def scoring_system_prompt(chain: str) -> str:
    return (
        f"You are a precise on-chain analyst for {chain} pools. Output strict JSON with "
        "score (momentum + safety), risk, tags, reason, prediction. Favor undervalued gems with buy pressure."
    )


def scoring_user_prompt(chain: str, items: Sequence[Mapping[str, Any]]) -> str:
    return (
        f"As an expert DeFi analyst for {chain}, analyze these liquidity pools. Return ONLY valid JSON "
        'object mapping each pool address to: {"score":0-100 (higher for momentum/risk-adjusted potential), '
        '"risk":"low|med|high" (consider liquidity, volatility, buy pressure), '
        '"tags":["up to 5 keywords like \'gem\', \'pump\', \'dip\'"], "reason":"insight <20 words on why", '
        '"prediction":"bullish|bearish|sideways" (24h outlook)}. Incorporate on-chain metrics like vol spike, '
        f"buyer ratio, FDV. Pools: {json.dumps(list(items), ensure_ascii=False)}"
    )


def summary_system_prompt(chain: str) -> str:
    return f"You are a sharp crypto market summarizer for {chain}. Keep it brief, actionable, with sentiment."


def summary_user_prompt(chain: str, items: Sequence[Mapping[str, Any]]) -> str:
    return (
        f"Provide a concise 1-2 sentence summary of the {chain} market based on these top pools, "
        f"including overall sentiment and key trend: {json.dumps(list(items), ensure_ascii=False)}"
    )


# ---------------------------------------------------------------------------
# Payload validation
# ---------------------------------------------------------------------------


def _normalise_label(value: Any, allowed: Iterable[str], aliases: Mapping[str, str]) -> Optional[str]:
    if not isinstance(value, str):
        return None
    label = value.strip().lower()
    label = aliases.get(label, label)
    return label if label in allowed else None


def _normalise_score(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    number = coerce_float(value, default=float("nan"))
    if number != number:
        return None
    return number


def _normalise_tags(value: Any, limit: int) -> tuple[str, ...]:
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, (list, tuple)):
        return ()
    tags: List[str] = []
    for raw in value:
        if not isinstance(raw, (str, int, float)) or isinstance(raw, bool):
            continue
        tag = str(raw).strip()
        if tag and tag not in tags:
            tags.append(tag)
        if len(tags) >= limit:
            break
    return tuple(tags)


def validate_record(raw: Any, *, max_tags: int = 5) -> Optional[OracleScoreRecord]:
    """Return a validated record, or ``None`` when ``raw`` is not a mapping."""

    if not isinstance(raw, Mapping):
        return None
    reason = raw.get("reason")
    return OracleScoreRecord(
        score=_normalise_score(raw.get("score")),
        risk=_normalise_label(raw.get("risk"), RISK_LEVELS, _RISK_ALIASES),
        tags=_normalise_tags(raw.get("tags"), max_tags),
        reason=reason.strip() if isinstance(reason, str) else "",
        prediction=_normalise_label(raw.get("prediction"), PREDICTIONS, _PREDICTION_ALIASES),
    )


def _records_from(data: Any, max_tags: int) -> Dict[str, OracleScoreRecord]:
    items: List[tuple[str, Any]] = []
    if isinstance(data, Mapping):
        items = [(str(key), value) for key, value in data.items()]
    elif isinstance(data, list):
        for entry in data:
            if isinstance(entry, Mapping) and entry.get("address"):
                items.append((str(entry["address"]), entry))

    records: Dict[str, OracleScoreRecord] = {}
    for address, raw in items:
        record = validate_record(raw, max_tags=max_tags)
        if record is not None and address.strip():
            records[address.strip()] = record
    return records


def parse_score_payload(raw_text: Any, *, max_tags: int = 5) -> Dict[str, OracleScoreRecord]:
    """Parse an oracle response into ``address -> record``; empty on any failure.

    Accepts an object keyed by address, or an array of objects carrying an
    ``address`` field.  Candidates are tried in order of appearance and the
    first one holding at least one record wins, so stray brackets in the
    surrounding prose are skipped.
    """

    for data in iter_llm_json(raw_text, logger=logger):
        records = _records_from(data, max_tags)
        if records:
            return records
    return {}


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------


def majority_vote(labels: Sequence[Optional[str]], default: str) -> str:
    """Most frequent label; ties go to the label seen first."""

    present = [label for label in labels if label]
    if not present:
        return default
    counts = Counter(present)
    best = max(counts.values())
    return next(label for label in present if counts[label] == best)


def reconcile(
    outcomes: Sequence[OracleOutcome],
    addresses: Iterable[str],
    *,
    disagreement_threshold: float = 20.0,
    reason_max_chars: int = 50,
    max_tags: int = 5,
) -> Dict[str, ConsensusRecord]:
    """Merge per-oracle records into one consensus record per scored address."""

    merged: Dict[str, ConsensusRecord] = {}
    for address in addresses:
        if address in merged:
            continue
        records = [outcome.records[address] for outcome in outcomes if address in outcome.records]
        scores = [record.score for record in records if record.score is not None]
        if not scores:
            continue

        spread = max(scores) - min(scores)
        mean = sum(scores) / len(scores)

        tags: List[str] = []
        for record in records:
            for tag in record.tags:
                if tag not in tags:
                    tags.append(tag)

        reasons = [record.reason for record in records if record.reason]

        merged[address] = ConsensusRecord(
            score=min(100.0, max(0.0, mean)),
            risk=majority_vote([record.risk for record in records], DEFAULT_RISK),
            tags=tuple(tags[:max_tags]),
            reason=REASON_SEPARATOR.join(reasons)[:reason_max_chars],
            prediction=majority_vote([record.prediction for record in records], DEFAULT_PREDICTION),
            disagreement=spread > disagreement_threshold,
            confidence=100.0 - spread,
            contributors=len(scores),
        )
    return merged


# ---------------------------------------------------------------------------
# Aggregator
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _client_session(session: Optional[aiohttp.ClientSession]):
    own_session = session is None
    if own_session:
        session = aiohttp.ClientSession()
    assert session is not None
    try:
        yield session
    finally:
        if own_session:
            await session.close()


class ScoreAggregator:
    """Fan a cycle's features out to every oracle and merge the answers."""

    def __init__(
        self,
        oracles: Sequence[OracleConfig],
        risk_cache: RiskCache,
        *,
        disagreement_threshold: float = 20.0,
        reason_max_chars: int = 50,
        max_tags: int = 5,
        summary_order: Sequence[str] = ("claude", "openai"),
        chain: str = "BESC HyperChain",
        requester: Requester = request_completion,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.oracles = list(oracles)
        self.risk_cache = risk_cache
        self.disagreement_threshold = float(disagreement_threshold)
        self.reason_max_chars = int(reason_max_chars)
        self.max_tags = int(max_tags)
        self.summary_order = [name.lower() for name in summary_order]
        self.chain = chain
        self._requester = requester
        self._session = session

    async def _consult(
        self, session: aiohttp.ClientSession, oracle: OracleConfig, system: str, prompt: str
    ) -> OracleOutcome:
        start = time.perf_counter()
        try:
            raw = await self._requester(session, oracle, system=system, prompt=prompt, summary=False)
        except (OracleError, aiohttp.ClientError, asyncio.TimeoutError) as exc:
            latency = time.perf_counter() - start
            logger.warning("[oracle/%s] fail after %.2fs: %s", oracle.name, latency, exc)
            return OracleOutcome(oracle=oracle.name, ok=False, error=str(exc), latency=latency)
        except Exception as exc:
            latency = time.perf_counter() - start
            logger.error("[oracle/%s] unexpected failure: %s", oracle.name, exc, exc_info=True)
            return OracleOutcome(oracle=oracle.name, ok=False, error=f"{type(exc).__name__}: {exc}", latency=latency)

        latency = time.perf_counter() - start
        record_metric("oracle_latency_seconds", latency, labels={"oracle": oracle.name})
        records = parse_score_payload(raw, max_tags=self.max_tags)
        if not records:
            logger.warning("[oracle/%s] payload held no usable records", oracle.name)
            return OracleOutcome(oracle=oracle.name, ok=False, error="malformed payload", latency=latency)
        return OracleOutcome(oracle=oracle.name, ok=True, records=records, latency=latency)

    async def gather_outcomes(self, features: Sequence[FeatureVector]) -> List[OracleOutcome]:
        """Query every oracle concurrently; the result keeps oracle order."""

        if not self.oracles or not features:
            return []
        items = [feature.to_prompt_dict() for feature in features]
        system = scoring_system_prompt(self.chain)
        prompt = scoring_user_prompt(self.chain, items)
        async with _client_session(self._session) as session:
            return list(
                await asyncio.gather(*(self._consult(session, oracle, system, prompt) for oracle in self.oracles))
            )

    async def score(self, features: Sequence[FeatureVector]) -> Dict[str, ConsensusRecord]:
        """Return consensus records for scored addresses and refresh the risk cache."""

        outcomes = await self.gather_outcomes(features)
        consensus = reconcile(
            outcomes,
            [feature.address for feature in features],
            disagreement_threshold=self.disagreement_threshold,
            reason_max_chars=self.reason_max_chars,
            max_tags=self.max_tags,
        )
        for address, record in consensus.items():
            self.risk_cache.write(address, record.risk)

        if outcomes:
            log_event(
                logger,
                "oracle_consensus",
                oracles={outcome.oracle: outcome.ok for outcome in outcomes},
                requested=len(features),
                scored=len(consensus),
                disagreements=sum(1 for record in consensus.values() if record.disagreement),
            )
        return consensus

    async def summarize(self, features: Sequence[FeatureVector]) -> str:
        """Return a short free-text market summary, or ``""`` when unavailable."""

        by_name = {oracle.name.lower(): oracle for oracle in self.oracles}
        candidates = [by_name[name] for name in self.summary_order if name in by_name]
        if not candidates or not features:
            return ""

        items = [feature.to_prompt_dict() for feature in features]
        system = summary_system_prompt(self.chain)
        prompt = summary_user_prompt(self.chain, items)
        async with _client_session(self._session) as session:
            for oracle in candidates:
                try:
                    raw = await self._requester(session, oracle, system=system, prompt=prompt, summary=True)
                except (OracleError, aiohttp.ClientError, asyncio.TimeoutError) as exc:
                    logger.warning("[oracle/%s] summary failed: %s", oracle.name, exc)
                    continue
                except Exception as exc:
                    logger.error("[oracle/%s] unexpected summary failure: %s", oracle.name, exc, exc_info=True)
                    continue
                text = str(raw or "").strip()
                if text:
                    return text
        return ""


__all__ = [
    "REASON_SEPARATOR",
    "ScoreAggregator",
    "majority_vote",
    "parse_score_payload",
    "reconcile",
    "scoring_system_prompt",
    "scoring_user_prompt",
    "summary_system_prompt",
    "summary_user_prompt",
    "validate_record",
]
