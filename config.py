"""Central configuration loader for environment variables."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from dotenv import load_dotenv

# Load environment variables once when this module is imported.
load_dotenv()

import os


def _clean_path(value: str | None) -> str:
    """Return ``value`` without inline comments or surrounding whitespace."""

    if not value:
        return ""
    return value.split("#", 1)[0].strip()


# ---------------------------------------------------------------------------
# Environment helpers
# ---------------------------------------------------------------------------
def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    normalized = raw.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return float(default)
    try:
        return float(raw)
    except (TypeError, ValueError):
        return float(default)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return int(default)
    try:
        return int(float(raw))
    except (TypeError, ValueError):
        return int(default)


def _env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


# ---------------------------------------------------------------------------
# Engine thresholds
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FilterSettings:
    """Quality gate applied to every snapshot before ranking or alerting."""

    min_liquidity_usd: float = 3000.0
    min_volume24_usd: float = 500.0
    min_buys24: int = 2
    min_age_minutes: float = 1.0


@dataclass(frozen=True)
class HotnessSettings:
    """Constants feeding :func:`hotness_ranker.base_hotness`."""

    burst_factor: float = 3.0
    buyer_factor: float = 100.0
    recency_t1_minutes: float = 60.0
    recency_r1: float = 1000.0
    recency_t2_minutes: float = 360.0
    recency_r2: float = 500.0
    trend_threshold: float = 0.1
    trend_factor: float = 0.2
    vola_threshold: float = 50.0
    vola_factor: float = 0.15
    sell_ratio_threshold: float = 0.3
    sell_factor: float = 0.3
    risk_low_amplify: float = 1.2
    risk_high_dampen: float = 0.7
    ai_weight: float = 2000.0
    top_k: int = 8
    burst_min_abs: float = 500.0
    burst_min_pct: float = 0.5


@dataclass(frozen=True)
class NewPoolSettings:
    """Qualification thresholds and cooldown for new-pool alerts."""

    max_age_minutes: float = 10.0
    min_liquidity_usd: float = 3000.0
    min_volume24_usd: float = 500.0
    min_buyers24: int = 3
    cooldown_minutes: float = 30.0

    @property
    def cooldown_seconds(self) -> float:
        return self.cooldown_minutes * 60.0


@dataclass(frozen=True)
class EngineSettings:
    """Runtime configuration knobs for the pool ranking engine."""

    filters: FilterSettings = field(default_factory=FilterSettings)
    hotness: HotnessSettings = field(default_factory=HotnessSettings)
    new_pools: NewPoolSettings = field(default_factory=NewPoolSettings)
    history_max_points: int = 4032
    history_trend_window: int = 12
    risk_cache_max_entries: int = 1000
    risk_cache_ttl_seconds: float = 3600.0
    disagreement_threshold: float = 20.0
    reason_max_chars: int = 50
    max_tags: int = 5
    poll_interval_minutes: float = 3.0
    fetch_retries: int = 4
    fetch_backoff_seconds: float = 3.0
    fetch_pages: int = 3
    network: str = "besc-hyperchain"
    chain_label: str = "BESC HyperChain"
    critical_failure_threshold: int = 3
    history_file: str = "./history.json"
    risk_file: str = "./risk_cache.json"
    state_flush_retries: int = 3
    summary_enabled: bool = True


def load_filter_settings() -> FilterSettings:
    return FilterSettings(
        min_liquidity_usd=_env_float("MIN_LIQ_USD", 3000),
        min_volume24_usd=_env_float("MIN_VOL24_USD", 500),
        min_buys24=_env_int("MIN_BUYS_24H", 2),
        min_age_minutes=_env_float("MIN_AGE_MINUTES", 1),
    )


def load_hotness_settings() -> HotnessSettings:
    return HotnessSettings(
        burst_factor=_env_float("BURST_FACTOR", 3),
        buyer_factor=_env_float("BUYER_FACTOR", 100),
        recency_t1_minutes=_env_float("RECENCY_T1_MIN", 60),
        recency_r1=_env_float("RECENCY_R1", 1000),
        recency_t2_minutes=_env_float("RECENCY_T2_MIN", 360),
        recency_r2=_env_float("RECENCY_R2", 500),
        trend_threshold=_env_float("TREND_THRESHOLD", 0.1),
        trend_factor=_env_float("TREND_FACTOR", 0.2),
        vola_threshold=_env_float("VOLA_THRESHOLD", 50),
        vola_factor=_env_float("VOLA_FACTOR", 0.15),
        sell_ratio_threshold=_env_float("SELL_RATIO_THRESHOLD", 0.3),
        sell_factor=_env_float("SELL_FACTOR", 0.3),
        risk_low_amplify=_env_float("RISK_LOW_AMPLIFY", 1.2),
        risk_high_dampen=_env_float("RISK_HIGH_DAMPEN", 0.7),
        ai_weight=_env_float("AI_WEIGHT", 2000),
        top_k=max(1, _env_int("TRENDING_SIZE", 8)),
        burst_min_abs=_env_float("BURST_MIN_ABS_USD", 500),
        burst_min_pct=_env_float("BURST_MIN_PCT", 0.5),
    )


def load_new_pool_settings() -> NewPoolSettings:
    return NewPoolSettings(
        max_age_minutes=_env_float("NEW_POOL_MAX_MIN", 10),
        min_liquidity_usd=_env_float("NEW_POOL_MIN_LIQ_USD", 3000),
        min_volume24_usd=_env_float("NEW_POOL_MIN_VOL24_USD", 500),
        min_buyers24=_env_int("NEW_POOL_MIN_BUYERS", 3),
        cooldown_minutes=_env_float("NEW_ALERT_COOLDOWN_MIN", 30),
    )


def load_engine_settings() -> EngineSettings:
    """Load engine settings from environment variables."""

    return EngineSettings(
        filters=load_filter_settings(),
        hotness=load_hotness_settings(),
        new_pools=load_new_pool_settings(),
        history_max_points=max(1, _env_int("HISTORY_MAX_POINTS", 4032)),
        history_trend_window=max(2, _env_int("HISTORY_TREND_WINDOW", 12)),
        risk_cache_max_entries=max(2, _env_int("RISK_CACHE_MAX_ENTRIES", 1000)),
        risk_cache_ttl_seconds=max(1.0, _env_float("RISK_CACHE_TTL_SECONDS", 3600)),
        disagreement_threshold=_env_float("AI_DISAGREE_THRESHOLD", 20),
        reason_max_chars=max(0, _env_int("AI_REASON_MAX_CHARS", 50)),
        max_tags=max(0, _env_int("AI_MAX_TAGS", 5)),
        poll_interval_minutes=max(0.1, _env_float("POLL_INTERVAL_MINUTES", 3)),
        fetch_retries=max(1, _env_int("FETCH_RETRIES", 4)),
        fetch_backoff_seconds=max(0.0, _env_float("FETCH_BACKOFF_SECONDS", 3)),
        fetch_pages=max(1, _env_int("FETCH_PAGES", 3)),
        network=_env_str("GT_NETWORK", "besc-hyperchain"),
        chain_label=_env_str("CHAIN_LABEL", "BESC HyperChain"),
        critical_failure_threshold=max(1, _env_int("CRITICAL_FAILURE_THRESHOLD", 3)),
        history_file=_clean_path(os.getenv("HISTORY_FILE")) or "./history.json",
        risk_file=_clean_path(os.getenv("RISK_FILE")) or "./risk_cache.json",
        state_flush_retries=max(1, _env_int("STATE_FLUSH_RETRIES", 3)),
        summary_enabled=_env_bool("AI_SUMMARY_ENABLED", True),
    )


# ---------------------------------------------------------------------------
# Oracle providers
# ---------------------------------------------------------------------------
#
# Up to three independent scoring oracles are consulted each cycle.  A
# provider is only enabled when its API key is present.  ``provider`` selects
# the request/response shape: ``openai`` covers every OpenAI-compatible chat
# completion endpoint (OpenAI itself and Groq), ``anthropic`` the Messages API.

_DEFAULT_OPENAI_URL = "https://api.openai.com/v1/chat/completions"
_DEFAULT_CLAUDE_URL = "https://api.anthropic.com/v1/messages"
_DEFAULT_GROQ_URL = "https://api.groq.com/openai/v1/chat/completions"


@dataclass(frozen=True)
class OracleConfig:
    """Connection details for one scoring oracle."""

    name: str
    provider: str
    endpoint: str
    api_key: str
    model: str
    timeout: float = 20.0


_ORACLE_SOURCES: Tuple[Tuple[str, str, str, str, str, str, str], ...] = (
    # name, provider, key var, model var, default model, url var, default url
    ("openai", "openai", "OPENAI_API_KEY", "AI_MODEL", "gpt-4o-mini", "OPENAI_API_URL", _DEFAULT_OPENAI_URL),
    (
        "claude",
        "anthropic",
        "CLAUDE_API_KEY",
        "CLAUDE_MODEL",
        "claude-3-5-sonnet-20240620",
        "CLAUDE_API_URL",
        _DEFAULT_CLAUDE_URL,
    ),
    ("groq", "openai", "GROQ_API_KEY", "GROQ_MODEL", "llama-3.1-405b-reasoning", "GROQ_API_URL", _DEFAULT_GROQ_URL),
)


def load_oracle_configs() -> List[OracleConfig]:
    """Return the configured oracles in their fixed consultation order."""

    default_timeout_ms = max(1.0, _env_float("AI_TIMEOUT_MS", 20000))
    oracles: List[OracleConfig] = []
    for name, provider, key_var, model_var, default_model, url_var, default_url in _ORACLE_SOURCES:
        key = (os.getenv(key_var) or "").strip()
        if not key:
            continue
        timeout_ms = max(1.0, _env_float(f"{name.upper()}_TIMEOUT_MS", default_timeout_ms))
        oracles.append(
            OracleConfig(
                name=name,
                provider=provider,
                endpoint=_env_str(url_var, default_url),
                api_key=key,
                model=_env_str(model_var, default_model),
                timeout=timeout_ms / 1000.0,
            )
        )
    return oracles


def get_summary_oracle_order() -> List[str]:
    """Return oracle names eligible for market summaries, in preference order."""

    raw = os.getenv("SUMMARY_ORACLES", "claude,openai")
    return [part.strip().lower() for part in raw.split(",") if part.strip()]


def snapshot_settings(settings: EngineSettings) -> Dict[str, object]:
    """Return a flat, log-friendly view of the thresholds in ``settings``."""

    return {
        "top_k": settings.hotness.top_k,
        "ai_weight": settings.hotness.ai_weight,
        "disagreement_threshold": settings.disagreement_threshold,
        "new_pool_cooldown_min": settings.new_pools.cooldown_minutes,
        "history_max_points": settings.history_max_points,
        "network": settings.network,
        "poll_interval_minutes": settings.poll_interval_minutes,
    }


__all__ = [
    "EngineSettings",
    "FilterSettings",
    "HotnessSettings",
    "NewPoolSettings",
    "OracleConfig",
    "load_engine_settings",
    "load_filter_settings",
    "load_hotness_settings",
    "load_new_pool_settings",
    "load_oracle_configs",
    "get_summary_oracle_order",
    "snapshot_settings",
]
