"""Async HTTP transport for scoring oracles.

Two request shapes are supported: OpenAI-compatible chat completions (used by
OpenAI and Groq) and the Anthropic Messages API.  Every failure surfaces as
:class:`OracleError` so callers can isolate it to the oracle that produced it.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Mapping, Optional

import aiohttp

from config import OracleConfig
from log_utils import setup_logger

logger = setup_logger(__name__)

ANTHROPIC_VERSION = "2023-06-01"
_TEMPERATURE = 0.1
_SCORING_MAX_TOKENS = 1500
_SUMMARY_MAX_TOKENS = 250


class OracleError(RuntimeError):
    """Raised when an oracle call fails or returns no usable content."""


def describe_error(error: Any) -> str:
    """Return a compact description of an HTTP error payload."""

    if isinstance(error, Mapping):
        inner = error.get("error")
        if isinstance(inner, Mapping):
            message = str(inner.get("message") or "")
            code = inner.get("code") or inner.get("type")
            return f"{code}: {message}" if code and message else str(code or message)
        return str(error.get("message") or error)
    return str(error or "")[:300]


def is_auth_error(status_code: Optional[int], error_payload: Any) -> bool:
    """Return ``True`` if the response describes an authentication failure."""

    if status_code in (401, 403):
        return True
    lowered = describe_error(error_payload).lower()
    return "invalid api key" in lowered or "authentication" in lowered or "invalid x-api-key" in lowered


def extract_content(provider: str, payload: Any) -> str:
    """Return the assistant text from a provider response body."""

    if not isinstance(payload, Mapping):
        return ""
    if provider == "anthropic":
        blocks = payload.get("content")
        if isinstance(blocks, list):
            for block in blocks:
                if isinstance(block, Mapping) and isinstance(block.get("text"), str):
                    return block["text"]
        return ""
    choices = payload.get("choices")
    if isinstance(choices, list) and choices:
        first = choices[0]
        if isinstance(first, Mapping):
            message = first.get("message")
            if isinstance(message, Mapping):
                content = message.get("content")
                if isinstance(content, str):
                    return content
    return ""


def build_request(
    oracle: OracleConfig, *, system: str, prompt: str, summary: bool = False
) -> tuple[Dict[str, Any], Dict[str, str]]:
    """Return ``(payload, headers)`` for ``oracle``'s provider."""

    if oracle.provider == "anthropic":
        payload: Dict[str, Any] = {
            "model": oracle.model,
            "max_tokens": _SUMMARY_MAX_TOKENS if summary else _SCORING_MAX_TOKENS,
            "temperature": _TEMPERATURE,
            "system": system,
            "messages": [{"role": "user", "content": prompt}],
        }
        headers = {
            "x-api-key": oracle.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }
        return payload, headers

    payload = {
        "model": oracle.model,
        "temperature": _TEMPERATURE,
        "messages": [
            {"role": "system", "content": system},
            {"role": "user", "content": prompt},
        ],
    }
    if not summary:
        payload["response_format"] = {"type": "json_object"}
    headers = {
        "Authorization": f"Bearer {oracle.api_key}",
        "content-type": "application/json",
    }
    return payload, headers


async def request_completion(
    session: aiohttp.ClientSession,
    oracle: OracleConfig,
    *,
    system: str,
    prompt: str,
    summary: bool = False,
) -> str:
    """POST one prompt to ``oracle`` and return the raw assistant text."""

    payload, headers = build_request(oracle, system=system, prompt=prompt, summary=summary)
    timeout = aiohttp.ClientTimeout(total=oracle.timeout)
    try:
        async with session.post(oracle.endpoint, json=payload, headers=headers, timeout=timeout) as response:
            if response.status >= 400:
                try:
                    error_payload: Any = await response.json(content_type=None)
                except (aiohttp.ContentTypeError, ValueError):
                    error_payload = await response.text()
                if is_auth_error(response.status, error_payload):
                    raise OracleError(f"{oracle.name} authentication failed ({response.status})")
                raise OracleError(f"{oracle.name} HTTP {response.status}: {describe_error(error_payload)}")
            try:
                data = await response.json(content_type=None)
            except (aiohttp.ContentTypeError, ValueError) as exc:
                raise OracleError(f"{oracle.name} returned a non-JSON body") from exc
    except asyncio.TimeoutError as exc:
        raise OracleError(f"{oracle.name} timed out after {oracle.timeout:.1f}s") from exc
    except aiohttp.ClientError as exc:
        raise OracleError(f"{oracle.name} transport error: {type(exc).__name__}: {exc}") from exc

    content = extract_content(oracle.provider, data)
    if not content:
        raise OracleError(f"{oracle.name} returned empty content")
    return content


__all__ = [
    "OracleError",
    "build_request",
    "describe_error",
    "extract_content",
    "is_auth_error",
    "request_completion",
]
