"""Shared helpers for parsing loosely formatted JSON from LLM responses.

Scoring oracles are asked for strict JSON but routinely wrap it in Markdown
fences, prepend commentary, or leave trailing commas behind.  Everything here
fails soft: a payload that cannot be salvaged yields ``None`` instead of
raising.
"""

from __future__ import annotations

from typing import Any, Iterator
import json
import logging
import re

_TRAILING_COMMA = re.compile(r",\s*([}\]])")
_DECODER = json.JSONDecoder()


def strip_markdown_json(text: str) -> str:
    """Remove Markdown fences and leading ``json`` labels from *text*."""

    cleaned = str(text or "").strip()
    if cleaned.startswith("```"):
        cleaned = re.sub(r"^```[a-zA-Z0-9_-]*\s*", "", cleaned, flags=re.IGNORECASE)
        cleaned = re.sub(r"\s*```$", "", cleaned)
    if cleaned.lower().startswith("json"):
        cleaned = cleaned[4:].strip()
        cleaned = cleaned.lstrip(":").strip()
    return cleaned


def strip_trailing_commas(text: str) -> str:
    """Drop commas that directly precede a closing brace or bracket."""

    return _TRAILING_COMMA.sub(r"\1", text)


def iter_json_values(text: str) -> Iterator[Any]:
    """Yield every well-formed object or array embedded in ``text``, in order.

    Scanning resumes after each decoded value, so nested containers are not
    yielded separately from their parent.  Openers that do not start valid
    JSON (``[2 pools]`` in prose, for instance) are skipped.
    """

    pos = 0
    while True:
        starts = [idx for idx in (text.find("{", pos), text.find("[", pos)) if idx != -1]
        if not starts:
            return
        start = min(starts)
        try:
            value, end = _DECODER.raw_decode(text, start)
        except json.JSONDecodeError:
            pos = start + 1
            continue
        yield value
        pos = end


def iter_llm_json(raw_text: Any, *, logger: logging.Logger | None = None) -> Iterator[Any]:
    """Yield candidate JSON objects/arrays parsed from ``raw_text``.

    The whole text comes first, then the fenced body, then each embedded
    value in order of appearance; every variant is also tried with trailing
    commas stripped.  Callers keep the first candidate they can use.
    """

    text = str(raw_text or "").strip()
    if not text:
        return

    stripped = strip_markdown_json(text)
    repaired = strip_trailing_commas(stripped)
    variants = [v for v in dict.fromkeys((text, stripped, strip_trailing_commas(text), repaired)) if v]

    for variant in variants:
        try:
            data = json.loads(variant)
        except json.JSONDecodeError as exc:
            if logger:
                logger.debug("Failed to parse JSON candidate: %s", exc)
            continue
        if isinstance(data, (dict, list)):
            yield data

    for variant in dict.fromkeys((stripped, repaired)):
        yield from iter_json_values(variant)


def load_llm_json(raw_text: Any, *, logger: logging.Logger | None = None) -> Any:
    """Return the first JSON object or array found in ``raw_text``, or ``None``."""

    return next(iter_llm_json(raw_text, logger=logger), None)


__all__ = [
    "iter_json_values",
    "iter_llm_json",
    "load_llm_json",
    "strip_markdown_json",
    "strip_trailing_commas",
]
