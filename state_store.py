"""Durable JSON persistence for the engine's cross-cycle state.

History series and the risk cache are stored as address-keyed JSON documents.
Writes go to a temporary file that is atomically renamed over the target, and
are retried a bounded number of times; a write that still fails is reported
and leaves the in-memory state untouched.
"""

from __future__ import annotations

import json
import os
import tempfile
import time
from typing import Any, Callable, Dict

from history_tracker import HistoryTracker
from log_utils import setup_logger
from risk_cache import RiskCache

logger = setup_logger(__name__)


class StateStoreError(RuntimeError):
    """Raised when a state document cannot be written."""


def load_json_document(path: str) -> Dict[str, Any]:
    """Return the mapping stored at ``path`` or ``{}`` when missing/corrupt."""

    try:
        with open(path, "r", encoding="utf-8") as handle:
            text = handle.read().strip()
            if not text:
                raise json.JSONDecodeError("empty", "", 0)
            data = json.loads(text)
    except FileNotFoundError:
        return {}
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Resetting corrupted or unreadable %s (%s)", path, exc)
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring non-object document in %s", path)
        return {}
    return data


def write_json_document(path: str, obj: Dict[str, Any]) -> None:
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=".state_", dir=directory, text=True)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(obj, handle, ensure_ascii=False, separators=(",", ":"))
        os.replace(tmp, path)
    except OSError as exc:
        raise StateStoreError(f"failed to write {path}: {exc}") from exc
    finally:
        try:
            if os.path.exists(tmp):
                os.remove(tmp)
        except OSError:
            pass


class EngineStateStore:
    """Load and flush the history tracker and risk cache."""

    def __init__(
        self,
        history_path: str,
        risk_path: str,
        *,
        retries: int = 3,
        retry_delay: float = 0.2,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.history_path = history_path
        self.risk_path = risk_path
        self.retries = max(1, int(retries))
        self.retry_delay = float(retry_delay)
        self._sleep = sleep

    def load(self, history: HistoryTracker, risk_cache: RiskCache) -> None:
        pools = history.load_dict(load_json_document(self.history_path))
        risks = risk_cache.load_dict(load_json_document(self.risk_path))
        logger.info("Loaded history for %d pools and %d cached risk labels", pools, risks)

    def _write_with_retry(self, path: str, payload: Dict[str, Any]) -> bool:
        for attempt in range(1, self.retries + 1):
            try:
                write_json_document(path, payload)
                return True
            except StateStoreError as exc:
                logger.warning("State flush attempt %d/%d failed: %s", attempt, self.retries, exc)
                if attempt < self.retries:
                    self._sleep(self.retry_delay * attempt)
        logger.error("Giving up on flushing %s; in-memory state retained", path)
        return False

    def flush(self, history: HistoryTracker, risk_cache: RiskCache) -> bool:
        """Persist both documents; ``True`` only when both writes succeeded."""

        history_ok = self._write_with_retry(self.history_path, history.to_dict())
        risk_ok = self._write_with_retry(self.risk_path, risk_cache.to_dict())
        return history_ok and risk_ok


__all__ = ["EngineStateStore", "StateStoreError", "load_json_document", "write_json_document"]
