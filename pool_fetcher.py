"""GeckoTerminal pool listing client.

Pages are requested concurrently and a failed page is simply dropped; the
surviving pages are flattened and de-duplicated by address.  ``fetch_with_retry``
wraps a whole fetch in a bounded retry loop with linearly increasing backoff.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

import aiohttp

from log_utils import setup_logger
from pool_schema import PoolSnapshot, normalise_pool

logger = setup_logger(__name__)

GT_BASE = "https://api.geckoterminal.com/api/v2"
USER_AGENT = "BESC-TrendingBot/1.0"
_PAGE_TIMEOUT_SECONDS = 20.0

T = TypeVar("T")


class FetchError(RuntimeError):
    """Raised when pool snapshots could not be fetched within the allowed retries."""


@asynccontextmanager
async def _client_session(session: Optional[aiohttp.ClientSession]):
    own_session = session is None
    if own_session:
        timeout = aiohttp.ClientTimeout(total=_PAGE_TIMEOUT_SECONDS)
        session = aiohttp.ClientSession(timeout=timeout, headers={"User-Agent": USER_AGENT})
    assert session is not None
    try:
        yield session
    finally:
        if own_session:
            await session.close()


async def fetch_pools_page(session: aiohttp.ClientSession, network: str, page: int = 1) -> List[Dict[str, Any]]:
    """Return the raw JSON:API ``data`` items for one page."""

    url = f"{GT_BASE}/networks/{network}/pools"
    params = {"sort": "h24_volume_usd_desc", "page": str(page), "include": "base_token,quote_token"}
    async with session.get(url, params=params) as response:
        if response.status != 200:
            raise FetchError(f"HTTP {response.status} for page {page}")
        payload = await response.json(content_type=None)
    data = payload.get("data") if isinstance(payload, dict) else None
    return data if isinstance(data, list) else []


def merge_pages(pages: List[Any]) -> List[PoolSnapshot]:
    """Flatten page results, skipping failed pages and duplicate addresses."""

    seen: Dict[str, PoolSnapshot] = {}
    for page in pages:
        if isinstance(page, BaseException):
            logger.warning("Dropping failed page: %s", page)
            continue
        for item in page or []:
            snapshot = normalise_pool(item)
            if snapshot is not None and snapshot.address not in seen:
                seen[snapshot.address] = snapshot
    return list(seen.values())


async def fetch_all_pools(
    network: str,
    *,
    pages: int = 3,
    session: Optional[aiohttp.ClientSession] = None,
) -> List[PoolSnapshot]:
    """Fetch ``pages`` pages concurrently and return their de-duplicated union.

    Raises :class:`FetchError` only when every page failed.
    """

    async with _client_session(session) as client:
        results = await asyncio.gather(
            *(fetch_pools_page(client, network, page) for page in range(1, pages + 1)),
            return_exceptions=True,
        )
    if results and all(isinstance(result, BaseException) for result in results):
        raise FetchError(f"all {len(results)} pages failed: {results[0]}")
    return merge_pages(list(results))


async def fetch_with_retry(
    fetch: Callable[[], Awaitable[T]],
    *,
    retries: int = 4,
    backoff_seconds: float = 3.0,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """Await ``fetch()`` up to ``retries`` times, waiting ``backoff * attempt`` between tries.

    No sleep follows the final failed attempt.
    """

    last_error: Optional[BaseException] = None
    attempts = max(1, int(retries))
    for attempt in range(attempts):
        try:
            return await fetch()
        except (FetchError, aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            last_error = exc
            logger.error("[Retry] Attempt %d failed: %s", attempt + 1, exc)
            if attempt + 1 < attempts:
                await sleep(backoff_seconds * (attempt + 1))
    raise FetchError(f"All {attempts} retries failed: {last_error}")


__all__ = [
    "FetchError",
    "GT_BASE",
    "fetch_all_pools",
    "fetch_pools_page",
    "fetch_with_retry",
    "merge_pages",
]
