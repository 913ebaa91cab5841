"""Bounded-time media fetching over httpx.

Every call here is wrapped in a timeout and converts transport failures into
StrategyError so callers only ever see the fetcher's error taxonomy.
"""
from __future__ import annotations

import asyncio
import json
import logging
import random
from typing import AsyncIterator, Dict, Optional, Tuple

import httpx

from ..core.errors import NotFoundError, StrategyError

logger = logging.getLogger(__name__)

# YouTube rejects media requests without a browser-like user agent
USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/16.6 Safari/605.1.15",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:109.0) Gecko/20100101 Firefox/115.0",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
]

CHUNK_SIZE = 64 * 1024


def random_user_agent() -> str:
    return random.choice(USER_AGENTS)


def media_headers(user_agent: Optional[str] = None) -> Dict[str, str]:
    return {
        "User-Agent": user_agent or random_user_agent(),
        "Accept": "*/*",
        "Accept-Language": "en-US,en;q=0.9",
        "Referer": "https://www.youtube.com/",
        "Origin": "https://www.youtube.com",
    }


def build_client(timeout: float) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=httpx.Timeout(timeout), follow_redirects=True)


async def read_with_stall(
    chunks: AsyncIterator[bytes],
    stall_timeout: Optional[float],
    first_chunk_timeout: Optional[float] = None,
) -> bytes:
    """Drain ``chunks`` into one buffer, failing when no chunk arrives for ``stall_timeout`` seconds.

    ``first_chunk_timeout``, when given, replaces ``stall_timeout`` until the
    first non-empty chunk arrives, so slow start-up is not taken for a stall.
    """
    buf = bytearray()
    it = chunks.__aiter__()
    while True:
        timeout = first_chunk_timeout if not buf and first_chunk_timeout else stall_timeout
        try:
            if timeout:
                chunk = await asyncio.wait_for(it.__anext__(), timeout=timeout)
            else:
                chunk = await it.__anext__()
        except StopAsyncIteration:
            break
        except asyncio.TimeoutError:
            if not buf:
                raise StrategyError(f"No data received within {timeout:g}s of starting", details={"received_bytes": 0}) from None
            raise StrategyError(
                f"No data received for {timeout:g}s after {len(buf)} bytes",
                details={"received_bytes": len(buf)},
            ) from None
        if chunk:
            buf.extend(chunk)
    return bytes(buf)


async def fetch_bytes(
    url: str,
    *,
    timeout: float,
    client: Optional[httpx.AsyncClient] = None,
    headers: Optional[Dict[str, str]] = None,
    stall_timeout: Optional[float] = None,
) -> Tuple[bytes, Optional[str]]:
    """GET ``url`` and return (body, content-type header).

    Raises NotFoundError on 404/410, StrategyError on any other non-2xx status,
    transport error, stall or when ``timeout`` elapses.
    """
    owns_client = client is None
    http = client or build_client(timeout)

    async def _do() -> Tuple[bytes, Optional[str]]:
        async with http.stream("GET", url, headers=headers or media_headers()) as resp:
            if resp.status_code in (404, 410):
                raise NotFoundError(f"HTTP error {resp.status_code}", details={"url": url})
            if resp.status_code >= 400:
                raise StrategyError(
                    f"HTTP error {resp.status_code}: {resp.reason_phrase}",
                    details={"url": url, "status_code": resp.status_code},
                )
            content_type = resp.headers.get("content-type")
            body = await read_with_stall(resp.aiter_bytes(CHUNK_SIZE), stall_timeout)
            logger.debug("Fetched %d bytes content-type=%s", len(body), content_type)
            return body, content_type

    try:
        return await asyncio.wait_for(_do(), timeout=timeout)
    except asyncio.TimeoutError:
        raise StrategyError(f"Download timed out after {timeout:g}s", details={"url": url}) from None
    except httpx.TimeoutException as e:
        raise StrategyError(f"Download timed out: {e.__class__.__name__}", details={"url": url}) from e
    except httpx.HTTPError as e:
        raise StrategyError(f"Network error: {e}", details={"url": url}) from e
    finally:
        if owns_client:
            await http.aclose()


async def fetch_json(
    url: str,
    *,
    timeout: float,
    client: Optional[httpx.AsyncClient] = None,
) -> dict:
    """GET a JSON document with the same error mapping as fetch_bytes."""
    body, _ = await fetch_bytes(
        url,
        timeout=timeout,
        client=client,
        headers={"Accept": "application/json", "User-Agent": random_user_agent()},
    )
    try:
        data = json.loads(body)
    except ValueError as e:
        raise StrategyError(f"Invalid JSON from {url}: {e}") from e
    if not isinstance(data, dict):
        raise StrategyError(f"Unexpected JSON payload from {url}")
    return data
