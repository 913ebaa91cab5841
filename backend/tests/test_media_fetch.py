import asyncio

import httpx
import pytest

from backend.fetcher.core.errors import NotFoundError, StrategyError
from backend.fetcher.utils.media_fetch import fetch_bytes, fetch_json, media_headers, read_with_stall


async def _chunks(*parts, pause_after=None, pause=0.0):
    for i, part in enumerate(parts):
        yield part
        if pause_after is not None and i == pause_after:
            await asyncio.sleep(pause)


@pytest.mark.asyncio
async def test_read_with_stall_collects_all_chunks():
    assert await read_with_stall(_chunks(b"ab", b"", b"cd"), 1.0) == b"abcd"


@pytest.mark.asyncio
async def test_read_with_stall_aborts_on_silence():
    with pytest.raises(StrategyError) as exc:
        await read_with_stall(_chunks(b"abc", b"never", pause_after=0, pause=5), 0.05)
    assert "after 3 bytes" in exc.value.message
    assert exc.value.details["received_bytes"] == 3


async def _slow_start(delay, *parts):
    await asyncio.sleep(delay)
    for part in parts:
        yield part


@pytest.mark.asyncio
async def test_read_with_stall_gives_first_chunk_its_own_budget():
    body = await read_with_stall(_slow_start(0.2, b"ab", b"cd"), 0.05, first_chunk_timeout=1.0)
    assert body == b"abcd"


@pytest.mark.asyncio
async def test_read_with_stall_fails_when_nothing_arrives_in_start_budget():
    with pytest.raises(StrategyError, match="within 0.05s of starting") as exc:
        await read_with_stall(_slow_start(5, b"ab"), 1.0, first_chunk_timeout=0.05)
    assert exc.value.details["received_bytes"] == 0


@pytest.mark.asyncio
async def test_fetch_bytes_returns_body_and_content_type():
    def handler(request: httpx.Request) -> httpx.Response:
        assert "Mozilla/5.0" in request.headers["User-Agent"]
        return httpx.Response(200, content=b"x" * 10, headers={"content-type": "audio/webm"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        body, ctype = await fetch_bytes("https://host/a", timeout=5, client=client)
    assert body == b"x" * 10
    assert ctype == "audio/webm"


@pytest.mark.asyncio
@pytest.mark.parametrize("status,exc_type", [(404, NotFoundError), (410, NotFoundError), (403, StrategyError), (500, StrategyError)])
async def test_fetch_bytes_maps_status_codes(status, exc_type):
    async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(status))) as client:
        with pytest.raises(exc_type) as exc:
            await fetch_bytes("https://host/a", timeout=5, client=client)
    assert f"HTTP error {status}" in exc.value.message


@pytest.mark.asyncio
async def test_fetch_bytes_maps_transport_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(StrategyError, match="Network error"):
            await fetch_bytes("https://host/a", timeout=5, client=client)


@pytest.mark.asyncio
async def test_fetch_bytes_overall_timeout():
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(5)
        return httpx.Response(200, content=b"late")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(StrategyError, match="timed out"):
            await fetch_bytes("https://host/a", timeout=0.05, client=client)


@pytest.mark.asyncio
async def test_fetch_json_rejects_non_json():
    async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200, content=b"<html>"))) as client:
        with pytest.raises(StrategyError, match="Invalid JSON"):
            await fetch_json("https://api/streams/x", timeout=5, client=client)


def test_media_headers_carry_youtube_referer():
    headers = media_headers("UA/1.0")
    assert headers["User-Agent"] == "UA/1.0"
    assert headers["Referer"] == "https://www.youtube.com/"
    assert headers["Origin"] == "https://www.youtube.com"
