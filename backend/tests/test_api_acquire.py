import sys

import httpx
import pytest

from backend.fetcher.api.v1.acquire import ClientDisconnected, _run_until_disconnect, sanitize_filename
from backend.fetcher.core.errors import StrategyError
from backend.fetcher.main import app
from backend.fetcher.utils.admission import AdmissionController
from backend.fetcher.utils.orchestrator import AudioAcquisitionOrchestrator
from backend.fetcher.utils.transcoder import Mp3Transcoder

VIDEO_ID = "dQw4w9WgXcQ"


@pytest.fixture
def install_state():
    saved = dict(app.state._state)

    def _install(*strategies, capacity=5, transcoder=None):
        orch = AudioAcquisitionOrchestrator(list(strategies), attempt_timeout=2, acquisition_timeout=5)
        app.state.orchestrator = orch
        app.state.admission = AdmissionController(capacity)
        app.state.transcoder = transcoder or Mp3Transcoder()
        return orch

    yield _install
    app.state._state.clear()
    app.state._state.update(saved)


@pytest.fixture
async def client():
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.mark.asyncio
async def test_acquire_returns_audio_with_headers(install_state, client, fake_strategy, audio_bytes):
    install_state(fake_strategy("direct", audio_bytes))
    resp = await client.get(f"/api/v1/acquire/{VIDEO_ID}", params={"artist": "Daft Punk", "title": "One More Time"})
    assert resp.status_code == 200
    assert resp.content == audio_bytes
    assert resp.headers["content-type"] == "audio/mp4"
    assert resp.headers["content-length"] == str(len(audio_bytes))
    assert resp.headers["content-disposition"] == 'attachment; filename="Daft Punk - One More Time.m4a"'
    assert resp.headers["x-acquisition-strategy"] == "direct"


@pytest.mark.asyncio
async def test_acquire_without_metadata_uses_video_id(install_state, client, fake_strategy, audio_bytes):
    install_state(fake_strategy("direct", audio_bytes, mime_type="audio/webm"))
    resp = await client.get(f"/api/v1/acquire/{VIDEO_ID}")
    assert resp.status_code == 200
    assert resp.headers["content-disposition"] == f'attachment; filename="{VIDEO_ID}.webm"'


@pytest.mark.asyncio
async def test_acquire_failure_returns_diagnostics(install_state, client, fake_strategy):
    install_state(fake_strategy("a", StrategyError("no formats")), fake_strategy("b", StrategyError("HTTP error 403")))
    resp = await client.get(f"/api/v1/acquire/{VIDEO_ID}")
    assert resp.status_code == 500
    body = resp.json()
    assert "could not fetch" in body["error"]
    assert body["video_id"] == VIDEO_ID
    assert [d["strategy"] for d in body["details"]] == ["a", "b"]
    assert body["details"][1]["message"] == "HTTP error 403"
    assert "Traceback" not in resp.text


class _EchoTranscoder(Mp3Transcoder):
    def __init__(self, script="import sys; sys.stdout.buffer.write(b'ID3' + sys.stdin.buffer.read())"):
        super().__init__()
        self.script = script

    def build_command(self):
        return [sys.executable, "-c", self.script]


@pytest.mark.asyncio
async def test_acquire_as_mp3(install_state, client, fake_strategy, audio_bytes):
    install_state(fake_strategy("direct", audio_bytes), transcoder=_EchoTranscoder())
    resp = await client.get(f"/api/v1/acquire/{VIDEO_ID}", params={"title": "Song", "format": "mp3"})
    assert resp.status_code == 200
    assert resp.content == b"ID3" + audio_bytes
    assert resp.headers["content-type"] == "audio/mpeg"
    assert resp.headers["content-disposition"] == 'attachment; filename="Song.mp3"'
    assert resp.headers["x-acquisition-strategy"] == "direct"


@pytest.mark.asyncio
async def test_acquire_mp3_conversion_failure_returns_500(install_state, client, fake_strategy, audio_bytes):
    failing = _EchoTranscoder("import sys; sys.stdin.buffer.read(); sys.stderr.write('Invalid data found'); sys.exit(1)")
    install_state(fake_strategy("direct", audio_bytes), transcoder=failing)
    resp = await client.get(f"/api/v1/acquire/{VIDEO_ID}", params={"format": "mp3"})
    assert resp.status_code == 500
    body = resp.json()
    assert "could not fetch" in body["error"]
    assert body["details"][0]["strategy"] == "transcode"
    assert body["details"][0]["error_type"] == "TranscodeError"
    assert "Invalid data found" in body["details"][0]["message"]
    assert app.state.admission.in_flight == 0


@pytest.mark.asyncio
async def test_acquire_rejects_unknown_format(install_state, client, fake_strategy):
    strategy = fake_strategy("a")
    install_state(strategy)
    resp = await client.get(f"/api/v1/acquire/{VIDEO_ID}", params={"format": "flac"})
    assert resp.status_code == 422
    assert strategy.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("bad_id", ["short", "dQw4w9WgXcQQ", "dQw4w9WgX!Q"])
async def test_acquire_rejects_malformed_ids(install_state, client, fake_strategy, bad_id):
    strategy = fake_strategy("a")
    install_state(strategy)
    resp = await client.get(f"/api/v1/acquire/{bad_id}")
    assert resp.status_code == 422
    assert strategy.calls == []


@pytest.mark.asyncio
async def test_acquire_at_capacity_returns_503(install_state, client, fake_strategy):
    strategy = fake_strategy("a")
    install_state(strategy, capacity=1)
    assert app.state.admission.try_acquire()
    resp = await client.get(f"/api/v1/acquire/{VIDEO_ID}")
    assert resp.status_code == 503
    assert resp.headers["retry-after"] == "10"
    assert strategy.calls == []


@pytest.mark.asyncio
async def test_slot_released_after_each_request(install_state, client, fake_strategy):
    install_state(fake_strategy("a", StrategyError("nope")), capacity=1)
    for _ in range(2):
        resp = await client.get(f"/api/v1/acquire/{VIDEO_ID}")
        assert resp.status_code == 500
    assert app.state.admission.in_flight == 0


class _GoneRequest:
    async def is_disconnected(self) -> bool:
        return True


@pytest.mark.asyncio
async def test_disconnect_cancels_acquisition(fake_strategy, audio_bytes, monkeypatch):
    from backend.fetcher.api.v1 import acquire as acquire_mod

    monkeypatch.setattr(acquire_mod, "DISCONNECT_POLL_SECONDS", 0.01)
    slow = fake_strategy("slow", audio_bytes, delay=10)
    orch = AudioAcquisitionOrchestrator([slow], attempt_timeout=30, acquisition_timeout=45)
    with pytest.raises(ClientDisconnected):
        await _run_until_disconnect(_GoneRequest(), orch.acquire(VIDEO_ID))
    assert slow.calls == [VIDEO_ID]
    assert orch.tracker.stats("slow").total == 0


def test_sanitize_filename():
    assert sanitize_filename("One/More:Time?", "Daft Punk", "id") == "Daft Punk - One_More_Time"
    assert sanitize_filename("Café del Mar", None, "id") == "Cafe del Mar"
    assert sanitize_filename("  ", "", "fallback") == "fallback"
    assert sanitize_filename("日本語", None, "fallback") == "fallback"
