"""Audio acquisition strategies.

Each strategy turns a YouTube video id into audio bytes in its own way and
either returns an AcquisitionResult or raises StrategyError. Strategies never
touch the format cache or the performance counters; the orchestrator records
outcomes on their behalf, so a failed attempt leaves no shared state behind.

Registered strategies (declaration order is the tie-break order):

    direct        yt-dlp format selector -> direct URL -> httpx fetch
    streaming     yt-dlp executable streaming to stdout, stall-guarded
    full_info     full yt-dlp metadata with alternate player clients, manual format pick
    external_api  Piped-compatible API instances -> audio stream URL -> httpx fetch
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
import shlex
import shutil
import sys
from typing import Any, Dict, Iterable, List, Optional, Sequence, Type

import httpx
import yt_dlp

from ..core.errors import ConfigError, NotFoundError, StrategyError
from .media_fetch import CHUNK_SIZE, fetch_bytes, fetch_json, media_headers, read_with_stall
from .mime import looks_like_html, mime_from_extension, normalize_mime, sniff_audio_mime
from .models import AcquisitionResult

logger = logging.getLogger(__name__)

AUDIO_FORMAT_SELECTOR = "bestaudio[ext=m4a]/bestaudio"

_NOT_FOUND_HINTS = (
    "video unavailable",
    "private video",
    "is private",
    "has been removed",
    "not available",
    "does not exist",
    "404",
)


def watch_url(content_id: str) -> str:
    return f"https://www.youtube.com/watch?v={content_id}"


def _classify_extraction_error(message: str) -> Type[StrategyError]:
    lowered = message.lower()
    if any(hint in lowered for hint in _NOT_FOUND_HINTS):
        return NotFoundError
    return StrategyError


class Strategy:
    """Base class: one way of obtaining audio bytes for a content id."""

    name: str = "base"
    # Assumed success rate before any attempt has been recorded
    prior: float = 0.5

    def __init__(
        self,
        *,
        min_bytes: int = 1000,
        fetch_timeout: float = 30.0,
        stall_timeout: float = 5.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.min_bytes = min_bytes
        self.fetch_timeout = fetch_timeout
        self.stall_timeout = stall_timeout
        self.http_client = http_client

    async def attempt(self, content_id: str) -> AcquisitionResult:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"

    def _fail(self, message: str, exc_type: Type[StrategyError] = StrategyError, **details: Any) -> StrategyError:
        return exc_type(message, strategy=self.name, details=details or None)

    def _validated(
        self,
        content: bytes,
        mime_type: Optional[str],
        *,
        direct_url: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> AcquisitionResult:
        """Reject empty, undersized or HTML payloads; settle the MIME type."""
        size = len(content)
        if size == 0:
            raise self._fail("No data received")
        if content_type and normalize_mime(content_type).startswith("text/"):
            raise self._fail(f"Received {normalize_mime(content_type)} instead of audio ({size} bytes)")
        if looks_like_html(content[:512]):
            raise self._fail(f"Received an HTML page instead of audio ({size} bytes)")
        if size < self.min_bytes:
            raise self._fail(f"Buffer too small ({size} bytes), likely incomplete download")
        sniffed = sniff_audio_mime(content[:16])
        mime = sniffed or normalize_mime(mime_type or content_type)
        return AcquisitionResult(content=content, mime_type=mime, strategy=self.name, direct_url=direct_url)

    async def _fetch_url(
        self,
        url: str,
        mime_type: Optional[str],
        headers: Optional[Dict[str, str]] = None,
    ) -> AcquisitionResult:
        try:
            body, content_type = await fetch_bytes(
                url,
                timeout=self.fetch_timeout,
                client=self.http_client,
                headers=headers,
                stall_timeout=self.stall_timeout,
            )
        except StrategyError as e:
            e.strategy = self.name
            raise
        return self._validated(body, mime_type, direct_url=url, content_type=content_type)


class _YtDlpExtractionMixin:
    """Runs yt-dlp metadata extraction in a worker thread under a timeout."""

    name: str
    fetch_timeout: float

    def _ydl_options(self) -> Dict[str, Any]:
        return {
            "quiet": True,
            "no_warnings": True,
            "noplaylist": True,
            "skip_download": True,
            "socket_timeout": max(5, int(self.fetch_timeout // 2)),
        }

    async def _extract(self, content_id: str, options: Dict[str, Any]) -> Dict[str, Any]:
        def _run() -> Optional[Dict[str, Any]]:
            with yt_dlp.YoutubeDL(options) as ydl:
                return ydl.extract_info(watch_url(content_id), download=False)

        try:
            # The worker thread cannot be interrupted; on timeout its result is discarded
            info = await asyncio.wait_for(asyncio.to_thread(_run), timeout=self.fetch_timeout)
        except asyncio.TimeoutError:
            raise StrategyError(
                f"Format resolution timed out after {self.fetch_timeout:g}s", strategy=self.name
            ) from None
        except yt_dlp.utils.DownloadError as e:
            message = str(e).replace("ERROR: ", "").strip()
            raise _classify_extraction_error(message)(message, strategy=self.name) from e
        except yt_dlp.utils.YoutubeDLError as e:
            raise StrategyError(f"yt-dlp error: {e}", strategy=self.name) from e
        if not info:
            raise NotFoundError("No metadata returned", strategy=self.name)
        return info


def _format_headers(fmt: Dict[str, Any]) -> Dict[str, str]:
    headers = media_headers()
    extra = fmt.get("http_headers")
    if isinstance(extra, dict):
        headers.update({str(k): str(v) for k, v in extra.items()})
    return headers


class DirectFormatStrategy(_YtDlpExtractionMixin, Strategy):
    """Let yt-dlp's format selector pick the best audio, then fetch its direct URL."""

    name = "direct"
    prior = 0.6

    async def attempt(self, content_id: str) -> AcquisitionResult:
        options = self._ydl_options()
        options["format"] = AUDIO_FORMAT_SELECTOR
        info = await self._extract(content_id, options)

        selected: Dict[str, Any] = info
        if not info.get("url"):
            requested = info.get("requested_downloads") or info.get("requested_formats") or []
            selected = next((f for f in requested if f.get("url")), {})
        url = selected.get("url")
        if not url:
            raise self._fail("Selected audio format has no direct URL")
        mime = mime_from_extension(selected.get("ext") or info.get("ext"))
        logger.debug("[%s] %s format_id=%s ext=%s", self.name, content_id, selected.get("format_id"), selected.get("ext"))
        return await self._fetch_url(url, mime, headers=_format_headers(selected))


class FullInfoStrategy(_YtDlpExtractionMixin, Strategy):
    """Extract full metadata through alternate player clients and pick the audio format manually."""

    name = "full_info"
    prior = 0.5

    def __init__(self, *, player_clients: Sequence[str] = ("tv", "web_embedded", "web"), **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.player_clients = list(player_clients)

    @staticmethod
    def pick_audio_format(formats: Iterable[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        """Highest-bitrate audio-only format with a plain HTTP(S) URL."""
        candidates: List[Dict[str, Any]] = []
        for f in formats or []:
            if not f.get("url"):
                continue
            if f.get("vcodec") not in (None, "none"):
                continue
            if f.get("acodec") in (None, "none"):
                continue
            protocol = f.get("protocol") or "https"
            if protocol not in ("http", "https"):
                continue
            candidates.append(f)
        if not candidates:
            return None
        return max(candidates, key=lambda f: (f.get("abr") or f.get("tbr") or 0, f.get("ext") == "m4a"))

    async def attempt(self, content_id: str) -> AcquisitionResult:
        options = self._ydl_options()
        options["format"] = "bestaudio/best"
        if self.player_clients:
            options["extractor_args"] = {"youtube": {"player_client": self.player_clients}}
        info = await self._extract(content_id, options)
        fmt = self.pick_audio_format(info.get("formats") or [])
        if not fmt:
            raise self._fail("No audio formats found")
        mime = mime_from_extension(fmt.get("ext"))
        return await self._fetch_url(fmt["url"], mime, headers=_format_headers(fmt))


def resolve_yt_dlp_command(configured: Optional[str] = None) -> List[str]:
    """Return the argv prefix that launches yt-dlp."""
    if configured:
        return [configured]
    found = shutil.which("yt-dlp")
    if found:
        return [found]
    return [sys.executable, "-m", "yt_dlp"]


class StreamingLibraryStrategy(Strategy):
    """Stream the best audio from the yt-dlp executable's stdout into memory."""

    name = "streaming"
    prior = 0.7

    def __init__(
        self,
        *,
        yt_dlp_bin: Optional[str] = None,
        extra_args: str = "",
        start_timeout: float = 12.0,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        # Interpreter start-up and format resolution happen before the first byte
        self.start_timeout = start_timeout
        self.command = resolve_yt_dlp_command(yt_dlp_bin)
        self.extra_args = shlex.split(extra_args) if extra_args.strip() else []

    def build_command(self, content_id: str) -> List[str]:
        return [
            *self.command,
            "-f", AUDIO_FORMAT_SELECTOR,
            "--no-playlist",
            "--quiet",
            "--no-warnings",
            "--no-progress",
            *self.extra_args,
            "-o", "-",
            watch_url(content_id),
        ]

    async def _spawn(self, argv: List[str]) -> asyncio.subprocess.Process:
        return await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )

    async def attempt(self, content_id: str) -> AcquisitionResult:
        argv = self.build_command(content_id)
        try:
            proc = await self._spawn(argv)
        except FileNotFoundError as e:
            raise self._fail(f"Executable not found: {e.filename}. Check YT_DLP_BIN or PATH.") from e

        async def _stdout_chunks():
            assert proc.stdout is not None
            while True:
                chunk = await proc.stdout.read(CHUNK_SIZE)
                if not chunk:
                    return
                yield chunk

        stderr_task = asyncio.create_task(proc.stderr.read()) if proc.stderr is not None else None
        try:
            try:
                content = await read_with_stall(_stdout_chunks(), self.stall_timeout, self.start_timeout)
            except StrategyError as e:
                e.strategy = self.name
                raise
            returncode = await asyncio.wait_for(proc.wait(), timeout=self.stall_timeout)
            stderr = (await stderr_task).decode("utf-8", "replace").strip() if stderr_task else ""
            if returncode != 0:
                tail = stderr.splitlines()[-1] if stderr else f"exit code {returncode}"
                tail = tail.replace("ERROR: ", "")
                raise self._fail(tail, _classify_extraction_error(tail), returncode=returncode)
        except asyncio.TimeoutError:
            raise self._fail("yt-dlp did not exit after closing its output") from None
        finally:
            if proc.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    proc.kill()
                with contextlib.suppress(Exception):
                    await proc.wait()
            if stderr_task is not None and not stderr_task.done():
                stderr_task.cancel()
        return self._validated(content, None)


class ExternalApiStrategy(Strategy):
    """Ask Piped-compatible API instances for an audio stream URL, then fetch it."""

    name = "external_api"
    prior = 0.4

    def __init__(self, *, instances: Sequence[str] = (), **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.instances = [i.rstrip("/") for i in instances if i]

    @staticmethod
    def pick_audio_stream(streams: Iterable[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        usable = [s for s in streams or [] if s.get("url")]
        if not usable:
            return None
        return max(usable, key=lambda s: s.get("bitrate") or 0)

    async def attempt(self, content_id: str) -> AcquisitionResult:
        if not self.instances:
            raise self._fail("No external API instances configured")
        errors: List[str] = []
        not_found = 0
        for instance in self.instances:
            try:
                data = await fetch_json(
                    f"{instance}/streams/{content_id}",
                    timeout=self.fetch_timeout,
                    client=self.http_client,
                )
                if data.get("error"):
                    message = str(data.get("message") or data.get("error"))
                    raise _classify_extraction_error(f"{data.get('error')} {message}")(message)
                stream = self.pick_audio_stream(data.get("audioStreams") or [])
                if not stream:
                    raise StrategyError("No audio streams in response")
                mime = normalize_mime(stream.get("mimeType"), default=mime_from_extension(stream.get("format")))
                return await self._fetch_url(stream["url"], mime)
            except StrategyError as e:
                if isinstance(e, NotFoundError):
                    not_found += 1
                logger.info("[%s] instance %s failed for %s: %s", self.name, instance, content_id, e)
                errors.append(f"{instance}: {e}")
        exc_type = NotFoundError if not_found == len(self.instances) else StrategyError
        raise self._fail("All API instances failed (" + "; ".join(errors) + ")", exc_type)


STRATEGY_TYPES: Dict[str, Type[Strategy]] = {
    cls.name: cls
    for cls in (DirectFormatStrategy, StreamingLibraryStrategy, FullInfoStrategy, ExternalApiStrategy)
}


def build_strategies(settings: Any, http_client: Optional[httpx.AsyncClient] = None) -> List[Strategy]:
    """Instantiate the strategies named in ``settings.strategies``, in that order."""
    common = dict(
        min_bytes=settings.min_audio_bytes,
        fetch_timeout=settings.attempt_timeout,
        stall_timeout=settings.stall_timeout,
        http_client=http_client,
    )
    out: List[Strategy] = []
    for name in settings.strategies:
        cls = STRATEGY_TYPES.get(name)
        if cls is None:
            raise ConfigError(
                f"Unknown acquisition strategy '{name}'",
                details={"known": sorted(STRATEGY_TYPES)},
            )
        if cls is StreamingLibraryStrategy:
            out.append(
                cls(
                    yt_dlp_bin=settings.yt_dlp_bin,
                    extra_args=settings.yt_dlp_extra_args,
                    start_timeout=min(settings.stream_start_timeout, settings.attempt_timeout),
                    **common,
                )
            )
        elif cls is ExternalApiStrategy:
            if not settings.piped_instances:
                logger.info("external_api strategy disabled: no PIPED_INSTANCES configured")
                continue
            out.append(cls(instances=settings.piped_instances, **common))
        else:
            out.append(cls(**common))
    if not out:
        raise ConfigError("No acquisition strategies enabled")
    return out
