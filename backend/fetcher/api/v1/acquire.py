from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import logging
import re
import unicodedata
from typing import Awaitable, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request
from fastapi.responses import JSONResponse, Response

from ...core.config import settings
from ...core.errors import AcquisitionError, TranscodeError
from ...schemas.models import AcquisitionErrorRead
from ...utils.admission import AdmissionController, CapacityExceeded
from ...utils.mime import extension_for_mime
from ...utils.models import AcquisitionResult, StrategyFailure
from ...utils.orchestrator import AudioAcquisitionOrchestrator
from ...utils.transcoder import OUTPUT_FORMATS, Mp3Transcoder
from ..deps import get_admission, get_orchestrator, get_transcoder

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/acquire", tags=["acquire"])

VIDEO_ID_PATTERN = r"^[A-Za-z0-9_-]{11}$"
OUTPUT_FORMAT_PATTERN = "^(" + "|".join(OUTPUT_FORMATS) + ")$"
USER_ERROR_MESSAGE = "We could not fetch audio for this video. Please try again later or pick another source."
# How often a running acquisition checks whether the client went away
DISCONNECT_POLL_SECONDS = 0.5


class ClientDisconnected(Exception):
    pass


def sanitize_filename(title: Optional[str], artist: Optional[str], fallback: str) -> str:
    """ASCII-only "Artist - Title" safe for a Content-Disposition header."""
    parts = [p.strip() for p in (artist, title) if p and p.strip()]
    name = " - ".join(parts) or fallback
    name = unicodedata.normalize("NFKD", name).encode("ascii", "ignore").decode("ascii")
    name = re.sub(r"[\\/:*?\"<>|\x00-\x1f]+", "_", name)
    name = re.sub(r"\s{2,}", " ", name).strip(" ._")
    return name[:150] or fallback


async def _run_until_disconnect(request: Request, work: Awaitable[AcquisitionResult]) -> AcquisitionResult:
    task = asyncio.ensure_future(work)
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=DISCONNECT_POLL_SECONDS)
            if done:
                return task.result()
            if await request.is_disconnected():
                raise ClientDisconnected()
    finally:
        if not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task


async def _acquire(
    orchestrator: AudioAcquisitionOrchestrator,
    transcoder: Mp3Transcoder,
    video_id: str,
    output_format: str,
) -> AcquisitionResult:
    result = await orchestrator.acquire(video_id)
    if output_format == "mp3":
        result = await transcoder.to_mp3(result)
    return result


@router.get("/{video_id}")
async def acquire_audio(
    request: Request,
    video_id: str = Path(..., pattern=VIDEO_ID_PATTERN, description="11-character YouTube video id"),
    title: Optional[str] = Query(None, max_length=300),
    artist: Optional[str] = Query(None, max_length=300),
    output_format: str = Query("original", alias="format", pattern=OUTPUT_FORMAT_PATTERN),
    orchestrator: AudioAcquisitionOrchestrator = Depends(get_orchestrator),
    admission: AdmissionController = Depends(get_admission),
    transcoder: Mp3Transcoder = Depends(get_transcoder),
):
    """Download the audio of one video as raw bytes, optionally converted to MP3."""
    try:
        with admission.slot():
            result = await _run_until_disconnect(
                request, _acquire(orchestrator, transcoder, video_id, output_format)
            )
    except CapacityExceeded:
        logger.warning("Rejecting %s: %d acquisitions in flight", video_id, admission.in_flight)
        raise HTTPException(
            status_code=503,
            detail="Too many downloads in progress, try again shortly",
            headers={"Retry-After": str(settings.retry_after_seconds)},
        )
    except ClientDisconnected:
        logger.info("Client disconnected, acquisition for %s cancelled", video_id)
        # Nobody is listening; nginx's "client closed request"
        return Response(status_code=499)
    except AcquisitionError as e:
        body = AcquisitionErrorRead(
            error=USER_ERROR_MESSAGE,
            details=[dataclasses.asdict(a) for a in e.attempts],
            video_id=video_id,
        )
        return JSONResponse(status_code=500, content=body.model_dump())
    except TranscodeError as e:
        logger.error("MP3 conversion failed for %s: %s", video_id, e)
        failure = StrategyFailure(strategy="transcode", message=e.message, error_type="TranscodeError")
        body = AcquisitionErrorRead(error=USER_ERROR_MESSAGE, details=[dataclasses.asdict(failure)], video_id=video_id)
        return JSONResponse(status_code=500, content=body.model_dump())

    filename = f"{sanitize_filename(title, artist, video_id)}.{extension_for_mime(result.mime_type)}"
    return Response(
        content=result.content,
        media_type=result.mime_type,
        headers={
            "Content-Length": str(result.size_bytes),
            "Content-Disposition": f'attachment; filename="{filename}"',
            "X-Acquisition-Strategy": result.strategy,
        },
    )
