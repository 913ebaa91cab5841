"""
MP3 output for acquired audio.

Acquired bytes are piped through ffmpeg (stdin -> stdout), so nothing touches
the disk. The executable is looked up the same way for every request: the
configured FFMPEG_BIN (absolute, or relative to the project/backend root or
CWD), then a local virtualenv, then PATH.
"""
from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import logging
import shutil
from pathlib import Path
from typing import List, Optional

from ..core.errors import TranscodeError
from .models import AcquisitionResult

logger = logging.getLogger(__name__)

MP3_MIME = "audio/mpeg"
OUTPUT_FORMATS = ("original", "mp3")


def resolve_ffmpeg(configured: Optional[str] = None, exe_names: Optional[List[str]] = None) -> str:
    """Return the path of the ffmpeg executable, or the bare configured/default name."""
    names = exe_names or ["ffmpeg.exe", "ffmpeg"]
    project_root = Path(__file__).resolve().parents[3]
    backend_root = Path(__file__).resolve().parents[2]

    candidates: List[Path] = []
    if configured:
        p = Path(configured)
        if p.is_absolute():
            candidates.append(p)
        else:
            candidates.extend([project_root / p, backend_root / p, Path.cwd() / p])
    for root in (project_root, backend_root):
        for venv in (".venv", "venv"):
            for sub in ("Scripts", "bin"):
                candidates.extend(root / venv / sub / n for n in names)

    for cand in candidates:
        if cand.is_file():
            return str(cand.resolve())
    for n in names:
        found = shutil.which(n)
        if found:
            return found
    return configured or "ffmpeg"


class Mp3Transcoder:
    """Convert audio bytes of any container ffmpeg understands into MP3."""

    def __init__(self, *, ffmpeg_bin: Optional[str] = None, bitrate: str = "192k", timeout: float = 60.0) -> None:
        self.ffmpeg = resolve_ffmpeg(ffmpeg_bin)
        self.bitrate = bitrate
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings) -> "Mp3Transcoder":
        return cls(ffmpeg_bin=settings.ffmpeg_bin, bitrate=settings.mp3_bitrate, timeout=settings.transcode_timeout)

    def build_command(self) -> List[str]:
        return [
            self.ffmpeg,
            "-hide_banner",
            "-loglevel", "error",
            "-i", "pipe:0",
            "-vn",
            "-map_metadata", "-1",
            "-c:a", "libmp3lame",
            "-b:a", self.bitrate,
            "-f", "mp3",
            "pipe:1",
        ]

    async def transcode(self, content: bytes) -> bytes:
        argv = self.build_command()
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise TranscodeError(f"Executable not found: {e.filename}. Check FFMPEG_BIN or PATH.") from e

        try:
            out, err = await asyncio.wait_for(proc.communicate(content), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise TranscodeError(f"MP3 conversion timed out after {self.timeout:g}s") from None
        finally:
            if proc.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    proc.kill()
                with contextlib.suppress(Exception):
                    await proc.wait()

        if proc.returncode != 0:
            stderr = err.decode("utf-8", "replace").strip()
            tail = stderr.splitlines()[-1] if stderr else f"exit code {proc.returncode}"
            raise TranscodeError(f"MP3 conversion failed: {tail}", details={"returncode": proc.returncode})
        if not out:
            raise TranscodeError("MP3 conversion produced no output")
        return out

    async def to_mp3(self, result: AcquisitionResult) -> AcquisitionResult:
        """Return ``result`` with MP3 content; already-MP3 results pass through untouched."""
        if result.mime_type == MP3_MIME:
            return result
        mp3 = await self.transcode(result.content)
        logger.info(
            "Converted %d bytes of %s to %d bytes of MP3 (%s)", result.size_bytes, result.mime_type, len(mp3), self.bitrate
        )
        return dataclasses.replace(result, content=mp3, mime_type=MP3_MIME)
