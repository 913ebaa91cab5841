from __future__ import annotations

from typing import Optional
import mimetypes

_EXT_TO_MIME = {
    "m4a": "audio/mp4",
    "mp4": "audio/mp4",
    "aac": "audio/mp4",
    "webm": "audio/webm",
    "weba": "audio/webm",
    "opus": "audio/ogg",
    "ogg": "audio/ogg",
    "mp3": "audio/mpeg",
    "flac": "audio/flac",
    "wav": "audio/wav",
}

_MIME_TO_EXT = {
    "audio/mp4": "m4a",
    "audio/webm": "webm",
    "audio/ogg": "ogg",
    "audio/mpeg": "mp3",
    "audio/flac": "flac",
    "audio/wav": "wav",
}

DEFAULT_AUDIO_MIME = "audio/mp4"


def normalize_mime(raw: Optional[str], default: str = DEFAULT_AUDIO_MIME) -> str:
    """
    Strip parameters from a MIME type ("audio/webm; codecs=\"opus\"" -> "audio/webm").
    Video container types carrying audio-only formats are mapped to their audio counterpart.
    """
    if not raw:
        return default
    base = raw.split(";", 1)[0].strip().lower()
    if not base:
        return default
    if base == "video/mp4":
        return "audio/mp4"
    if base == "video/webm":
        return "audio/webm"
    return base


def mime_from_extension(ext: Optional[str], default: str = DEFAULT_AUDIO_MIME) -> str:
    """
    Return a suitable audio mime for common container extensions.
    Falls back to mimetypes.guess_type.
    """
    if not ext:
        return default
    key = ext.lower().lstrip(".")
    if key in _EXT_TO_MIME:
        return _EXT_TO_MIME[key]
    mime, _ = mimetypes.guess_type(f"file.{key}")
    return mime or default


def extension_for_mime(mime: Optional[str]) -> str:
    return _MIME_TO_EXT.get(normalize_mime(mime), "m4a")


def sniff_audio_mime(head: bytes) -> Optional[str]:
    """Identify the container from its leading bytes; None when unrecognised."""
    if len(head) >= 8 and head[4:8] == b"ftyp":
        return "audio/mp4"
    if head.startswith(b"\x1a\x45\xdf\xa3"):
        return "audio/webm"
    if head.startswith(b"OggS"):
        return "audio/ogg"
    if head.startswith(b"fLaC"):
        return "audio/flac"
    if head.startswith(b"RIFF") and head[8:12] == b"WAVE":
        return "audio/wav"
    if head.startswith(b"ID3") or (len(head) >= 2 and head[0] == 0xFF and (head[1] & 0xE0) == 0xE0):
        return "audio/mpeg"
    return None


def looks_like_html(head: bytes) -> bool:
    """True for payloads that are an HTML/JSON error page rather than media."""
    lead = head[:512].lstrip().lower()
    return lead.startswith((b"<!doctype", b"<html", b"<?xml", b"{\"error", b"<head"))
