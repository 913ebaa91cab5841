from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel


# Load environment variables from .env files without overriding existing env vars.
# Priority: backend/.env first (co-located with the package), then project-root/.env as fallback.
_backend_env = Path(__file__).resolve().parents[2] / ".env"
_root_env = Path(__file__).resolve().parents[3] / ".env"
load_dotenv(dotenv_path=str(_backend_env), override=False)
load_dotenv(dotenv_path=str(_root_env), override=False)

APP_NAME = "Audio Fetcher API"

# Order matters: this is the declaration order used to break score ties.
DEFAULT_STRATEGIES = ("direct", "streaming", "full_info", "external_api")


def _load_version() -> str:
    """Read the semantic version from the repository VERSION file."""
    version_file = Path(__file__).resolve().parents[3] / "VERSION"
    try:
        return version_file.read_text(encoding="utf-8").strip()
    except FileNotFoundError:  # pragma: no cover - only when installed without the VERSION file
        return "0.0.0"


def _split_csv(value: str | None) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, default))
    except (TypeError, ValueError):
        return default


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except (TypeError, ValueError):
        return default


class Settings(BaseModel):
    # Name and version are sourced from code, not environment
    app_name: str = APP_NAME
    version: str = _load_version()

    # CORS
    cors_origins: List[str] = _split_csv(os.environ.get("CORS_ORIGINS")) or [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Acquisition budgets (seconds)
    attempt_timeout: float = _env_float("ACQUIRE_ATTEMPT_TIMEOUT", 30.0)
    stall_timeout: float = _env_float("ACQUIRE_STALL_TIMEOUT", 5.0)
    # Time allowed for yt-dlp to start and write its first byte
    stream_start_timeout: float = _env_float("ACQUIRE_STREAM_START_TIMEOUT", 12.0)
    acquisition_timeout: float = _env_float("ACQUIRE_TOTAL_TIMEOUT", 45.0)
    cache_fetch_timeout: float = _env_float("ACQUIRE_CACHE_FETCH_TIMEOUT", 30.0)

    # Anything smaller is treated as an error page rather than audio
    min_audio_bytes: int = _env_int("MIN_AUDIO_BYTES", 1000)

    # Format cache
    format_cache_ttl_seconds: float = _env_float("FORMAT_CACHE_TTL_SECONDS", 6 * 60 * 60)
    format_cache_max_entries: int = _env_int("FORMAT_CACHE_MAX_ENTRIES", 1000)

    # Strategy ordering
    demotion_threshold: int = _env_int("STRATEGY_DEMOTION_THRESHOLD", 2)
    strategies: List[str] = _split_csv(os.environ.get("ACQUIRE_STRATEGIES")) or list(DEFAULT_STRATEGIES)

    # Admission control
    max_concurrent_acquisitions: int = _env_int("MAX_CONCURRENT_ACQUISITIONS", 5)
    retry_after_seconds: int = _env_int("ACQUIRE_RETRY_AFTER_SECONDS", 10)

    # yt-dlp
    yt_dlp_bin: Optional[str] = os.environ.get("YT_DLP_BIN") or None
    yt_dlp_extra_args: str = os.environ.get("YT_DLP_EXTRA_ARGS", "")

    # ffmpeg, used for ?format=mp3
    ffmpeg_bin: Optional[str] = os.environ.get("FFMPEG_BIN") or None
    mp3_bitrate: str = os.environ.get("MP3_BITRATE", "192k")
    transcode_timeout: float = _env_float("TRANSCODE_TIMEOUT", 60.0)

    # Piped-compatible API instances for the external API strategy
    piped_instances: List[str] = _split_csv(os.environ.get("PIPED_INSTANCES")) or [
        "https://pipedapi.kavin.rocks",
        "https://pipedapi.adminforge.de",
    ]

    # YouTube search
    youtube_search_limit: int = _env_int("YOUTUBE_SEARCH_LIMIT", 8)
    # When set (env only) YOUTUBE_SEARCH_FAKE=1 forces fake results (handled in utils.youtube_search)


settings = Settings()
