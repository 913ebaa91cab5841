"""YouTube search helpers for mapping an artist/title pair to video ids.

Searches go through the local yt-dlp executable (default) or the optional
youtube-search-python package. Query variants are tried from most to least
specific and the first variant that returns anything wins.

We avoid network calls in tests by honoring the YOUTUBE_SEARCH_FAKE=1
environment variable which returns canned results.
"""
from __future__ import annotations

import concurrent.futures
import json
import logging
import os
import re
import shlex
import subprocess
from dataclasses import dataclass
from typing import List, Optional

from .strategies import resolve_yt_dlp_command

logger = logging.getLogger(__name__)

try:  # Optional youtube-search-python provider
    from youtubesearchpython import VideosSearch  # type: ignore
except ImportError:  # pragma: no cover
    VideosSearch = None  # type: ignore

OFFICIAL_MARKERS = ("official", "audio", "music video", "lyrics")


@dataclass(frozen=True)
class YouTubeResult:
    external_id: str
    title: str
    url: str
    channel: Optional[str]
    duration_sec: Optional[int]


@dataclass(frozen=True)
class ScoredResult(YouTubeResult):
    score: float = 0.0
    good_match: bool = False


def _search_timeout() -> float:
    try:
        return float(os.environ.get("YOUTUBE_SEARCH_TIMEOUT", "8"))
    except ValueError:
        return 8.0


def _seconds_from_duration_str(s: Optional[str]) -> Optional[int]:
    """Parse 'HH:MM:SS' or 'MM:SS' duration strings to seconds."""
    if not s:
        return None
    try:
        parts = [int(p) for p in s.split(":")]
    except ValueError:
        return None
    seconds = 0
    for p in parts[-3:]:
        seconds = seconds * 60 + p
    return seconds


def _run_yts_python_search(query: str, limit: int = 10) -> List[YouTubeResult]:
    """Perform a YouTube search using youtube-search-python."""
    if VideosSearch is None:
        logger.warning("youtube-search-python is not installed. Falling back to yt-dlp.")
        return _run_yt_dlp_search(query, limit=limit)
    timeout_sec = _search_timeout()

    def _do_search():
        return VideosSearch(query, limit=limit).result()

    try:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as ex:
            data = ex.submit(_do_search).result(timeout=timeout_sec)
    except concurrent.futures.TimeoutError:
        logger.warning("youtube-search-python timed out after %.1f seconds for query: %s", timeout_sec, query)
        return []
    except Exception as e:
        logger.warning("youtube-search-python failed for query '%s': %s", query, e)
        return []

    results: List[YouTubeResult] = []
    for it in (data or {}).get("result") or []:
        vid = it.get("id") or ""
        title = it.get("title") or ""
        if not vid or not title:
            continue
        ch_obj = it.get("channel")
        channel = ch_obj.get("name") if isinstance(ch_obj, dict) else ch_obj
        results.append(
            YouTubeResult(
                external_id=vid,
                title=title,
                url=it.get("link") or f"https://www.youtube.com/watch?v={vid}",
                channel=channel,
                duration_sec=_seconds_from_duration_str(it.get("duration")),
            )
        )
    return results


def _run_yt_dlp_search(query: str, limit: int = 10) -> List[YouTubeResult]:
    """Invoke yt-dlp with ``ytsearchN:`` and ``--dump-json`` (one JSON object per line)."""
    timeout_sec = _search_timeout()
    cmd = resolve_yt_dlp_command(os.environ.get("YT_DLP_BIN")) + [
        f"ytsearch{limit}:{query}",
        "--skip-download",
        "--dump-json",
        "--no-warnings",
    ]
    extra_args = os.environ.get("YT_DLP_EXTRA_ARGS", "").strip()
    if extra_args:
        cmd.extend(shlex.split(extra_args))
    try:
        proc = subprocess.run(cmd, capture_output=True, text=True, check=True, timeout=timeout_sec)
    except FileNotFoundError:
        logger.warning("yt-dlp binary not found. Set YT_DLP_BIN or install yt-dlp.")
        return []
    except subprocess.TimeoutExpired:
        logger.warning("yt-dlp search timed out after %.1f seconds for query: %s", timeout_sec, query)
        return []
    except subprocess.CalledProcessError as e:
        logger.warning("yt-dlp search failed with code %s. stderr: %s", e.returncode, (e.stderr or "").strip()[:400])
        return []

    results: List[YouTubeResult] = []
    for line in proc.stdout.splitlines():
        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            continue
        external_id = data.get("id") or data.get("display_id") or ""
        if not external_id:
            continue
        results.append(
            YouTubeResult(
                external_id=external_id,
                title=data.get("title") or "",
                url=data.get("webpage_url") or f"https://www.youtube.com/watch?v={external_id}",
                channel=data.get("channel") or data.get("uploader"),
                duration_sec=data.get("duration"),
            )
        )
    return results


def fake_results(query: str) -> List[YouTubeResult]:
    base = re.sub(r"[^a-zA-Z0-9 -]+", "", query).strip()
    return [
        YouTubeResult(
            external_id="fakeVideo01",
            title=f"{base} (Official Audio)",
            url="https://youtu.be/fakeVideo01",
            channel="Channel A",
            duration_sec=180,
        ),
        YouTubeResult(
            external_id="fakeVideo02",
            title=f"{base} (Live)",
            url="https://youtu.be/fakeVideo02",
            channel="Live Channel",
            duration_sec=240,
        ),
        YouTubeResult(
            external_id="fakeVideo03",
            title="Random Other Upload",
            url="https://youtu.be/fakeVideo03",
            channel="Other",
            duration_sec=175,
        ),
    ]


def _provider_search(query: str, limit: int) -> List[YouTubeResult]:
    if os.environ.get("YOUTUBE_SEARCH_FAKE") == "1":
        return fake_results(query)[:limit]
    provider = (os.environ.get("YOUTUBE_SEARCH_PROVIDER") or "yt_dlp").lower()
    if provider == "yts_python":
        return _run_yts_python_search(query, limit=limit)
    return _run_yt_dlp_search(query, limit=limit)


def build_search_queries(artist: str, title: str) -> List[str]:
    """Query variants, most specific first, de-duplicated."""
    artist = (artist or "").strip()
    title = (title or "").strip()
    if not artist:
        candidates = [title]
    else:
        candidates = [
            f"{artist} - {title} official audio",
            f"{artist} {title} audio",
            f"{title} {artist}",
            title,
        ]
    out: List[str] = []
    for q in candidates:
        if q and q.lower() not in (o.lower() for o in out):
            out.append(q)
    return out


def is_good_match(video_title: str, title: str, artist: str) -> bool:
    """Title contains the track and either the artist or an official-upload marker."""
    vt = (video_title or "").lower()
    has_track = bool(title) and title.lower() in vt
    has_artist = bool(artist) and artist.lower() in vt
    is_official = any(m in vt for m in OFFICIAL_MARKERS)
    return has_track and (has_artist or is_official)


def score_result(result: YouTubeResult, title: str, artist: str) -> ScoredResult:
    vt = result.title.lower()
    channel = (result.channel or "").lower()
    score = 0.0
    if title and title.lower() in vt:
        score += 0.5
    if artist and (artist.lower() in vt or artist.lower() in channel):
        score += 0.3
    if any(m in vt for m in OFFICIAL_MARKERS):
        score += 0.2
    return ScoredResult(
        external_id=result.external_id,
        title=result.title,
        url=result.url,
        channel=result.channel,
        duration_sec=result.duration_sec,
        score=round(score, 3),
        good_match=is_good_match(result.title, title, artist),
    )


def split_query(q: str) -> tuple[str, str]:
    """Split a free-form "Artist - Title" query into (artist, title)."""
    q = re.sub(r"\s+", " ", q or "").strip()
    if " - " in q:
        artist, title = q.split(" - ", 1)
        return artist.strip(), title.strip()
    return "", q


def search_youtube(artist: str, title: str, limit: int = 8) -> List[ScoredResult]:
    """Run query variants until one returns results; return them scored, best first.

    Ties keep provider order.
    """
    for query in build_search_queries(artist, title):
        results = _provider_search(query, limit)
        logger.info("YouTube search query=%r results=%d", query, len(results))
        if results:
            scored = [score_result(r, title, artist) for r in results[:limit]]
            return sorted(scored, key=lambda r: -r.score)
    return []


def pick_best_match(results: List[ScoredResult]) -> Optional[ScoredResult]:
    """First good match in the given order, else the first result, else None."""
    for r in results:
        if r.good_match:
            return r
    return results[0] if results else None


def thumbnail_url(external_id: str) -> str:
    return f"https://i.ytimg.com/vi/{external_id}/mqdefault.jpg"
