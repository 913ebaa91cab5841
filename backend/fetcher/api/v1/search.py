from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from ...core.config import settings
from ...schemas.models import YouTubeSearchRead, YouTubeSearchResultRead
from ...utils.youtube_search import ScoredResult, pick_best_match, search_youtube, split_query, thumbnail_url

router = APIRouter(prefix="/youtube", tags=["search"])


def _to_read(r: ScoredResult) -> YouTubeSearchResultRead:
    return YouTubeSearchResultRead(
        external_id=r.external_id,
        title=r.title,
        url=r.url,
        channel=r.channel,
        duration_sec=r.duration_sec,
        score=r.score,
        good_match=r.good_match,
        thumbnail_url=thumbnail_url(r.external_id),
    )


@router.get("/search", response_model=YouTubeSearchRead)
def youtube_search(
    artist: Optional[str] = Query(None, max_length=300),
    title: Optional[str] = Query(None, max_length=300),
    q: Optional[str] = Query(None, max_length=300, description="Free-form query, 'Artist - Title' is split"),
    limit: Optional[int] = Query(None, ge=1, le=25),
):
    """Search YouTube for an artist/title pair and return scored candidates, best first.

    ``best_match`` is the highest-scored good match (track title plus artist
    or an official-upload marker in the video title), else the top result.
    """
    if q and not title:
        artist, title = split_query(q)
    if not title:
        raise HTTPException(status_code=400, detail="Query parameter is required (title or q)")
    artist = artist or ""
    results = search_youtube(artist, title, limit=limit or settings.youtube_search_limit)
    best = pick_best_match(results)
    return YouTubeSearchRead(
        artist=artist,
        title=title,
        results=[_to_read(r) for r in results],
        best_match=_to_read(best) if best else None,
    )
