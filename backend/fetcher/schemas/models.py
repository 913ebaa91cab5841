from __future__ import annotations

from typing import List, Optional
from pydantic import BaseModel


class StrategyFailureRead(BaseModel):
    strategy: str
    message: str
    error_type: str
    duration_ms: float
    skipped: bool = False


class AcquisitionErrorRead(BaseModel):
    error: str
    details: List[StrategyFailureRead]
    video_id: str


class StrategyStatsRead(BaseModel):
    name: str
    successes: int
    failures: int
    avg_latency_ms: float
    score: float
    demoted: bool


class DiagnosticsRead(BaseModel):
    strategies: List[StrategyStatsRead]
    cache_entries: int
    cache_ttl_seconds: float
    in_flight: int
    capacity: int


class LogsRead(BaseModel):
    lines: List[str]
    count: int
    max_lines: int


class CacheEvictRead(BaseModel):
    video_id: str
    evicted: bool


class YouTubeSearchResultRead(BaseModel):
    external_id: str
    title: str
    url: str
    channel: Optional[str] = None
    duration_sec: Optional[int] = None
    score: float
    good_match: bool
    thumbnail_url: Optional[str] = None


class YouTubeSearchRead(BaseModel):
    artist: str
    title: str
    results: List[YouTubeSearchResultRead]
    best_match: Optional[YouTubeSearchResultRead] = None
