from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class AcquisitionResult:
    content: bytes
    mime_type: str
    strategy: str = ""
    # Time-limited media URL the bytes came from, when the strategy resolved one
    direct_url: Optional[str] = None

    @property
    def size_bytes(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class CachedFormat:
    content_id: str
    direct_url: str
    mime_type: str
    obtained_at: float
    expires_at: float


@dataclass
class StrategyStats:
    successes: int = 0
    failures: int = 0
    avg_latency_ms: float = 0.0

    @property
    def total(self) -> int:
        return self.successes + self.failures


@dataclass(frozen=True)
class StrategyFailure:
    strategy: str
    message: str
    error_type: str = "StrategyError"
    duration_ms: float = 0.0
    # True when the acquisition deadline ran out before this strategy was invoked
    skipped: bool = False
