"""
Exception classes for the audio fetcher.

Hierarchy:
    FetcherError (base)
        ConfigError - invalid settings (unknown strategy names, bad budgets)
        StrategyError - one acquisition method failed; recovered by the orchestrator
            NotFoundError - the content is unavailable through that method
        AcquisitionError - every strategy failed; the only error surfaced to callers
        TranscodeError - audio was acquired but could not be converted to the requested format
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

if TYPE_CHECKING:  # pragma: no cover
    from ..utils.models import StrategyFailure


class FetcherError(Exception):
    """
    Base exception for all fetcher errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context (content id, url, status code).
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class ConfigError(FetcherError):
    """Raised at startup when settings cannot produce a working orchestrator."""


class StrategyError(FetcherError):
    """
    Raised by a strategy when it cannot produce audio.

    Covers network errors, non-2xx responses, missing formats, parse failures,
    stalled streams and results below the size floor. The orchestrator records
    it and moves on to the next strategy; it is never returned to an HTTP client.
    """

    def __init__(self, message: str, strategy: str = "", details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, details)
        self.strategy = strategy


class NotFoundError(StrategyError):
    """The content id is unknown or unavailable through this strategy."""


class AcquisitionError(FetcherError):
    """
    Raised when every strategy failed for a content id.

    ``attempts`` holds one StrategyFailure per strategy, in attempt order.
    """

    def __init__(self, content_id: str, attempts: Sequence["StrategyFailure"]) -> None:
        self.content_id = content_id
        self.attempts: List["StrategyFailure"] = list(attempts)
        summary = "; ".join(f"{a.strategy}: {a.message}" for a in self.attempts) or "no strategies available"
        super().__init__(
            f"Failed to acquire audio for {content_id}: {summary}",
            details={"content_id": content_id},
        )


class TranscodeError(FetcherError):
    """ffmpeg could not convert acquired audio (missing executable, bad input, timeout)."""
