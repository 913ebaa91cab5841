"""Adaptive multi-strategy audio acquisition.

``AudioAcquisitionOrchestrator.acquire(content_id)``:

1. If the format cache holds an unexpired direct URL for the id, fetch it
   first. Success returns immediately; any failure evicts the entry and the
   normal strategy loop runs.
2. Order the registered strategies with the performance tracker
   (success rate + speed score, persistently failing strategies demoted).
3. Try them one at a time, each under ``min(attempt_timeout, remaining budget)``.
   The first success is recorded, its direct URL cached, and returned.
   Failures (including timeouts) are recorded and the loop moves on.
4. When nothing succeeded, raise AcquisitionError with one entry per strategy,
   in attempt order.

The whole call is bounded by ``acquisition_timeout``. Strategies that never got
their turn because the budget ran out are reported as skipped and leave their
counters untouched.
"""
from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Any, Callable, Dict, List, Optional, Sequence

import httpx

from ..core.errors import AcquisitionError, StrategyError
from .format_cache import FormatCache
from .media_fetch import fetch_bytes
from .models import AcquisitionResult, StrategyFailure
from .mime import looks_like_html, normalize_mime, sniff_audio_mime
from .strategies import Strategy, build_strategies
from .strategy_tracker import StrategyPerformanceTracker

logger = logging.getLogger(__name__)

CACHE_SOURCE = "cache"


class AudioAcquisitionOrchestrator:
    def __init__(
        self,
        strategies: Sequence[Strategy],
        *,
        cache: Optional[FormatCache] = None,
        tracker: Optional[StrategyPerformanceTracker] = None,
        attempt_timeout: float = 30.0,
        acquisition_timeout: float = 45.0,
        cache_fetch_timeout: float = 30.0,
        min_bytes: int = 1000,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not strategies:
            raise ValueError("At least one strategy is required")
        self._strategies: Dict[str, Strategy] = {}
        for strategy in strategies:
            if strategy.name in self._strategies:
                raise ValueError(f"Duplicate strategy name: {strategy.name}")
            self._strategies[strategy.name] = strategy
        self.cache = cache if cache is not None else FormatCache()
        self.tracker = tracker if tracker is not None else StrategyPerformanceTracker()
        for strategy in strategies:
            self.tracker.register(strategy.name, strategy.prior)
        self.attempt_timeout = attempt_timeout
        self.acquisition_timeout = acquisition_timeout
        self.cache_fetch_timeout = cache_fetch_timeout
        self.min_bytes = min_bytes
        self.http_client = http_client
        self._clock = clock

    @classmethod
    def from_settings(cls, settings, http_client: Optional[httpx.AsyncClient] = None) -> "AudioAcquisitionOrchestrator":
        return cls(
            build_strategies(settings, http_client=http_client),
            cache=FormatCache(
                ttl_seconds=settings.format_cache_ttl_seconds,
                max_entries=settings.format_cache_max_entries,
            ),
            tracker=StrategyPerformanceTracker(demotion_threshold=settings.demotion_threshold),
            attempt_timeout=settings.attempt_timeout,
            acquisition_timeout=settings.acquisition_timeout,
            cache_fetch_timeout=settings.cache_fetch_timeout,
            min_bytes=settings.min_audio_bytes,
            http_client=http_client,
        )

    @property
    def strategy_names(self) -> List[str]:
        return list(self._strategies)

    def ordered_strategies(self) -> List[Strategy]:
        return [self._strategies[name] for name in self.tracker.ordered_strategies() if name in self._strategies]

    def diagnostics(self) -> Dict[str, Any]:
        """Current strategy order with per-strategy counters, score and demotion state."""
        snapshot = self.tracker.snapshot()
        strategies = []
        for name in self.tracker.ordered_strategies():
            stats = snapshot[name]
            strategies.append(
                {
                    "name": name,
                    "successes": stats.successes,
                    "failures": stats.failures,
                    "avg_latency_ms": round(stats.avg_latency_ms, 1),
                    "score": round(self.tracker.score(name), 4),
                    "demoted": self.tracker.is_demoted(name),
                }
            )
        return {
            "strategies": strategies,
            "cache_entries": len(self.cache),
            "cache_ttl_seconds": self.cache.ttl_seconds,
        }

    async def acquire(self, content_id: str) -> AcquisitionResult:
        trace = f"{content_id[:6]}-{uuid.uuid4().hex[:6]}"
        started = self._clock()
        deadline = started + self.acquisition_timeout
        logger.info("[%s] Starting acquisition for %s", trace, content_id)

        cached = await self._try_cached(content_id, deadline, trace)
        if cached is not None:
            return cached

        order = self.ordered_strategies()
        logger.info("[%s] Strategy order: %s", trace, ", ".join(s.name for s in order))

        failures: List[StrategyFailure] = []
        for strategy in order:
            remaining = deadline - self._clock()
            if remaining <= 0:
                logger.warning("[%s] Acquisition budget exhausted before %s", trace, strategy.name)
                failures.append(
                    StrategyFailure(
                        strategy=strategy.name,
                        message="skipped: acquisition deadline exceeded",
                        error_type="DeadlineExceeded",
                        skipped=True,
                    )
                )
                continue

            budget = min(self.attempt_timeout, remaining)
            attempt_started = self._clock()
            try:
                result = await asyncio.wait_for(strategy.attempt(content_id), timeout=budget)
            except asyncio.TimeoutError:
                failure = self._record_failure(
                    strategy.name,
                    f"timed out after {budget:g}s",
                    "TimeoutError",
                    attempt_started,
                )
            except StrategyError as e:
                failure = self._record_failure(strategy.name, e.message, type(e).__name__, attempt_started)
            except Exception as e:  # strategy bug or unexpected library error; still just one failed method
                logger.exception("[%s] %s raised unexpectedly", trace, strategy.name)
                failure = self._record_failure(strategy.name, str(e) or type(e).__name__, type(e).__name__, attempt_started)
            else:
                if result.size_bytes < self.min_bytes:
                    failure = self._record_failure(
                        strategy.name,
                        f"Buffer too small ({result.size_bytes} bytes)",
                        "StrategyError",
                        attempt_started,
                    )
                else:
                    elapsed_ms = (self._clock() - attempt_started) * 1000
                    self.tracker.record_success(strategy.name, elapsed_ms)
                    if result.direct_url:
                        self.cache.put(content_id, result.direct_url, result.mime_type)
                    logger.info(
                        "[%s] %s succeeded in %.0fms, size=%d bytes, type=%s",
                        trace,
                        strategy.name,
                        elapsed_ms,
                        result.size_bytes,
                        result.mime_type,
                    )
                    return result
            logger.warning("[%s] %s failed after %.0fms: %s", trace, failure.strategy, failure.duration_ms, failure.message)
            failures.append(failure)

        total_ms = (self._clock() - started) * 1000
        error = AcquisitionError(content_id, failures)
        logger.error("[%s] All strategies failed after %.0fms. %s", trace, total_ms, error.message)
        raise error

    def _record_failure(self, name: str, message: str, error_type: str, attempt_started: float) -> StrategyFailure:
        self.tracker.record_failure(name)
        return StrategyFailure(
            strategy=name,
            message=message,
            error_type=error_type,
            duration_ms=(self._clock() - attempt_started) * 1000,
        )

    async def _try_cached(self, content_id: str, deadline: float, trace: str) -> Optional[AcquisitionResult]:
        entry = self.cache.get(content_id)
        if entry is None:
            return None
        budget = min(self.cache_fetch_timeout, deadline - self._clock())
        if budget <= 0:
            return None
        logger.info("[%s] Using cached format, age=%.0fs", trace, time.time() - entry.obtained_at)
        try:
            body, content_type = await fetch_bytes(entry.direct_url, timeout=budget, client=self.http_client)
            if content_type and normalize_mime(content_type).startswith("text/"):
                raise StrategyError(f"Cached URL returned {normalize_mime(content_type)}")
            if looks_like_html(body[:512]) or len(body) < self.min_bytes:
                raise StrategyError(f"Cached URL returned an unusable payload ({len(body)} bytes)")
        except StrategyError as e:
            self.cache.evict(content_id)
            logger.warning("[%s] Cached format failed (%s); entry evicted", trace, e)
            return None
        except Exception:
            self.cache.evict(content_id)
            logger.exception("[%s] Cached format raised unexpectedly; entry evicted", trace)
            return None
        mime = sniff_audio_mime(body[:16]) or entry.mime_type
        logger.info("[%s] Cached format download complete: %d bytes", trace, len(body))
        return AcquisitionResult(content=body, mime_type=mime, strategy=CACHE_SOURCE, direct_url=entry.direct_url)
