"""Rolling success/failure/latency counters per acquisition strategy.

Scoring (higher is tried first):

    score = 0.7 * success_rate + 0.3 * normalized_speed
    success_rate = successes / (successes + failures)   (strategy prior when no data)
    normalized_speed = 10000 / avg_latency_ms           (0 when no latency sample)

A strategy whose failures exceed its successes by more than the demotion
threshold sorts below every strategy that is not in that state, whatever its
score. Ties keep registration order.
"""
from __future__ import annotations

import threading
from dataclasses import replace
from typing import Dict, List, Optional

from .models import StrategyStats

SUCCESS_WEIGHT = 0.7
SPEED_WEIGHT = 0.3
# EWMA weight of the newest latency sample
LATENCY_ALPHA = 0.3
DEFAULT_PRIOR = 0.5


class StrategyPerformanceTracker:
    def __init__(self, demotion_threshold: int = 2) -> None:
        self.demotion_threshold = demotion_threshold
        self._stats: Dict[str, StrategyStats] = {}
        self._priors: Dict[str, float] = {}
        self._order: List[str] = []
        self._lock = threading.Lock()

    def register(self, name: str, prior: float = DEFAULT_PRIOR) -> None:
        with self._lock:
            if name not in self._stats:
                self._stats[name] = StrategyStats()
                self._order.append(name)
            self._priors[name] = prior

    def _ensure(self, name: str) -> StrategyStats:
        stats = self._stats.get(name)
        if stats is None:
            stats = StrategyStats()
            self._stats[name] = stats
            self._order.append(name)
        return stats

    def record_success(self, name: str, latency_ms: float) -> None:
        with self._lock:
            stats = self._ensure(name)
            stats.successes += 1
            if stats.avg_latency_ms <= 0:
                stats.avg_latency_ms = float(latency_ms)
            else:
                stats.avg_latency_ms = LATENCY_ALPHA * latency_ms + (1 - LATENCY_ALPHA) * stats.avg_latency_ms

    def record_failure(self, name: str) -> None:
        with self._lock:
            self._ensure(name).failures += 1

    def stats(self, name: str) -> Optional[StrategyStats]:
        """Return a copy of the counters for ``name``."""
        with self._lock:
            stats = self._stats.get(name)
            return replace(stats) if stats else None

    def snapshot(self) -> Dict[str, StrategyStats]:
        with self._lock:
            return {name: replace(self._stats[name]) for name in self._order}

    def _score(self, name: str) -> float:
        stats = self._stats[name]
        if stats.total == 0:
            success_rate = self._priors.get(name, DEFAULT_PRIOR)
        else:
            success_rate = stats.successes / stats.total
        speed = 10000.0 / stats.avg_latency_ms if stats.avg_latency_ms > 0 else 0.0
        return SUCCESS_WEIGHT * success_rate + SPEED_WEIGHT * speed

    def _is_demoted(self, name: str) -> bool:
        stats = self._stats[name]
        return stats.failures - stats.successes > self.demotion_threshold

    def score(self, name: str) -> float:
        with self._lock:
            if name not in self._stats:
                return SUCCESS_WEIGHT * self._priors.get(name, DEFAULT_PRIOR)
            return self._score(name)

    def is_demoted(self, name: str) -> bool:
        with self._lock:
            return name in self._stats and self._is_demoted(name)

    def ordered_strategies(self) -> List[str]:
        """Strategy names, best first."""
        with self._lock:
            ranked = [
                (self._is_demoted(name), -self._score(name), idx, name)
                for idx, name in enumerate(self._order)
            ]
        ranked.sort()
        return [name for _, _, _, name in ranked]
