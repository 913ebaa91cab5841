from pathlib import Path
import asyncio
import os
import sys
from typing import List, Optional, Sequence, Union

import pytest

# Ensure project root is importable for tests
ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Never hit YouTube from tests
os.environ.setdefault("YOUTUBE_SEARCH_FAKE", "1")

from backend.fetcher.utils.models import AcquisitionResult  # noqa: E402
from backend.fetcher.utils.strategies import Strategy  # noqa: E402

# ftyp box header followed by padding: sniffs as audio/mp4
AUDIO_BYTES = b"\x00\x00\x00\x18ftypM4A \x00\x00\x02\x00" + b"\x00" * 4096

Outcome = Union[bytes, BaseException]


class FakeStrategy(Strategy):
    """Scripted strategy: each call consumes the next outcome (the last one repeats)."""

    def __init__(
        self,
        name: str,
        outcomes: Union[Outcome, Sequence[Outcome]] = AUDIO_BYTES,
        *,
        prior: float = 0.5,
        delay: float = 0.0,
        direct_url: Optional[str] = None,
        mime_type: str = "audio/mp4",
        clock=None,
        advance: float = 0.0,
    ) -> None:
        super().__init__()
        self.name = name
        self.prior = prior
        self.outcomes: List[Outcome] = list(outcomes) if isinstance(outcomes, (list, tuple)) else [outcomes]
        self.delay = delay
        self.direct_url = direct_url
        self.mime_type = mime_type
        self.clock = clock
        self.advance = advance
        self.calls: List[str] = []

    async def attempt(self, content_id: str) -> AcquisitionResult:
        self.calls.append(content_id)
        if self.clock is not None and self.advance:
            self.clock.advance(self.advance)
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.outcomes[min(len(self.calls), len(self.outcomes)) - 1]
        if isinstance(outcome, BaseException):
            raise outcome
        return AcquisitionResult(
            content=outcome,
            mime_type=self.mime_type,
            strategy=self.name,
            direct_url=self.direct_url,
        )


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def audio_bytes() -> bytes:
    return AUDIO_BYTES


@pytest.fixture
def fake_strategy():
    return FakeStrategy


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()
