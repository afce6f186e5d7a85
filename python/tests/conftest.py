"""
conftest.py — Shared fixtures: fake clock, in-memory ledger, fast queue.
"""

import pytest
from glyph_sdk.config import RetrievalConfig
from glyph_sdk.ledger import MemoryLedger
from glyph_sdk.retrieval import RateLimitedQueue


class FakeClock:
    """Monotonic clock whose sleep advances time instantly."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ledger():
    return MemoryLedger()


@pytest.fixture
def queue(clock):
    return RateLimitedQueue(RetrievalConfig(), sleep=clock.sleep, clock=clock)


@pytest.fixture
def story_text():
    """Deterministic multi-paragraph prose, several chunks long."""
    sentences = [
        "The lighthouse keeper counted ships until the fog rolled in.",
        "Nobody on the island remembered when the lamp was first lit!",
        "Was it the storm of the century, or only the loudest one?",
        "Gulls argued over the harbour while the tide went slowly out.",
        "She wrote every name in a ledger that no one else could read.",
    ]
    paragraphs = []
    for p in range(12):
        body = " ".join(sentences[(p + i) % len(sentences)] + f" ({p}.{i})" for i in range(5))
        paragraphs.append(body)
    return "\n\n".join(paragraphs)


@pytest.fixture
def genesis_hashes():
    from glyph_sdk.hashing import hash_content
    return hash_content("user genesis"), hash_content("platform genesis")
