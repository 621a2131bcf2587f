"""
Shared fixtures for the vibe_station test suite.

Tracks are created old (well outside the recency window) and with jitter
disabled where a test needs exact scores.
"""

import random
from datetime import datetime, timezone

import pytest

from vibe_station.config import StationConfig
from vibe_station.models import Track
from vibe_station.vocabulary import Vocabulary

NOW = datetime(2025, 6, 1, tzinfo=timezone.utc)
OLD = datetime(2020, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def make_track():
    """Factory: make_track("t1", tags=["Rock"], artist="a1", ...)."""

    def _make(track_id, tags=(), artist=None, title=None, plays=500, views=0,
              created_at=OLD, lyrics=None):
        return Track(
            id=track_id,
            title=title if title is not None else f"Song {track_id}",
            artist_address=artist,
            tags=tuple(tags),
            lyrics_text=lyrics,
            plays=plays,
            views=views,
            created_at=created_at,
        )

    return _make


@pytest.fixture
def exact_config():
    """No jitter and no discovery boost, so scores are exact."""
    return StationConfig(score_jitter=0.0, sequence_jitter=0.0, discovery_boost=0.0)


@pytest.fixture
def vocabulary():
    return Vocabulary(
        version=1,
        related={"hip hop": ["trap", "rap"], "rock": ["indie", "punk"]},
        vibes={"chill": ["Lo-Fi", "Ambient", "Downtempo"], "happy": ["Pop", "Funk"]},
    )
