"""
Station configuration: selection, scoring, sequencing, mood and service parameters.

StationConfig defaults are defined here.  A JSON file named by
STATION_CONFIG_PATH may override any of them; from_dict() accepts either a
flat mapping or grouped sections (selection / scoring / sequencing / mood / service).
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

from loguru import logger
from pydantic import BaseModel, model_validator

CONFIG_SECTIONS = ("selection", "scoring", "sequencing", "mood", "service")


class StationConfig(BaseModel):
    """Tunable constants for station generation."""

    # -------------------------------------------------------------------------
    # Selection
    # -------------------------------------------------------------------------

    # Max tracks in a session (seed track included).
    target_size: int = 20
    # Selected tags beyond this many are ignored.
    max_selected_tags: int = 5
    # When no track matches any selected tag, degrade to global shuffle
    # instead of returning an empty session.
    empty_match_fallback: bool = False

    # -------------------------------------------------------------------------
    # Tiered tag matching (points per selected tag, best tier wins)
    # -------------------------------------------------------------------------

    exact_match_points: float = 100.0
    substring_match_points: float = 75.0
    related_match_points: float = 40.0
    # Both strings need at least this many characters for a substring match.
    substring_min_length: int = 3

    # weight(position) = max(order_weight_floor, 1 - order_weight_step * position)
    order_weight_step: float = 0.1
    order_weight_floor: float = 0.5

    # Multiplier when a track matches more than one selected tag.
    synergy_multiplier: float = 1.3
    # Flat bonus when a selected tag appears in the title or lyrics.
    keyword_bonus: float = 25.0

    # -------------------------------------------------------------------------
    # Tie-break signals
    # popularity = plays * plays_weight + views * views_weight
    # recency = max(0, recency_max_bonus - days * recency_max_bonus / recency_window_days)
    # -------------------------------------------------------------------------

    plays_weight: float = 0.01
    views_weight: float = 0.005
    recency_max_bonus: float = 50.0
    recency_window_days: float = 30.0
    # Uniform jitter in [0, score_jitter), re-rolled every call.
    score_jitter: float = 15.0

    # -------------------------------------------------------------------------
    # Sequencing (smart shuffle)
    # -------------------------------------------------------------------------

    # Flow score by number of shared normalized tags; counts above the
    # largest key use flow_overflow_score.
    flow_scores: Dict[int, float] = {0: 10.0, 1: 100.0, 2: 90.0, 3: 60.0}
    flow_overflow_score: float = 40.0
    # Candidate by the same artist as the previous track.
    same_artist_penalty: float = 80.0
    # Candidate whose artist is among the last recent_artist_window tracks.
    recent_artist_penalty: float = 40.0
    recent_artist_window: int = 2
    # Never place two tracks by one artist back to back while another artist is available.
    strict_artist_spacing: bool = True
    # Under-exposed tracks (plays below threshold) get a discovery boost.
    discovery_plays_threshold: int = 100
    discovery_boost: float = 15.0
    sequence_jitter: float = 20.0

    # -------------------------------------------------------------------------
    # Mood matching
    # -------------------------------------------------------------------------

    mood_max_tags: int = 5
    # Token and tag both need this many characters for a substring match.
    mood_substring_min_length: int = 4
    # Shorter tokens are ignored by the title/lyrics content search.
    mood_content_min_token_length: int = 3
    mood_model: str = "claude-haiku-4-5"
    mood_max_known_tags: int = 200

    # -------------------------------------------------------------------------
    # Service
    # -------------------------------------------------------------------------

    # Listener histories kept in memory by the HTTP app; least recent dropped first.
    max_listeners: int = 10_000

    @model_validator(mode="after")
    def check_ranges(self):
        if self.target_size < 1:
            raise ValueError(f"target_size must be >= 1, got {self.target_size}")
        if self.max_selected_tags < 1:
            raise ValueError(f"max_selected_tags must be >= 1, got {self.max_selected_tags}")
        if self.recency_window_days <= 0:
            raise ValueError(f"recency_window_days must be > 0, got {self.recency_window_days}")
        if not 0.0 <= self.order_weight_floor <= 1.0:
            raise ValueError(f"order_weight_floor must be within [0, 1], got {self.order_weight_floor}")
        if any(k < 0 for k in self.flow_scores):
            raise ValueError("flow_scores keys must be non-negative shared-tag counts")
        if self.max_listeners < 1:
            raise ValueError(f"max_listeners must be >= 1, got {self.max_listeners}")
        return self

    def order_weight(self, position: int) -> float:
        """Weight of the selected tag at ``position`` (0-based)."""
        return max(self.order_weight_floor, 1.0 - self.order_weight_step * position)

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> "StationConfig":
        """Create config from a dictionary (e.g. loaded from JSON)."""
        flat: Dict[str, Any] = {}
        for key, value in config_dict.items():
            if key in CONFIG_SECTIONS and isinstance(value, dict):
                flat.update(value)
            else:
                flat[key] = value
        allowed = set(cls.model_fields)
        unknown = sorted(set(flat) - allowed)
        if unknown:
            logger.warning(f"Ignoring unknown station config keys: {', '.join(unknown)}")
        filtered = {k: v for k, v in flat.items() if k in allowed}
        return cls.model_validate(filtered)

    @classmethod
    def from_file(cls, path: Path) -> "StationConfig":
        with open(path, encoding="utf-8") as fh:
            data = json.load(fh)
        logger.info(f"Loaded station config overrides from {path}")
        return cls.from_dict(data)

    @classmethod
    def from_env(cls) -> "StationConfig":
        """
        Defaults, overridden by the JSON file at STATION_CONFIG_PATH (if set)
        and by STATION_MOOD_MODEL.
        """
        path = os.environ.get("STATION_CONFIG_PATH", "")
        config = cls.from_file(Path(path)) if path else cls()
        model = os.environ.get("STATION_MOOD_MODEL", "")
        if model:
            config = config.model_copy(update={"mood_model": model})
        return config


DEFAULT_CONFIG = StationConfig()


def resolve_config(config: Optional[StationConfig]) -> StationConfig:
    """Return config or DEFAULT_CONFIG when none is provided."""
    return config if config is not None else DEFAULT_CONFIG
