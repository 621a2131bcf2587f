"""
Data models for station generation.

Track mirrors one catalog entry and accepts the catalog's wire names
(``Id``, ``Title``, ``Address``, ``Tags``, ``Plays``, ``Views``,
``Created_At``) as well as the field names.  GenerationRequest,
ScoredCandidate and Session carry one generation call through scoring and
sequencing.
"""

import math
from datetime import datetime, timezone
from typing import Any, List, Literal, Optional, Set, Tuple

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from .tags import TagStat, normalize_tag

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

StationMode = Literal["tags", "shuffle"]


class Track(BaseModel):
    """
    An immutable catalog snapshot of one song.

    Missing counters become 0 and a missing creation date is treated as the
    Unix epoch, so partial records still score instead of failing.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str = Field(alias="Id")
    title: str = Field(default="", alias="Title")
    artist_address: Optional[str] = Field(default=None, alias="Address")
    tags: Tuple[str, ...] = Field(default=(), alias="Tags")
    lyrics_text: Optional[str] = None
    plays: int = Field(default=0, alias="Plays")
    views: int = Field(default=0, alias="Views")
    created_at: Optional[datetime] = Field(default=None, alias="Created_At")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v: Any) -> Any:
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("title", mode="before")
    @classmethod
    def _coerce_title(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("artist_address", "lyrics_text", mode="before")
    @classmethod
    def _blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("tags", mode="before")
    @classmethod
    def _clean_tags(cls, v: Any) -> Any:
        if v is None:
            return ()
        if isinstance(v, str):
            v = [v]
        cleaned: List[str] = []
        for tag in v:
            if tag is None:
                continue
            tag = str(tag).strip()
            if tag and tag not in cleaned:
                cleaned.append(tag)
        return tuple(cleaned)

    @field_validator("plays", "views", mode="before")
    @classmethod
    def _non_negative_count(cls, v: Any, info: ValidationInfo) -> int:
        if v is None or v == "" or isinstance(v, bool):
            return 0
        if isinstance(v, int):
            return max(0, v)
        try:
            count = float(v)
        except (TypeError, ValueError, OverflowError):
            logger.debug(f"Unreadable {info.field_name} value {v!r}, using 0")
            return 0
        if not math.isfinite(count):
            logger.debug(f"Non-finite {info.field_name} value {v!r}, using 0")
            return 0
        return max(0, int(count))

    @field_validator("created_at", mode="before")
    @classmethod
    def _blank_date(cls, v: Any) -> Any:
        return None if v == "" else v

    @field_validator("created_at")
    @classmethod
    def _assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @property
    def created(self) -> datetime:
        """Creation time, epoch when unknown."""
        return self.created_at or EPOCH

    def normalized_tags(self) -> Set[str]:
        """Set of non-empty normalized tags."""
        return {key for key in (normalize_tag(t) for t in self.tags) if key}


class GenerationRequest(BaseModel):
    """
    One station request.

    selected_tags: priority order, most important first.  Blank tags and
        repeats (by normalized form) are dropped.
    seed_track: always plays first when given.
    history_ids: ids returned by the previous generation, excluded in tag mode.
    """

    selected_tags: List[str] = Field(default_factory=list)
    seed_track: Optional[Track] = None
    history_ids: Set[str] = Field(default_factory=set)

    @field_validator("selected_tags", mode="before")
    @classmethod
    def _clean_selected(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        cleaned: List[str] = []
        seen = set()
        for tag in v:
            tag = str(tag).strip() if tag is not None else ""
            key = normalize_tag(tag)
            if not key or key in seen:
                continue
            seen.add(key)
            cleaned.append(tag)
        return cleaned

    @field_validator("history_ids", mode="before")
    @classmethod
    def _coerce_history(cls, v: Any) -> Any:
        return set() if v is None else v

    @property
    def tag_mode(self) -> bool:
        return bool(self.selected_tags)


class ScoredCandidate(BaseModel):
    """A track with its relevance score and the parts that built it."""

    track: Track
    score: float = 0.0
    tag_score: float = 0.0
    keyword_bonus: float = 0.0
    popularity: float = 0.0
    recency: float = 0.0
    jitter: float = 0.0
    matched_tags: List[str] = Field(default_factory=list)
    excluded: bool = False


class Session(BaseModel):
    """An ordered listening session plus the history the caller keeps for next time."""

    tracks: List[Track] = Field(default_factory=list)
    history_ids: Set[str] = Field(default_factory=set)
    mode: StationMode = "tags"
    selected_tags: List[str] = Field(default_factory=list)
    candidate_count: int = 0
    created_at: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.tracks

    @property
    def track_ids(self) -> List[str]:
        return [t.id for t in self.tracks]


__all__ = [
    "EPOCH",
    "GenerationRequest",
    "ScoredCandidate",
    "Session",
    "StationMode",
    "TagStat",
    "Track",
]
