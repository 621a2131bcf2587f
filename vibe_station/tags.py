"""
Tag helpers shared by scoring, sequencing and mood matching.

Tags are free text ("Lo-Fi", "lo fi", "LOFI"), so every comparison goes
through normalize_tag.  Tag statistics aggregate a catalog into one TagStat
per normalized key; they back the tag picker and the mood fallback matcher.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger
from pydantic import BaseModel


TAG_SORT_ORDERS = ("popularity", "count", "recent", "alphabetical")


def normalize_tag(tag: Any) -> str:
    """Lower-case and strip every non-alphanumeric character ("Lo-Fi" -> "lofi")."""
    if not tag:
        return ""
    return "".join(ch for ch in str(tag).lower() if ch.isalnum())


class TagStat(BaseModel):
    """Catalog-wide aggregate for one normalized tag."""

    tag: str
    key: str
    count: int = 0
    popularity: int = 0
    latest: Optional[datetime] = None

    @classmethod
    def from_tag(cls, tag: str) -> "TagStat":
        """Bare stat for a tag name with no catalog counts."""
        return cls(tag=tag.strip(), key=normalize_tag(tag))


def build_tag_stats(tracks: Iterable[Any]) -> List[TagStat]:
    """
    Deduplicate tags across the catalog by normalized key.

    The display form is the first spelling seen.  A track carrying the same
    tag twice ("Chill" and "chill") counts once.  Popularity is the summed
    plays + views of the tracks carrying the tag.
    """
    stats: Dict[str, TagStat] = {}
    for track in tracks:
        seen_on_track = set()
        for raw in getattr(track, "tags", None) or ():
            key = normalize_tag(raw)
            if not key or key in seen_on_track:
                continue
            seen_on_track.add(key)

            stat = stats.get(key)
            if stat is None:
                stat = TagStat(tag=str(raw).strip(), key=key)
                stats[key] = stat
            stat.count += 1
            stat.popularity += (getattr(track, "plays", 0) or 0) + (getattr(track, "views", 0) or 0)
            created = getattr(track, "created_at", None)
            if created is not None and (stat.latest is None or created > stat.latest):
                stat.latest = created

    logger.debug(f"Built {len(stats)} tag stats")
    return list(stats.values())


def merge_tag_stats(snapshot: List[TagStat], live: List[TagStat]) -> List[TagStat]:
    """Live stats replace snapshot stats with the same key; snapshot-only tags are kept."""
    merged: Dict[str, TagStat] = {t.key: t for t in snapshot}
    for stat in live:
        merged[stat.key] = stat
    return list(merged.values())


def sort_tag_stats(tags: List[TagStat], order: str = "popularity") -> List[TagStat]:
    """Return tags sorted by ``order``.  Never filters."""
    if order == "alphabetical":
        return sorted(tags, key=lambda t: t.tag.lower())
    if order == "popularity":
        return sorted(tags, key=lambda t: (t.popularity, t.count), reverse=True)
    if order == "count":
        return sorted(tags, key=lambda t: (t.count, t.popularity), reverse=True)
    if order == "recent":
        dated = sorted(
            (t for t in tags if t.latest is not None),
            key=lambda t: t.latest,
            reverse=True,
        )
        return dated + [t for t in tags if t.latest is None]
    raise ValueError(f"Unknown tag sort order '{order}', expected one of {TAG_SORT_ORDERS}")


def station_tags_for(track: Any, limit: int = 5) -> List[str]:
    """
    Tags used to start a station from a single track (the "radio" link).

    Trimmed, non-empty, first occurrence wins, capped at ``limit``.
    """
    result: List[str] = []
    for raw in getattr(track, "tags", None) or ():
        tag = str(raw).strip()
        if tag and tag not in result:
            result.append(tag)
        if len(result) >= limit:
            break
    return result
