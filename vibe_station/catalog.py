"""
Catalog adapter: raw catalog records to Tracks.

The catalog API and the bundled snapshot both deliver song records with
wire names (``Id``, ``Title``, ``Tags`` ...) and an optional ``lyrics``
object ({title, style[], lyrics}).  Records are coerced here once so the
engine only ever sees Track.

Usage:
    snapshot = load_snapshot(Path("data/snapshot.json"))
    tracks = merge_with_snapshot(live_records, snapshot)
    summary = catalog_summary(tracks)
"""

import json
from collections import Counter
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from loguru import logger
from pydantic import ValidationError

from .models import Track
from .tags import build_tag_stats, sort_tag_stats

Record = Union[Track, Dict[str, Any]]


def track_from_record(record: Record) -> Track:
    """
    Build a Track from a catalog record.

    ``lyrics.style`` entries are appended to the tags and ``lyrics.lyrics``
    becomes lyrics_text.  Raises ValidationError / TypeError for records
    that cannot be a track.
    """
    if isinstance(record, Track):
        return record
    if not isinstance(record, dict):
        raise TypeError(f"Expected a track record dict, got {type(record).__name__}")

    data = dict(record)
    lyrics = data.pop("lyrics", None)
    if isinstance(lyrics, dict):
        style = lyrics.get("style") or []
        if isinstance(style, str):
            style = [style]
        tags = data.get("Tags", data.get("tags")) or []
        if isinstance(tags, str):
            tags = [tags]
        data.pop("tags", None)
        data["Tags"] = list(tags) + list(style)
        if not data.get("lyrics_text") and lyrics.get("lyrics"):
            data["lyrics_text"] = lyrics["lyrics"]
        if not (data.get("Title") or data.get("title")) and lyrics.get("title"):
            data["Title"] = lyrics["title"]
    return Track.model_validate(data)


def ensure_tracks(records: Optional[Iterable[Record]]) -> List[Track]:
    """Coerce records to Tracks, skipping (and logging) malformed ones."""
    tracks: List[Track] = []
    skipped = 0
    for record in records or ():
        try:
            tracks.append(track_from_record(record))
        except (ValidationError, TypeError, ValueError) as e:
            skipped += 1
            rid = record.get("Id", record.get("id", "?")) if isinstance(record, dict) else "?"
            logger.warning(f"Skipping malformed track record {rid}: {e}")
    if skipped:
        logger.info(f"Catalog: {len(tracks)} tracks loaded, {skipped} records skipped")
    return tracks


def load_snapshot(path: Path) -> List[Track]:
    """
    Load a catalog snapshot file.

    Accepts a plain list of records or an object with a ``songs`` list.
    A missing or unreadable file yields an empty catalog.
    """
    try:
        with open(path, encoding="utf-8") as fh:
            data = json.load(fh)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Failed to load catalog snapshot {path}: {e}")
        return []

    if isinstance(data, dict):
        records = data.get("songs") or []
    elif isinstance(data, list):
        records = data
    else:
        logger.error(f"Catalog snapshot {path} holds neither a list nor a songs object")
        return []

    tracks = ensure_tracks(records)
    logger.info(f"Loaded {len(tracks)} tracks from snapshot {path}")
    return tracks


def merge_with_snapshot(live: Iterable[Record], snapshot: Iterable[Record]) -> List[Track]:
    """
    Prefer live tracks; fill empty live tags and missing artist from the
    snapshot; append tracks only the snapshot knows.
    """
    live_tracks = ensure_tracks(live)
    snapshot_tracks = ensure_tracks(snapshot)
    by_id = {t.id: t for t in snapshot_tracks}

    merged: List[Track] = []
    for track in live_tracks:
        old = by_id.get(track.id)
        if old is not None:
            update: Dict[str, Any] = {}
            if not track.tags and old.tags:
                update["tags"] = old.tags
            if track.artist_address is None and old.artist_address is not None:
                update["artist_address"] = old.artist_address
            if update:
                track = track.model_copy(update=update)
        merged.append(track)

    live_ids = {t.id for t in live_tracks}
    extra = [t for t in snapshot_tracks if t.id not in live_ids]
    merged.extend(extra)
    logger.debug(f"Merged {len(live_tracks)} live tracks with {len(extra)} snapshot-only tracks")
    return merged


def catalog_summary(tracks: List[Track], top_tags: int = 10) -> Dict[str, Any]:
    """Counts for the catalog stats endpoint."""
    artists = Counter(t.artist_address for t in tracks if t.artist_address)
    stats = sort_tag_stats(build_tag_stats(tracks), "count")
    return {
        "total_tracks": len(tracks),
        "artists": len(artists),
        "untagged_tracks": sum(1 for t in tracks if not t.tags),
        "distinct_tags": len(stats),
        "top_tags": [{"tag": s.tag, "count": s.count} for s in stats[:top_tags]],
        "total_plays": sum(t.plays for t in tracks),
    }
