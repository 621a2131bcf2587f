"""
FastAPI Web Application for Vibe Station

Endpoints:
  GET  /api/tags                 - Tag stats for the loaded catalog (?order=popularity|count|recent|alphabetical)
  GET  /api/catalog/stats        - Catalog summary
  POST /api/station              - Generate a station from selected tags and/or a seed track
  POST /api/station/mood         - Resolve free-text mood to tags, then generate
  POST /api/station/track        - Station seeded by one track, tuned to its tags

Station history is kept per listener in memory and replaced after every
call, so consecutive stations for one listener avoid repeats.  At most
max_listeners histories are kept; the least recently served is dropped.
Generation calls run in the default executor.
"""

import asyncio
import os
from collections import OrderedDict
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Dict, List, Optional, Set

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel, Field

from .ai_assist import MoodResolver
from .catalog import catalog_summary, load_snapshot
from .config import StationConfig
from .models import GenerationRequest, Session, Track
from .mood import MoodFallbackMatcher
from .station import StationEngine
from .tags import TAG_SORT_ORDERS, TagStat, build_tag_stats, sort_tag_stats
from .vocabulary import Vocabulary

# ---------------------------------------------------------------------------
# Singletons
# ---------------------------------------------------------------------------

engine: Optional[StationEngine] = None
catalog: List[Track] = []
tag_stats: List[TagStat] = []
_tracks_by_id: Dict[str, Track] = {}
_history: "OrderedDict[str, Set[str]]" = OrderedDict()
_max_listeners: int = StationConfig().max_listeners


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app_instance: FastAPI):
    global engine, catalog, tag_stats, _tracks_by_id, _max_listeners

    config = StationConfig.from_env()
    vocabulary = Vocabulary.load()

    catalog_path = os.environ.get("STATION_CATALOG_PATH", "")
    if catalog_path:
        catalog = load_snapshot(Path(catalog_path))
    else:
        logger.warning("No STATION_CATALOG_PATH set. Starting with an empty catalog.")
        catalog = []
    _tracks_by_id = {}
    for track in catalog:
        _tracks_by_id.setdefault(track.id, track)
    tag_stats = build_tag_stats(catalog)

    api_key = os.environ.get("ANTHROPIC_API_KEY", "")
    resolver = MoodResolver(
        config,
        api_key=api_key,
        fallback=MoodFallbackMatcher(config, vocabulary),
    )
    if api_key:
        logger.info("Claude API key found. Mood assist enabled.")
    else:
        logger.warning("No ANTHROPIC_API_KEY set. Mood input uses the local matcher only.")

    engine = StationEngine(config=config, vocabulary=vocabulary, mood_resolver=resolver)
    _history.clear()
    _max_listeners = config.max_listeners
    logger.info(f"Vibe Station ready. {len(catalog)} tracks, {len(tag_stats)} tags loaded.")

    yield

    engine = None


app = FastAPI(title="Vibe Station", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


def _require_engine() -> StationEngine:
    if engine is None:
        raise HTTPException(status_code=503, detail="Station engine not initialized")
    return engine


def _recall(listener_id: str) -> Set[str]:
    return set(_history.get(listener_id, ()))


def _remember(listener_id: str, session: Session) -> None:
    """Replace the listener's history and evict the least recent listeners over the cap."""
    _history[listener_id] = set(session.history_ids)
    _history.move_to_end(listener_id)
    while len(_history) > _max_listeners:
        evicted, _ = _history.popitem(last=False)
        logger.debug(f"Dropped station history for listener '{evicted}'")


def _session_payload(session: Session, listener_id: str) -> Dict:
    return {
        "listener_id": listener_id,
        "mode": session.mode,
        "selected_tags": session.selected_tags,
        "candidate_count": session.candidate_count,
        "created_at": session.created_at,
        "tracks": [t.model_dump(mode="json") for t in session.tracks],
        "history_ids": sorted(session.history_ids),
    }


# ---------------------------------------------------------------------------
# Routes: Catalog
# ---------------------------------------------------------------------------

@app.get("/api/tags")
async def list_tags(order: str = "popularity"):
    """Tag stats, sorted.  Never filtered."""
    if order not in TAG_SORT_ORDERS:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown order '{order}'. Expected one of: {', '.join(TAG_SORT_ORDERS)}",
        )
    tags = sort_tag_stats(tag_stats, order)
    return JSONResponse({
        "order": order,
        "total": len(tags),
        "tags": [t.model_dump(mode="json") for t in tags],
    })


@app.get("/api/catalog/stats")
async def catalog_stats():
    return JSONResponse(catalog_summary(catalog))


# ---------------------------------------------------------------------------
# Routes: Stations
# ---------------------------------------------------------------------------

class StationRequest(BaseModel):
    selected_tags: List[str] = Field(default_factory=list)
    seed_track_id: Optional[str] = None
    listener_id: str = "default"


@app.post("/api/station")
async def generate_station(body: StationRequest):
    """Generate a station; tag mode with selected tags, global shuffle without."""
    station_engine = _require_engine()

    seed = None
    if body.seed_track_id:
        seed = _tracks_by_id.get(body.seed_track_id)
        if seed is None:
            raise HTTPException(status_code=404, detail=f"Track not found: '{body.seed_track_id}'")

    request = GenerationRequest(
        selected_tags=body.selected_tags,
        seed_track=seed,
        history_ids=_recall(body.listener_id),
    )
    session = await asyncio.get_event_loop().run_in_executor(
        None, lambda: station_engine.generate(catalog, request)
    )
    _remember(body.listener_id, session)
    return JSONResponse(_session_payload(session, body.listener_id))


class MoodStationRequest(BaseModel):
    text: str
    listener_id: str = "default"


@app.post("/api/station/mood")
async def mood_station(body: MoodStationRequest):
    """Resolve a free-text mood to tags (Claude or local matcher), then generate."""
    station_engine = _require_engine()
    history_ids = _recall(body.listener_id)
    resolution, session = await asyncio.get_event_loop().run_in_executor(
        None, lambda: station_engine.generate_from_mood(catalog, body.text, history_ids=history_ids)
    )
    _remember(body.listener_id, session)
    result = _session_payload(session, body.listener_id)
    result["resolution"] = resolution.model_dump()
    return JSONResponse(result)


class TrackStationRequest(BaseModel):
    track_id: str
    listener_id: str = "default"


@app.post("/api/station/track")
async def track_station(body: TrackStationRequest):
    """Station that opens with one track and follows its tags."""
    station_engine = _require_engine()
    track = _tracks_by_id.get(body.track_id)
    if track is None:
        raise HTTPException(status_code=404, detail=f"Track not found: '{body.track_id}'")
    history_ids = _recall(body.listener_id)
    session = await asyncio.get_event_loop().run_in_executor(
        None, lambda: station_engine.station_for_track(catalog, track, history_ids=history_ids)
    )
    _remember(body.listener_id, session)
    return JSONResponse(_session_payload(session, body.listener_id))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main():
    port = int(os.environ.get("STATION_PORT", "8899"))
    logger.info(f"Starting Vibe Station on port {port}")
    uvicorn.run(
        "vibe_station.app:app",
        host="0.0.0.0",
        port=port,
        reload=False,
    )


if __name__ == "__main__":
    main()
