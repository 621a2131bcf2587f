"""
Station Engine

One generation call: catalog + request -> scored selection -> sequenced
Session.  Mood text enters through generate_from_mood, a single track
through station_for_track.

The engine holds no per-call state.  History is owned by the caller: pass
the previous Session.history_ids into the next request and replace (never
merge) it with what comes back.
"""

import random
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Set, Tuple

from loguru import logger

from .ai_assist import MoodResolution, MoodResolver
from .catalog import Record, ensure_tracks
from .config import StationConfig, resolve_config
from .models import GenerationRequest, Session, Track
from .mood import MoodFallbackMatcher
from .scorer import TagRelevanceScorer, utc_now
from .sequencer import FlowSequencer
from .tags import build_tag_stats, station_tags_for
from .vocabulary import Vocabulary, default_vocabulary


class StationEngine:
    """
    Generates listening sessions.

    All randomness comes from ``rng``; pass a seeded random.Random for
    reproducible output.
    """

    def __init__(
        self,
        config: Optional[StationConfig] = None,
        vocabulary: Optional[Vocabulary] = None,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], datetime]] = None,
        mood_resolver: Optional[MoodResolver] = None,
    ):
        self.config = resolve_config(config)
        self.vocabulary = vocabulary or default_vocabulary()
        self.rng = rng or random.Random()
        self.clock = clock or utc_now
        self.scorer = TagRelevanceScorer(self.config, self.vocabulary, self.rng, self.clock)
        self.sequencer = FlowSequencer(self.config, self.rng)
        self.mood_resolver = mood_resolver or MoodResolver(
            self.config,
            fallback=MoodFallbackMatcher(self.config, self.vocabulary),
        )

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def generate(self, catalog: Iterable[Record], request: GenerationRequest) -> Session:
        """
        Build a Session for ``request``.

        1. Coerce the catalog and clamp the selected tags
        2. Score and select (tag mode or global shuffle)
        3. Apply the empty-match policy
        4. Sequence, seed first
        """
        tracks = ensure_tracks(catalog)
        selected = request.selected_tags[: self.config.max_selected_tags]
        if len(selected) < len(request.selected_tags):
            logger.debug(
                f"Ignoring {len(request.selected_tags) - len(selected)} selected tags "
                f"beyond the first {self.config.max_selected_tags}"
            )
        request = request.model_copy(update={"selected_tags": selected})
        seed = request.seed_track

        picked, mode, candidate_count = self._select(tracks, request)

        if not picked and seed is None:
            logger.info(f"No tracks matched {selected}; returning empty session")
            return self._session([], mode, selected, candidate_count)

        ordered = self.sequencer.sequence(picked, seed_track=seed)
        ordered = ordered[: self.config.target_size]
        session = self._session(ordered, mode, selected, candidate_count)
        logger.info(
            f"Generated {mode} station: {len(session.tracks)} tracks from "
            f"{candidate_count} candidates"
            + (f", tags {selected}" if selected else "")
            + (f", seed {seed.id}" if seed is not None else "")
        )
        return session

    def _select(self, tracks: List[Track], request: GenerationRequest) -> Tuple[List[Track], str, int]:
        ranked = self.scorer.score(tracks, request)
        mode = "tags" if request.tag_mode else "shuffle"

        if request.tag_mode:
            eligible = sum(1 for c in ranked if c.score > 0 and not c.excluded)
            if not eligible and self.config.empty_match_fallback:
                logger.warning(
                    f"No tracks matched {request.selected_tags}; falling back to global shuffle"
                )
                request = GenerationRequest(seed_track=request.seed_track)
                ranked = self.scorer.score(tracks, request)
                mode = "shuffle"
                eligible = len(ranked)
        else:
            eligible = len(ranked)

        chosen = [c.track for c in self.scorer.select(ranked, request, self.config.target_size)]

        seed = request.seed_track
        if seed is not None:
            # the seed takes one slot of the session
            chosen = [t for t in chosen if t.id != seed.id][: self.config.target_size - 1]
        return chosen, mode, eligible

    def _session(self, tracks: List[Track], mode: str, selected: List[str], candidate_count: int) -> Session:
        return Session(
            tracks=tracks,
            history_ids={t.id for t in tracks},
            mode=mode,
            selected_tags=selected,
            candidate_count=candidate_count,
            created_at=self.clock().isoformat(),
        )

    # ------------------------------------------------------------------
    # Alternate entry points
    # ------------------------------------------------------------------

    def generate_from_mood(
        self,
        catalog: Iterable[Record],
        text: str,
        history_ids: Optional[Set[str]] = None,
        seed_track: Optional[Track] = None,
    ) -> Tuple[MoodResolution, Session]:
        """Resolve mood text to tags, then generate from them."""
        tracks = ensure_tracks(catalog)
        resolution = self.mood_resolver.resolve(text, build_tag_stats(tracks), tracks)
        request = GenerationRequest(
            selected_tags=resolution.tags,
            seed_track=seed_track,
            history_ids=history_ids or set(),
        )
        return resolution, self.generate(tracks, request)

    def station_for_track(
        self,
        catalog: Iterable[Record],
        track: Track,
        history_ids: Optional[Set[str]] = None,
    ) -> Session:
        """A station seeded by ``track`` and tuned to its own tags."""
        request = GenerationRequest(
            selected_tags=station_tags_for(track, self.config.max_selected_tags),
            seed_track=track,
            history_ids=history_ids or set(),
        )
        return self.generate(catalog, request)


def generate_station(
    catalog: Iterable[Record],
    selected_tags: Optional[List[str]] = None,
    seed_track: Optional[Track] = None,
    history_ids: Optional[Set[str]] = None,
    config: Optional[StationConfig] = None,
    rng: Optional[random.Random] = None,
) -> Session:
    """One-shot helper around StationEngine.generate."""
    engine = StationEngine(config=config, rng=rng)
    request = GenerationRequest(
        selected_tags=selected_tags or [],
        seed_track=seed_track,
        history_ids=history_ids or set(),
    )
    return engine.generate(catalog, request)

