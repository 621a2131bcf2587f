"""
Tag Relevance Scorer

Ranks every catalog track against the selected tags of a request.

Per selected tag the best match among the track's tags counts:
exact (normalized equal) > substring > related (vocabulary).  Earlier
selected tags weigh more, tracks matching several selected tags get a
synergy multiplier, and a selected tag found in the title or lyrics adds a
flat keyword bonus.  Popularity, recency and a little jitter only break
ties between tracks that are already relevant.
"""

import random
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from loguru import logger

from .config import StationConfig, resolve_config
from .models import GenerationRequest, ScoredCandidate, Track
from .tags import normalize_tag
from .vocabulary import Vocabulary, default_vocabulary


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TagRelevanceScorer:
    """Scores and selects candidate tracks for one generation call."""

    def __init__(
        self,
        config: Optional[StationConfig] = None,
        vocabulary: Optional[Vocabulary] = None,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = resolve_config(config)
        self.vocabulary = vocabulary or default_vocabulary()
        self.rng = rng or random.Random()
        self.clock = clock or utc_now

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def score(self, catalog: List[Track], request: GenerationRequest) -> List[ScoredCandidate]:
        """
        Score every track in ``catalog``.

        Tracks without an id are skipped and the first occurrence of a
        duplicated id wins.  In tag mode tracks listed in the request's
        history are kept but excluded (score 0).  Returns candidates in
        catalog order.
        """
        tag_mode = request.tag_mode
        selected = [
            (tag, normalize_tag(tag))
            for tag in request.selected_tags[: self.config.max_selected_tags]
        ]
        now = self.clock()

        scored: List[ScoredCandidate] = []
        seen_ids = set()
        for track in catalog:
            if not track.id:
                logger.debug(f"Skipping track without id: '{track.title}'")
                continue
            if track.id in seen_ids:
                continue
            seen_ids.add(track.id)

            if tag_mode:
                candidate = self._score_tags(track, selected, now)
                if track.id in request.history_ids:
                    candidate.excluded = True
                    candidate.score = 0.0
            else:
                candidate = ScoredCandidate(track=track)
                self._add_tie_breaks(candidate, now)
            scored.append(candidate)

        relevant = sum(1 for c in scored if c.score > 0)
        logger.debug(
            f"Scored {len(scored)} tracks ({'tags' if tag_mode else 'shuffle'} mode), "
            f"{relevant} with positive score"
        )
        return scored

    def _score_tags(
        self,
        track: Track,
        selected: List[Tuple[str, str]],
        now: datetime,
    ) -> ScoredCandidate:
        track_keys = track.normalized_tags()
        tag_score = 0.0
        matched: List[str] = []

        for position, (tag, key) in enumerate(selected):
            points = self.match_points(key, track_keys)
            if points > 0:
                tag_score += points * self.config.order_weight(position)
                matched.append(tag)

        if len(matched) > 1:
            tag_score *= self.config.synergy_multiplier

        keyword = self.keyword_bonus(track, [key for _, key in selected])

        candidate = ScoredCandidate(
            track=track,
            tag_score=tag_score,
            keyword_bonus=keyword,
            matched_tags=matched,
        )
        if tag_score + keyword > 0:
            self._add_tie_breaks(candidate, now)
        return candidate

    def match_points(self, selected_key: str, track_keys) -> float:
        """Best tier reached by ``selected_key`` against any of the track's normalized tags."""
        if not selected_key or not track_keys:
            return 0.0
        if selected_key in track_keys:
            return self.config.exact_match_points

        min_len = self.config.substring_min_length
        best = 0.0
        for key in track_keys:
            if (
                len(selected_key) >= min_len
                and len(key) >= min_len
                and (selected_key in key or key in selected_key)
            ):
                return self.config.substring_match_points
            if self.vocabulary.is_related(selected_key, key):
                best = self.config.related_match_points
        return best

    def keyword_bonus(self, track: Track, selected_keys: List[str]) -> float:
        """Flat bonus when any selected tag shows up in the title or lyrics."""
        haystacks = [normalize_tag(track.title), normalize_tag(track.lyrics_text)]
        haystacks = [h for h in haystacks if h]
        if not haystacks:
            return 0.0
        for key in selected_keys:
            if key and any(key in h for h in haystacks):
                return self.config.keyword_bonus
        return 0.0

    def _add_tie_breaks(self, candidate: ScoredCandidate, now: datetime) -> None:
        cfg = self.config
        track = candidate.track
        candidate.popularity = track.plays * cfg.plays_weight + track.views * cfg.views_weight

        days = max(0.0, (now - track.created).total_seconds() / 86400.0)
        candidate.recency = max(
            0.0, cfg.recency_max_bonus - days * cfg.recency_max_bonus / cfg.recency_window_days
        )
        candidate.jitter = self.rng.random() * cfg.score_jitter
        candidate.score = (
            candidate.tag_score
            + candidate.keyword_bonus
            + candidate.popularity
            + candidate.recency
            + candidate.jitter
        )

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select(
        self,
        ranked: List[ScoredCandidate],
        request: GenerationRequest,
        limit: Optional[int] = None,
    ) -> List[ScoredCandidate]:
        """
        Tag mode: the ``limit`` best candidates with a positive score.
        Shuffle mode: ``limit`` candidates drawn uniformly without replacement.
        """
        if limit is None:
            limit = self.config.target_size
        limit = max(0, limit)

        if request.tag_mode:
            eligible = [c for c in ranked if c.score > 0 and not c.excluded]
            eligible.sort(key=lambda c: c.score, reverse=True)
            return eligible[:limit]

        return self.rng.sample(ranked, min(limit, len(ranked)))

