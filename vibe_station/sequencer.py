"""
Flow-Aware Sequencer ("smart shuffle")

Reorders a selection into a listening session.  Starting from a random
track, each next track is chosen greedily by:

    flow(shared tags with the current track)
    - same-artist penalty (previous track)
    - recent-artist penalty (last N tracks)
    + discovery boost (few plays)
    + jitter

Partial tag overlap flows best; identical tag sets feel repetitive and no
overlap feels abrupt.  A seed track is always moved to the front.

With strict spacing, a candidate is only taken if the tracks left after it
can still be ordered without two same-artist tracks in a row.
"""

import random
from collections import Counter
from typing import Dict, List, Optional

from loguru import logger

from .config import StationConfig, resolve_config
from .models import Track


class FlowSequencer:
    """Greedy transition-scored ordering with artist spacing."""

    def __init__(
        self,
        config: Optional[StationConfig] = None,
        rng: Optional[random.Random] = None,
    ):
        self.config = resolve_config(config)
        self.rng = rng or random.Random()

    def flow_score(self, shared: int) -> float:
        """Transition score for ``shared`` normalized tags in common."""
        scores = self.config.flow_scores
        if shared in scores:
            return scores[shared]
        if scores and shared > max(scores):
            return self.config.flow_overflow_score
        return scores.get(0, 0.0)

    def score_transition(self, current: Track, candidate: Track, placed: List[Track]) -> float:
        """Score placing ``candidate`` right after ``current`` (last of ``placed``)."""
        cfg = self.config
        shared = len(current.normalized_tags() & candidate.normalized_tags())
        score = self.flow_score(shared)

        artist = candidate.artist_address
        if artist is not None:
            if artist == current.artist_address:
                score -= cfg.same_artist_penalty
            recent = placed[-cfg.recent_artist_window:] if cfg.recent_artist_window > 0 else []
            if any(t.artist_address == artist for t in recent):
                score -= cfg.recent_artist_penalty

        if candidate.plays < cfg.discovery_plays_threshold:
            score += cfg.discovery_boost
        score += self.rng.random() * cfg.sequence_jitter
        return score

    def sequence(self, selection: List[Track], seed_track: Optional[Track] = None) -> List[Track]:
        """
        Order ``selection`` for playback.

        The result holds each selected id once; with ``seed_track`` given it
        is removed from wherever it was and placed first.
        """
        tracks: List[Track] = []
        seen = set()
        for track in selection:
            if track.id in seen:
                continue
            seen.add(track.id)
            tracks.append(track)

        if seed_track is not None:
            tracks = [t for t in tracks if t.id != seed_track.id]

        if len(tracks) <= 2:
            ordered = tracks
        else:
            ordered = self._greedy_order(tracks, lead=seed_track)

        if seed_track is not None:
            ordered = [seed_track] + ordered
        return ordered

    def _greedy_order(self, tracks: List[Track], lead: Optional[Track] = None) -> List[Track]:
        remaining = list(tracks)
        strict = self.config.strict_artist_spacing
        counts = Counter(t.artist_address for t in remaining if t.artist_address is not None)

        if lead is not None:
            # the seed opens the session, so transitions start from it
            placed = [lead]
        else:
            starts = [t for t in remaining if self._keeps_spacing(t, counts, len(remaining))] if strict else []
            first = self.rng.choice(starts or remaining)
            remaining.remove(first)
            placed = [first]
            if first.artist_address is not None:
                counts[first.artist_address] -= 1

        while remaining:
            current = placed[-1]
            pool = remaining
            if strict:
                if current.artist_address is not None:
                    others = [t for t in remaining if t.artist_address != current.artist_address]
                    if others:
                        pool = others
                safe = [t for t in pool if self._keeps_spacing(t, counts, len(remaining))]
                if safe:
                    pool = safe

            best = max(pool, key=lambda t: self.score_transition(current, t, placed))
            remaining.remove(best)
            placed.append(best)
            if best.artist_address is not None:
                counts[best.artist_address] -= 1

        clustered = sum(
            1
            for a, b in zip(placed, placed[1:])
            if a.artist_address is not None and a.artist_address == b.artist_address
        )
        if lead is not None:
            placed = placed[1:]
        logger.debug(f"Sequenced {len(placed)} tracks, {clustered} back-to-back same-artist transitions")
        return placed

    @staticmethod
    def _keeps_spacing(candidate: Track, counts: Dict[str, int], total: int) -> bool:
        """True if the ``total - 1`` tracks left after ``candidate`` can still be spaced."""
        artist = candidate.artist_address
        if artist is not None:
            counts[artist] -= 1
        try:
            return spacing_feasible(counts, total - 1, previous=artist)
        finally:
            if artist is not None:
                counts[artist] += 1


def spacing_feasible(counts: Dict[str, int], total: int, previous: Optional[str] = None) -> bool:
    """
    Whether ``total`` tracks, ``counts[a]`` of them by artist ``a``, can be
    ordered with no artist twice in a row, right after a track by ``previous``.

    An artist with m tracks needs m - 1 others between them, plus one in
    front when it also made the previous track.
    """
    for artist, m in counts.items():
        if m <= 0:
            continue
        others = total - m
        if m > (others if artist == previous else others + 1):
            return False
    return True
