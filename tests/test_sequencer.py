"""Tests for FlowSequencer: flow scores, artist spacing and seed placement."""

import random

import pytest

from vibe_station.config import StationConfig
from vibe_station.sequencer import FlowSequencer, spacing_feasible


@pytest.fixture
def sequencer(exact_config, rng):
    return FlowSequencer(exact_config, rng)


def _adjacent_same_artist(tracks):
    return [
        (a.id, b.id)
        for a, b in zip(tracks, tracks[1:])
        if a.artist_address is not None and a.artist_address == b.artist_address
    ]


class TestFlowScore:
    @pytest.mark.parametrize("shared, expected", [(0, 10), (1, 100), (2, 90), (3, 60), (4, 40), (9, 40)])
    def test_flow_table(self, sequencer, shared, expected):
        assert sequencer.flow_score(shared) == expected

    def test_partial_overlap_beats_identical(self, sequencer, make_track):
        current = make_track("c", tags=["Rock", "Indie", "Punk"], artist="x")
        partial = make_track("p", tags=["Rock", "Jazz"], artist="y")
        identical = make_track("i", tags=["Rock", "Indie", "Punk"], artist="z")
        assert sequencer.score_transition(current, partial, [current]) > \
            sequencer.score_transition(current, identical, [current])

    def test_artist_penalties_stack(self, sequencer, make_track):
        current = make_track("c", tags=["Rock"], artist="x")
        same = make_track("s", tags=["Rock"], artist="x")
        # flow 100, -80 previous artist, -40 recent artist
        assert sequencer.score_transition(current, same, [current]) == pytest.approx(-20.0)

    def test_recent_artist_penalty_only(self, sequencer, make_track):
        older = make_track("o", tags=["Rock"], artist="x")
        current = make_track("c", tags=["Rock"], artist="y")
        candidate = make_track("n", tags=["Rock"], artist="x")
        assert sequencer.score_transition(current, candidate, [older, current]) == pytest.approx(60.0)

    def test_missing_artist_never_penalized(self, sequencer, make_track):
        current = make_track("c", tags=["Rock"])
        candidate = make_track("n", tags=["Rock"])
        assert sequencer.score_transition(current, candidate, [current]) == pytest.approx(100.0)

    def test_discovery_boost(self, rng, make_track):
        sequencer = FlowSequencer(StationConfig(sequence_jitter=0.0), rng)
        current = make_track("c", tags=["Rock"])
        fresh = make_track("f", tags=["Rock"], plays=3)
        assert sequencer.score_transition(current, fresh, [current]) == pytest.approx(115.0)


class TestSequence:
    def test_short_selection_unchanged(self, sequencer, make_track):
        a, b = make_track("a", artist="x"), make_track("b", artist="x")
        assert sequencer.sequence([a, b]) == [a, b]
        assert sequencer.sequence([]) == []

    def test_is_permutation_without_duplicates(self, sequencer, make_track):
        tracks = [make_track(str(i), tags=["Rock"], artist=f"a{i % 3}") for i in range(10)]
        ordered = sequencer.sequence(tracks + tracks[:3])
        assert sorted(t.id for t in ordered) == sorted(t.id for t in tracks)

    def test_seed_first_and_not_repeated(self, sequencer, make_track):
        tracks = [make_track(str(i), tags=["Rock"], artist=f"a{i}") for i in range(6)]
        seed = tracks[3]
        ordered = sequencer.sequence(tracks, seed_track=seed)
        assert ordered[0].id == "3"
        assert [t.id for t in ordered].count("3") == 1
        assert len(ordered) == 6

    def test_seed_with_tiny_selection(self, sequencer, make_track):
        seed = make_track("s")
        other = make_track("o")
        assert [t.id for t in sequencer.sequence([other], seed_track=seed)] == ["s", "o"]
        assert [t.id for t in sequencer.sequence([], seed_track=seed)] == ["s"]

    def test_two_balanced_artists_never_adjacent(self, make_track):
        tracks = [make_track(f"x{i}", tags=["Rock"], artist="x") for i in range(6)]
        tracks += [make_track(f"y{i}", tags=["Rock"], artist="y") for i in range(6)]
        for seed in range(25):
            sequencer = FlowSequencer(StationConfig(), random.Random(seed))
            assert _adjacent_same_artist(sequencer.sequence(tracks)) == []

    def test_distinct_artists_never_adjacent(self, make_track):
        tracks = [make_track(str(i), tags=["Pop"], artist=f"a{i}") for i in range(12)]
        sequencer = FlowSequencer(StationConfig(), random.Random(7))
        assert _adjacent_same_artist(sequencer.sequence(tracks)) == []

    def test_seed_artist_not_repeated_next(self, sequencer, make_track):
        seed = make_track("s", tags=["Rock"], artist="x")
        selection = [
            make_track("x2", tags=["Rock"], artist="x"),
            make_track("y1", tags=["Rock"], artist="y"),
            make_track("y2", tags=["Jazz"], artist="y"),
        ]
        ordered = sequencer.sequence(selection, seed_track=seed)
        assert ordered[0].id == "s"
        assert ordered[1].artist_address == "y"

    def test_same_seed_same_order(self, make_track):
        tracks = [make_track(str(i), tags=["Rock", f"t{i % 4}"], artist=f"a{i % 5}") for i in range(15)]
        first = FlowSequencer(StationConfig(), random.Random(99)).sequence(tracks)
        second = FlowSequencer(StationConfig(), random.Random(99)).sequence(tracks)
        assert [t.id for t in first] == [t.id for t in second]

    @pytest.mark.parametrize("mix", [{"x": 3, "y": 1, "z": 1}, {"x": 3, "y": 2}, {"x": 4, "y": 2, "z": 1}])
    def test_dominant_artist_spaced_for_every_rng_seed(self, make_track, mix):
        tracks = [
            make_track(f"{artist}{i}", tags=["Rock"], artist=artist)
            for artist, n in mix.items()
            for i in range(n)
        ]
        for seed in range(200):
            sequencer = FlowSequencer(StationConfig(), random.Random(seed))
            ordered = sequencer.sequence(tracks)
            assert _adjacent_same_artist(ordered) == [], f"rng seed {seed}: {[t.id for t in ordered]}"
            assert ordered[0].artist_address == "x"

    def test_seed_artist_spacing_holds_with_dominant_artist(self, make_track):
        seed = make_track("s", tags=["Rock"], artist="y")
        selection = [make_track(f"x{i}", tags=["Rock"], artist="x") for i in range(3)]
        selection += [make_track("y1", tags=["Rock"], artist="y"), make_track("z1", tags=["Rock"], artist="z")]
        for rng_seed in range(100):
            sequencer = FlowSequencer(StationConfig(), random.Random(rng_seed))
            ordered = sequencer.sequence(selection, seed_track=seed)
            assert ordered[0].id == "s"
            assert _adjacent_same_artist(ordered) == []

    def test_unspaceable_selection_still_complete(self, make_track):
        tracks = [make_track(f"x{i}", artist="x") for i in range(4)] + [make_track("y0", artist="y")]
        ordered = FlowSequencer(StationConfig(), random.Random(3)).sequence(tracks)
        assert sorted(t.id for t in ordered) == sorted(t.id for t in tracks)


class TestSpacingFeasible:
    def test_majority_artist_fits_alternating(self):
        assert spacing_feasible({"x": 3, "y": 1, "z": 1}, 5)
        assert not spacing_feasible({"x": 3, "y": 1}, 4)

    def test_previous_artist_needs_a_track_in_front(self):
        assert spacing_feasible({"x": 2, "y": 2}, 4, previous="x")
        assert not spacing_feasible({"x": 3, "y": 2}, 5, previous="x")
        assert spacing_feasible({"x": 3, "y": 2}, 5, previous="y")

    def test_tracks_without_artist_count_as_spacers(self):
        assert spacing_feasible({"x": 2}, 3)
        assert not spacing_feasible({"x": 2}, 2)
