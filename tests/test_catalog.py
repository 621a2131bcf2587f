"""Tests for catalog record coercion, snapshot loading and merging."""

import json

from vibe_station.catalog import (
    catalog_summary,
    ensure_tracks,
    load_snapshot,
    merge_with_snapshot,
    track_from_record,
)


def test_record_with_lyrics_object():
    track = track_from_record({
        "Id": "abc",
        "Tags": ["Rock"],
        "Address": "GARTIST",
        "Plays": 7,
        "Created_At": "2024-05-01T12:00:00Z",
        "lyrics": {"title": "Fallback Title", "style": ["Indie", "Rock"], "lyrics": "la la"},
    })
    assert track.id == "abc"
    assert track.title == "Fallback Title"
    assert track.tags == ("Rock", "Indie")
    assert track.lyrics_text == "la la"
    assert track.artist_address == "GARTIST"
    assert track.created_at.year == 2024


def test_malformed_records_skipped(make_track):
    records = [
        {"Id": "1", "Tags": ["Pop"]},
        {"Title": "no id"},
        "not a record",
        make_track("4"),
    ]
    assert [t.id for t in ensure_tracks(records)] == ["1", "4"]


class TestCounters:
    def test_unreadable_counts_default_to_zero(self):
        [track] = ensure_tracks([{"Id": "3", "Plays": "many", "Views": [1]}])
        assert track.id == "3"
        assert (track.plays, track.views) == (0, 0)

    def test_non_finite_counts_default_to_zero(self):
        tracks = ensure_tracks([
            {"Id": "1", "Plays": float("inf"), "Views": float("-inf")},
            {"Id": "2", "Plays": float("nan")},
            {"Id": "3", "Plays": "inf"},
        ])
        assert [(t.id, t.plays, t.views) for t in tracks] == [("1", 0, 0), ("2", 0, 0), ("3", 0, 0)]

    def test_numeric_strings_and_floats(self):
        [track] = ensure_tracks([{"Id": "1", "Plays": "12", "Views": 7.9}])
        assert (track.plays, track.views) == (12, 7)

    def test_negative_counts_clamped(self):
        [track] = ensure_tracks([{"Id": "1", "Plays": -5}])
        assert track.plays == 0

    def test_overflowing_snapshot_counts(self, tmp_path):
        path = tmp_path / "snapshot.json"
        path.write_text('[{"Id": "1", "Plays": 1e400}, {"Id": "2", "Views": Infinity}, {"Id": "3", "Plays": 4}]')
        tracks = load_snapshot(path)
        assert [(t.id, t.plays, t.views) for t in tracks] == [("1", 0, 0), ("2", 0, 0), ("3", 4, 0)]


def test_ensure_tracks_none():
    assert ensure_tracks(None) == []


class TestLoadSnapshot:
    def test_songs_object(self, tmp_path):
        path = tmp_path / "snapshot.json"
        path.write_text(json.dumps({"songs": [{"Id": "1"}, {"Id": "2"}], "tagGraph": {}}))
        assert [t.id for t in load_snapshot(path)] == ["1", "2"]

    def test_plain_list(self, tmp_path):
        path = tmp_path / "snapshot.json"
        path.write_text(json.dumps([{"Id": "1", "Tags": ["Jazz"]}]))
        [track] = load_snapshot(path)
        assert track.tags == ("Jazz",)

    def test_missing_file(self, tmp_path):
        assert load_snapshot(tmp_path / "missing.json") == []

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "snapshot.json"
        path.write_text("{oops")
        assert load_snapshot(path) == []


def test_merge_with_snapshot():
    live = [
        {"Id": "1", "Tags": [], "Title": "Live One"},
        {"Id": "2", "Tags": ["Fresh"], "Address": "GLIVE"},
    ]
    snapshot = [
        {"Id": "1", "Tags": ["Old"], "Address": "GOLD", "Title": "Old One"},
        {"Id": "2", "Tags": ["Stale"], "Address": "GOTHER"},
        {"Id": "3", "Tags": ["Archive"]},
    ]

    merged = {t.id: t for t in merge_with_snapshot(live, snapshot)}

    assert list(merged) == ["1", "2", "3"]
    assert merged["1"].title == "Live One"
    assert merged["1"].tags == ("Old",)
    assert merged["1"].artist_address == "GOLD"
    assert merged["2"].tags == ("Fresh",)
    assert merged["2"].artist_address == "GLIVE"
    assert merged["3"].tags == ("Archive",)


def test_catalog_summary(make_track):
    tracks = [
        make_track("1", tags=["Rock"], artist="a", plays=10),
        make_track("2", tags=["Rock", "Jazz"], artist="b", plays=5),
        make_track("3", artist="a", plays=0),
    ]
    summary = catalog_summary(tracks)
    assert summary["total_tracks"] == 3
    assert summary["artists"] == 2
    assert summary["untagged_tracks"] == 1
    assert summary["distinct_tags"] == 2
    assert summary["top_tags"][0] == {"tag": "Rock", "count": 2}
    assert summary["total_plays"] == 15
