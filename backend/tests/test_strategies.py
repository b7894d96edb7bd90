from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from songmatch.services.strategies import (
    FilterMode,
    recommend_artist,
    recommend_energy,
    recommend_genre,
    recommend_tempo,
    recommend_top,
    select_strategy,
)
from stubs import FAR_FEATURES, InMemoryCatalog, make_track


def _ids(tracks):
    return [track.track_id for track in tracks]


@pytest.mark.parametrize(
    "value, expected",
    [
        ("genre", FilterMode.GENRE),
        (" Tempo ", FilterMode.TEMPO),
        (FilterMode.ARTIST, FilterMode.ARTIST),
        ("bogus", FilterMode.TOP),
        (None, FilterMode.TOP),
        (3, FilterMode.TOP),
    ],
)
def test_filter_mode_parse(value, expected):
    assert FilterMode.parse(value) is expected


def test_every_mode_has_a_strategy():
    for mode in FilterMode:
        assert callable(select_strategy(mode))


def _top_catalog() -> InMemoryCatalog:
    return InMemoryCatalog(
        [
            make_track("ref", popularity=99),
            make_track("c1", popularity=10, energy=0.79),
            make_track("c2", popularity=20, energy=0.75),
            make_track("c3", popularity=90, energy=0.7),
            make_track("far", popularity=100, **FAR_FEATURES),
        ]
    )


def test_top_keeps_closest_shortlist_then_orders_by_popularity():
    catalog = _top_catalog()
    reference = catalog.tracks[0]

    # Shortlist of two holds c1 and c2; c3 is more popular but scored worse.
    assert _ids(asyncio.run(recommend_top(catalog, reference, 1))) == ["c2"]
    assert catalog.thresholds_tried() == [0.15]

    assert _ids(asyncio.run(recommend_top(catalog, reference, 2))) == ["c3", "c2"]


def test_top_loosens_threshold_when_too_few():
    mid = {"energy": 0.3, "danceability": 0.2, "valence": 0.13}
    catalog = InMemoryCatalog(
        [
            make_track("ref"),
            make_track("m1", popularity=30, **mid),
            make_track("m2", popularity=60, **mid),
            make_track("far", **FAR_FEATURES),
        ]
    )

    result = asyncio.run(recommend_top(catalog, catalog.tracks[0], 2))

    assert _ids(result) == ["m2", "m1"]
    assert catalog.thresholds_tried() == [0.15, 0.20]


def test_genre_uses_scored_matches_in_genre():
    catalog = InMemoryCatalog(
        [
            make_track("ref", genre_id=5),
            make_track("g1", genre_id=5, energy=0.79),
            make_track("g2", genre_id=5, energy=0.75),
            make_track("o1", genre_id=6),
        ]
    )

    result = asyncio.run(recommend_genre(catalog, catalog.tracks[0], 2))

    assert sorted(_ids(result)) == ["g1", "g2"]
    assert all(track.genre_id == 5 for track in result)
    assert not [name for name, _ in catalog.calls if name == "by_genre"]


def test_genre_falls_back_to_most_popular_in_genre():
    catalog = InMemoryCatalog(
        [
            make_track("ref", genre_id=5, popularity=99),
            make_track("f1", genre_id=5, popularity=40, **FAR_FEATURES),
            make_track("f2", genre_id=5, popularity=70, **FAR_FEATURES),
            make_track("f3", genre_id=5, popularity=60, with_features=False),
            make_track("o1", genre_id=6, popularity=95),
        ]
    )

    result = asyncio.run(recommend_genre(catalog, catalog.tracks[0], 3))

    assert _ids(result) == ["f2", "f3", "f1"]
    assert catalog.thresholds_tried() == [0.20, 0.30]


def test_genre_without_reference_genre_is_empty():
    catalog = InMemoryCatalog([make_track("ref"), make_track("x")])
    assert asyncio.run(recommend_genre(catalog, catalog.tracks[0], 3)) == []
    assert catalog.calls == []


def test_artist_merges_artists_by_popularity():
    catalog = InMemoryCatalog(
        [
            make_track("ref", artist_ids=(1, 2), popularity=99),
            make_track("a1", artist_ids=(1,), popularity=30),
            make_track("a2", artist_ids=(1,), popularity=70),
            make_track("b1", artist_ids=(2,), popularity=50),
            make_track("shared", artist_ids=(1, 2), popularity=60),
            make_track("other", artist_ids=(3,), popularity=100),
        ]
    )
    reference = catalog.tracks[0]

    result = asyncio.run(recommend_artist(catalog, reference, 3))

    assert _ids(result) == ["a2", "shared", "b1"]
    assert all(reference.shares_artist(track) for track in result)
    assert [args for name, args in catalog.calls if name == "by_artist"] == [(1, 6), (2, 6)]


def test_artist_without_artists_is_empty():
    catalog = InMemoryCatalog([make_track("ref"), make_track("x", artist_ids=(1,))])
    assert asyncio.run(recommend_artist(catalog, catalog.tracks[0], 3)) == []


def _energy_catalog() -> InMemoryCatalog:
    return InMemoryCatalog(
        [
            make_track("ref"),
            make_track("e1", energy=0.85),
            make_track("e2", energy=0.7),
            make_track("e3", energy=0.62),
            make_track("e4", energy=0.55),
            make_track("low", energy=0.4),
        ]
    )


def test_energy_prefers_the_higher_floor():
    catalog = _energy_catalog()
    result = asyncio.run(recommend_energy(catalog, catalog.tracks[0], 3))
    assert _ids(result) == ["e1", "e2", "e3"]


def test_energy_relaxes_floor_when_too_few():
    catalog = _energy_catalog()
    result = asyncio.run(recommend_energy(catalog, catalog.tracks[0], 4))
    assert _ids(result) == ["e1", "e2", "e3", "e4"]
    energies = [track.audio_features.energy for track in result]
    assert energies == sorted(energies, reverse=True)
    assert min(energies) >= 0.5


def test_tempo_orders_by_distance_inside_window():
    catalog = InMemoryCatalog(
        [
            make_track("ref", tempo=120.0),
            make_track("t1", tempo=125.0),
            make_track("t2", tempo=118.0),
            make_track("t3", tempo=131.0),
            make_track("t4", tempo=111.0),
            make_track("t5", tempo=120.5),
        ]
    )

    result = asyncio.run(recommend_tempo(catalog, catalog.tracks[0], 3))

    assert _ids(result) == ["t5", "t2", "t1"]
    assert all(abs(track.audio_features.tempo - 120.0) <= 10.0 for track in result)
    assert [args for name, args in catalog.calls if name == "by_tempo_window"] == [(120.0, 10.0, 6)]
