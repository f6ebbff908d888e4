"""Radio-mode scoring and ranking."""
import random

from conftest import make_track
from resonance.core.similarity import (
    KEY_COMPATIBILITY,
    are_bpms_similar,
    are_energies_similar,
    are_keys_compatible,
    rank_similar,
    score_similarity,
)


def test_bpm_similarity_tolerance():
    assert are_bpms_similar(120, 134, 15)
    assert are_bpms_similar(120, 135, 15)
    assert not are_bpms_similar(120, 136, 15)
    assert are_bpms_similar(None, 90, 15)


def test_energy_similarity_treats_zero_as_known():
    assert are_energies_similar(None, 90)
    assert not are_energies_similar(0, 90)
    assert are_energies_similar(0, 25)


def test_key_compatibility():
    assert are_keys_compatible("C", "Am")
    assert are_keys_compatible("Am", "C")
    assert not are_keys_compatible("C", "F#")
    assert are_keys_compatible(None, "F#")
    assert are_keys_compatible("C", "")
    # equal keys are compatible even outside the table
    assert are_keys_compatible("Abm", "Abm")


def test_key_table_lists_each_key_first():
    for key, compatible in KEY_COMPATIBILITY.items():
        assert compatible[0] == key
        assert len(compatible) == 6


def test_identical_tracks_score_maximum():
    a = make_track(artist="Daft Punk", album="Discovery", bpm=123, key="Am", energy=70)
    b = make_track(artist="daft punk", album="DISCOVERY", bpm=123, key="Am", energy=70)
    assert score_similarity(a, b) == 40 + 15 + 30 + 25 + 30


def test_unknown_attributes_still_score_base_points():
    a = make_track()
    b = make_track()
    assert score_similarity(a, b) == 20 + 15 + 20


def test_partial_artist_match():
    a = make_track(artist="Daft Punk")
    b = make_track(artist="Daft Punk feat. Pharrell")
    assert score_similarity(a, b) == 20 + 20 + 15 + 20


def test_key_and_energy_outweigh_partial_artist():
    source = make_track(artist="Artist", key="C", energy=50)
    exact_key = make_track(artist="Someone", key="C", energy=55)
    partial_artist = make_track(artist="Artist Band", key="F#", energy=95)
    assert score_similarity(source, exact_key) > score_similarity(source, partial_artist)


def test_exact_artist_and_key_beat_partial_artist_despite_energy_gap():
    source = make_track(artist="A", key="C", energy=50)
    # same energy gap of 50 on both sides; only artist and key differ
    exact = make_track(artist="a", key="C", energy=100)
    partial = make_track(artist="A Band", key="F#", energy=100)

    assert score_similarity(source, exact) == 40 + 20 + 25
    assert score_similarity(source, partial) == 20 + 20
    assert score_similarity(source, exact) > score_similarity(source, partial)


def test_rank_excludes_source_and_respects_limit():
    source = make_track(artist="A", bpm=120, energy=50)
    catalog = [source] + [make_track(artist="A", bpm=120 + i, energy=50) for i in range(10)]

    ranked = rank_similar(source, catalog, limit=4, rng=random.Random(1))
    assert len(ranked) == 4
    assert all(c.track.id != source.id for c in ranked)


def test_rank_orders_tiers_best_first():
    source = make_track(artist="A", album="X", bpm=120, key="C", energy=50)
    catalog = [
        make_track(artist="Z", bpm=200, key="F#", energy=0),
        make_track(artist="A", album="X", bpm=121, key="C", energy=52),
        make_track(artist="A", bpm=150, key="G", energy=90),
        make_track(artist="Z", bpm=118, key="Am", energy=48),
    ]
    ranked = rank_similar(source, catalog, limit=10, rng=random.Random(3))
    tiers = [c.tier for c in ranked]
    assert tiers == sorted(tiers, reverse=True)
    assert ranked[0].track is catalog[1]
    assert ranked[-1].track is catalog[0]


def test_rank_is_reproducible_with_seed():
    source = make_track()
    catalog = [make_track(title=str(i)) for i in range(8)]
    first = [c.track.id for c in rank_similar(source, catalog, 8, rng=random.Random(42))]
    second = [c.track.id for c in rank_similar(source, catalog, 8, rng=random.Random(42))]
    assert first == second


def test_rank_shuffles_within_a_tier():
    source = make_track()
    catalog = [make_track(title=str(i)) for i in range(6)]
    orders = {
        tuple(c.track.id for c in rank_similar(source, catalog, 6, rng=random.Random(seed)))
        for seed in range(20)
    }
    assert len(orders) > 1
    for order in orders:
        assert set(order) == {t.id for t in catalog}


def test_rank_zero_limit_is_empty():
    source = make_track()
    assert rank_similar(source, [make_track()], limit=0) == []


def test_rank_only_source_is_empty():
    source = make_track()
    assert rank_similar(source, [source], limit=5) == []
