"""
Radio mode: score every catalog track against a source track and rank them.

Scores are additive integers (see `score_similarity`). Ranking groups scores
into tiers of 20 points, orders tiers best-first and shuffles inside each tier
so that repeated radio sessions from the same seed track do not replay the
same queue. Pass a seeded `random.Random` for reproducible order.
"""
import random
from dataclasses import dataclass
from typing import List, Optional, Sequence

from resonance.models.track import Track

TIER_WIDTH = 20

# Circle of fifths: the key itself, its relative, a fifth up and down, and
# the relatives of those two neighbours.
KEY_COMPATIBILITY = {
    "C":   ["C", "Am", "G", "F", "Em", "Dm"],
    "G":   ["G", "Em", "D", "C", "Bm", "Am"],
    "D":   ["D", "Bm", "A", "G", "F#m", "Em"],
    "A":   ["A", "F#m", "E", "D", "C#m", "Bm"],
    "E":   ["E", "C#m", "B", "A", "G#m", "F#m"],
    "B":   ["B", "G#m", "F#", "E", "D#m", "C#m"],
    "F#":  ["F#", "D#m", "C#", "B", "A#m", "G#m"],
    "F":   ["F", "Dm", "C", "Bb", "Am", "Gm"],
    "Bb":  ["Bb", "Gm", "F", "Eb", "Dm", "Cm"],
    "Eb":  ["Eb", "Cm", "Bb", "Ab", "Gm", "Fm"],
    "Ab":  ["Ab", "Fm", "Eb", "Db", "Cm", "Bbm"],
    "Db":  ["Db", "Bbm", "Ab", "Gb", "Fm", "Ebm"],
    "Am":  ["Am", "C", "Em", "Dm", "G", "F"],
    "Em":  ["Em", "G", "Bm", "Am", "D", "C"],
    "Bm":  ["Bm", "D", "F#m", "Em", "A", "G"],
    "F#m": ["F#m", "A", "C#m", "Bm", "E", "D"],
    "C#m": ["C#m", "E", "G#m", "F#m", "B", "A"],
    "G#m": ["G#m", "B", "D#m", "C#m", "F#", "E"],
    "D#m": ["D#m", "F#", "A#m", "G#m", "C#", "B"],
    "Dm":  ["Dm", "F", "Am", "Gm", "C", "Bb"],
    "Gm":  ["Gm", "Bb", "Dm", "Cm", "F", "Eb"],
    "Cm":  ["Cm", "Eb", "Gm", "Fm", "Bb", "Ab"],
    "Fm":  ["Fm", "Ab", "Cm", "Bbm", "Eb", "Db"],
    "Bbm": ["Bbm", "Db", "Fm", "Ebm", "Ab", "Gb"],
}


@dataclass
class SimilarityCandidate:
    track: Track
    score: int

    @property
    def tier(self) -> int:
        return self.score // TIER_WIDTH


# ── Pairwise predicates ────────────────────────────────────────────────────
# Unknown on either side counts as a match.

def are_keys_compatible(key1: Optional[str], key2: Optional[str]) -> bool:
    if not key1 or not key2:
        return True
    if key1 == key2:
        return True
    return key2 in KEY_COMPATIBILITY.get(key1, ())


def are_bpms_similar(bpm1: Optional[int], bpm2: Optional[int], tolerance: int = 15) -> bool:
    if bpm1 is None or bpm2 is None:
        return True
    return abs(bpm1 - bpm2) <= tolerance


def are_energies_similar(energy1: Optional[int], energy2: Optional[int], tolerance: int = 25) -> bool:
    if energy1 is None or energy2 is None:
        return True
    return abs(energy1 - energy2) <= tolerance


def _both(a, b) -> bool:
    return a is not None and b is not None


# ── Scoring ────────────────────────────────────────────────────────────────

def score_similarity(
    source: Track,
    track: Track,
    bpm_tolerance: int = 15,
    energy_tolerance: int = 25,
) -> int:
    score = 0

    if source.artist and track.artist:
        a, b = source.artist.lower(), track.artist.lower()
        if a == b:
            score += 40
        elif a in b or b in a:
            score += 20

    if source.album and track.album and source.album.lower() == track.album.lower():
        score += 15

    if are_bpms_similar(source.bpm, track.bpm, bpm_tolerance):
        score += 20
        if _both(source.bpm, track.bpm) and abs(source.bpm - track.bpm) <= 5:
            score += 10

    if are_keys_compatible(source.key, track.key):
        score += 15
        if source.key and track.key and source.key == track.key:
            score += 10

    if are_energies_similar(source.energy, track.energy, energy_tolerance):
        score += 20
        if _both(source.energy, track.energy) and abs(source.energy - track.energy) <= 10:
            score += 10

    return score


def rank_similar(
    source: Track,
    catalog: Sequence[Track],
    limit: int,
    rng: Optional[random.Random] = None,
    bpm_tolerance: int = 15,
    energy_tolerance: int = 25,
) -> List[SimilarityCandidate]:
    if limit <= 0:
        return []
    rng = rng or random.Random()

    scored = [
        SimilarityCandidate(t, score_similarity(source, t, bpm_tolerance, energy_tolerance))
        for t in catalog
        if t.id != source.id
    ]
    # shuffle, then a stable sort on tier keeps the shuffled order within a tier
    rng.shuffle(scored)
    scored.sort(key=lambda c: c.tier, reverse=True)
    return scored[:limit]
