"""
Re-upload detection by name.

An incoming title is compared against each catalog track's recorded upload
filename; tracks imported before filenames were recorded fall back to their
title. A track that has a filename is never matched on its title, so a legacy
track whose title was edited after upload can be missed.
"""
import uuid
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from resonance.models.track import Track


@dataclass
class DuplicateCandidate:
    title: str
    artist: Optional[str] = None


@dataclass
class DuplicateMatch:
    incoming_title: str
    incoming_artist: Optional[str]
    existing_track_id: uuid.UUID
    existing_track: Track


def normalize(value: Optional[str]) -> str:
    return (value or "").lower().strip()


def matches(track: Track, normalized_title: str) -> bool:
    filename = normalize(track.original_filename)
    if filename:
        return filename == normalized_title
    return normalize(track.title) == normalized_title


def find_duplicates(candidates: Iterable[DuplicateCandidate], catalog: Sequence[Track]) -> List[DuplicateMatch]:
    duplicates = []
    for incoming in candidates:
        wanted = normalize(incoming.title)
        match = next((t for t in catalog if matches(t, wanted)), None)
        if match is not None:
            duplicates.append(DuplicateMatch(
                incoming_title=incoming.title,
                incoming_artist=incoming.artist,
                existing_track_id=match.id,
                existing_track=match,
            ))
    return duplicates
