"""Pydantic schemas for request/response."""
import uuid
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field


class TrackResponse(BaseModel):
    id: uuid.UUID
    title: str
    artist: Optional[str] = None
    album: Optional[str] = None
    duration: int
    stored_path: str
    original_filename: Optional[str] = None
    content_type: Optional[str] = None
    file_size_bytes: Optional[int] = None
    bpm: Optional[int] = None
    key: Optional[str] = None
    energy: Optional[int] = None
    uploaded_by: Optional[uuid.UUID] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class TrackUpdateRequest(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=500)
    artist: Optional[str] = Field(default=None, max_length=500)
    album: Optional[str] = Field(default=None, max_length=500)


# ── Duplicates ─────────────────────────────────────────────────────────────

class DuplicateCandidateSchema(BaseModel):
    title: str
    artist: Optional[str] = None


class DuplicateCheckRequest(BaseModel):
    tracks: List[DuplicateCandidateSchema]


class DuplicateMatchSchema(BaseModel):
    title: str
    artist: Optional[str] = None
    existing_track_id: uuid.UUID
    existing_track: TrackResponse


class DuplicateCheckResponse(BaseModel):
    duplicates: List[DuplicateMatchSchema]


# ── Radio mode ─────────────────────────────────────────────────────────────

class SimilarTrackResponse(TrackResponse):
    similarity_score: int


class SimilarTracksResponse(BaseModel):
    source_track: TrackResponse
    similar_tracks: List[SimilarTrackResponse]


# ── Re-analysis / jobs ─────────────────────────────────────────────────────

class ReanalysisResponse(BaseModel):
    message: str
    analyzed: int
    failed: int
    total: int


class ReanalysisQueuedResponse(BaseModel):
    job_id: str
    status: str
    message: str


class JobStatusResponse(BaseModel):
    job_id: str
    status: str
    result: Optional[dict] = None
    error: Optional[str] = None
