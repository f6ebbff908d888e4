"""
Tracks API.

Upload runs the whole ingest pipeline inside the request and answers with the
committed track. Radio mode, duplicate checks and re-analysis read the shared
catalog; library management is admin-only (see core.auth).
"""
import random
import uuid
from typing import List

import structlog
from fastapi import APIRouter, Depends, File, Query, Response, UploadFile, status
from fastapi.responses import FileResponse, JSONResponse

from resonance.api.deps import get_analyzer, get_catalog, get_ingest_processor, get_rng
from resonance.config import settings
from resonance.core import auth
from resonance.core.analysis import AudioAnalyzer
from resonance.core.auth import Caller, require
from resonance.core.catalog import TrackCatalog
from resonance.core.duplicates import DuplicateCandidate, find_duplicates
from resonance.core.errors import NotFoundError
from resonance.core.ingest import IngestProcessor
from resonance.core.reanalysis import reanalyze_catalog
from resonance.core.similarity import rank_similar
from resonance.core.storage import LocalStorage, get_storage
from resonance.models.track import Track
from resonance.schemas.track import (
    DuplicateCheckRequest, DuplicateCheckResponse, DuplicateMatchSchema,
    ReanalysisQueuedResponse, ReanalysisResponse, SimilarTrackResponse,
    SimilarTracksResponse, TrackResponse, TrackUpdateRequest,
)

router = APIRouter()
log    = structlog.get_logger()


async def _get_or_404(catalog: TrackCatalog, track_id: uuid.UUID) -> Track:
    track = await catalog.get(track_id)
    if not track:
        raise NotFoundError("Track not found")
    return track


# ── Library management ─────────────────────────────────────────────────────

@router.post("/upload", response_model=TrackResponse, status_code=status.HTTP_201_CREATED)
async def upload_track(
    file: UploadFile = File(...),
    caller: Caller = Depends(require(auth.UPLOAD_TRACK)),
    processor: IngestProcessor = Depends(get_ingest_processor),
):
    return await processor.process(
        file,
        content_type=file.content_type,
        filename=file.filename,
        uploaded_by=caller.user_id,
    )


@router.get("/", response_model=List[TrackResponse])
async def list_tracks(
    _: Caller = Depends(require(auth.LIST_TRACKS)),
    catalog: TrackCatalog = Depends(get_catalog),
):
    return await catalog.list_all()


@router.post("/check-duplicates", response_model=DuplicateCheckResponse)
async def check_duplicates(
    body: DuplicateCheckRequest,
    _: Caller = Depends(require(auth.CHECK_DUPLICATES)),
    catalog: TrackCatalog = Depends(get_catalog),
):
    candidates = [DuplicateCandidate(title=t.title, artist=t.artist) for t in body.tracks]
    matches = find_duplicates(candidates, await catalog.list_all())
    log.info("duplicates_checked", incoming=len(candidates), duplicates=len(matches))
    return DuplicateCheckResponse(duplicates=[
        DuplicateMatchSchema(
            title=m.incoming_title,
            artist=m.incoming_artist,
            existing_track_id=m.existing_track_id,
            existing_track=TrackResponse.model_validate(m.existing_track),
        )
        for m in matches
    ])


@router.post("/analyze-all", response_model=ReanalysisResponse)
async def analyze_all(
    background: bool = Query(False, description="Queue on the Celery worker instead of running inline"),
    _: Caller = Depends(require(auth.REANALYZE)),
    catalog: TrackCatalog = Depends(get_catalog),
    analyzer: AudioAnalyzer = Depends(get_analyzer),
    storage: LocalStorage = Depends(get_storage),
):
    """Fill bpm/key/energy for tracks that have no energy yet."""
    if background:
        from resonance.tasks.analysis import reanalyze_catalog_task
        job = reanalyze_catalog_task.delay()
        queued = ReanalysisQueuedResponse(job_id=job.id, status="queued", message="Re-analysis queued.")
        return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content=queued.model_dump())

    summary = await reanalyze_catalog(catalog, analyzer, storage)
    message = "Analysis complete" if summary.analyzed or summary.failed else "All tracks already analyzed"
    return ReanalysisResponse(message=message, **summary.as_dict())


# ── Single track ───────────────────────────────────────────────────────────

@router.get("/{track_id}", response_model=TrackResponse)
async def get_track(
    track_id: uuid.UUID,
    _: Caller = Depends(require(auth.READ_TRACK)),
    catalog: TrackCatalog = Depends(get_catalog),
):
    return await _get_or_404(catalog, track_id)


@router.patch("/{track_id}", response_model=TrackResponse)
async def update_track(
    track_id: uuid.UUID,
    body: TrackUpdateRequest,
    _: Caller = Depends(require(auth.UPDATE_TRACK)),
    catalog: TrackCatalog = Depends(get_catalog),
):
    track = await _get_or_404(catalog, track_id)
    return await catalog.update_metadata(track, title=body.title, artist=body.artist, album=body.album)


@router.delete("/{track_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_track(
    track_id: uuid.UUID,
    _: Caller = Depends(require(auth.DELETE_TRACK)),
    catalog: TrackCatalog = Depends(get_catalog),
    storage: LocalStorage = Depends(get_storage),
):
    track = await _get_or_404(catalog, track_id)
    if not storage.remove(storage.resolve(track.stored_path)):
        log.warning("track_file_missing", track_id=str(track_id), path=track.stored_path)
    await catalog.delete(track)
    log.info("track_deleted", track_id=str(track_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{track_id}/stream")
async def stream_track(
    track_id: uuid.UUID,
    _: Caller = Depends(require(auth.STREAM_TRACK)),
    catalog: TrackCatalog = Depends(get_catalog),
    storage: LocalStorage = Depends(get_storage),
):
    track = await _get_or_404(catalog, track_id)
    path = storage.resolve(track.stored_path)
    if not path.exists():
        raise NotFoundError("Audio file not found")
    return FileResponse(path, media_type="audio/mpeg")


@router.get("/{track_id}/similar", response_model=SimilarTracksResponse)
async def get_similar(
    track_id: uuid.UUID,
    limit: int = Query(default=settings.SIMILAR_DEFAULT_LIMIT, ge=1),
    _: Caller = Depends(require(auth.SIMILAR_TRACKS)),
    catalog: TrackCatalog = Depends(get_catalog),
    rng: random.Random = Depends(get_rng),
):
    """
    Radio mode: rank the rest of the catalog against {track_id}.
    Order inside a 20-point score tier is shuffled on every call.
    """
    source = await _get_or_404(catalog, track_id)
    limit = min(limit, settings.SIMILAR_MAX_LIMIT)

    ranked = rank_similar(
        source,
        await catalog.list_all(),
        limit,
        rng=rng,
        bpm_tolerance=settings.BPM_TOLERANCE,
        energy_tolerance=settings.ENERGY_TOLERANCE,
    )
    log.info("similar_tracks_found", query_id=str(track_id), results=len(ranked))

    return SimilarTracksResponse(
        source_track=TrackResponse.model_validate(source),
        similar_tracks=[
            SimilarTrackResponse(
                **TrackResponse.model_validate(c.track).model_dump(),
                similarity_score=c.score,
            )
            for c in ranked
        ],
    )
