"""Service providers for the routers. Each one is a FastAPI dependency so tests can override it."""
import random

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from resonance.config import settings
from resonance.core.analysis import AudioAnalyzer
from resonance.core.catalog import TrackCatalog
from resonance.core.ingest import IngestProcessor
from resonance.core.metadata import MetadataExtractor
from resonance.core.process import ProcessRunner, Runner
from resonance.core.storage import LocalStorage, get_storage
from resonance.core.transcode import Transcoder
from resonance.db import get_db


def get_runner() -> Runner:
    return ProcessRunner()


def get_catalog(db: AsyncSession = Depends(get_db)) -> TrackCatalog:
    return TrackCatalog(db)


def get_analyzer(runner: Runner = Depends(get_runner)) -> AudioAnalyzer:
    return AudioAnalyzer(runner, settings.FFMPEG_BIN, settings.ANALYSIS_TIMEOUT_SEC)


def get_transcoder(runner: Runner = Depends(get_runner)) -> Transcoder:
    return Transcoder(runner, settings.FFMPEG_BIN, settings.PROCESS_TIMEOUT_SEC)


def get_rng() -> random.Random:
    return random.Random()


def get_ingest_processor(
    catalog: TrackCatalog = Depends(get_catalog),
    storage: LocalStorage = Depends(get_storage),
    transcoder: Transcoder = Depends(get_transcoder),
    analyzer: AudioAnalyzer = Depends(get_analyzer),
) -> IngestProcessor:
    return build_ingest_processor(catalog, storage, transcoder, analyzer)


def build_ingest_processor(catalog, storage, transcoder, analyzer) -> IngestProcessor:
    return IngestProcessor(
        catalog=catalog,
        storage=storage,
        extractor=MetadataExtractor(),
        transcoder=transcoder,
        analyzer=analyzer,
        allowed_types=settings.ALLOWED_AUDIO_TYPES,
        max_upload_bytes=settings.MAX_UPLOAD_SIZE_MB * 1024 * 1024,
        target_bitrate_kbps=settings.TARGET_BITRATE_KBPS,
        passthrough_max_kbps=settings.PASSTHROUGH_MAX_BITRATE_KBPS,
        chunk_size=settings.UPLOAD_CHUNK_SIZE,
    )
