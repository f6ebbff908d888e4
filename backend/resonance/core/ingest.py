"""
Ingest pipeline: upload stream → catalog track.

1. Stream to temp storage under a name derived from the new track id
2. Read tags and duration from the temp file
3. Passthrough (MP3 at or under the bitrate ceiling) or transcode to MP3
4. Analyze energy, tempo and key (best-effort)
5. Commit the catalog row, then drop the temp file

Anything that fails after step 1 removes both the temp file and the final
file before the error reaches the caller, so a track either exists with its
file or not at all.
"""
import os
import uuid
from pathlib import PurePath
from typing import Optional

import structlog
from starlette.concurrency import run_in_threadpool

from resonance.core.analysis import AudioAnalyzer
from resonance.core.catalog import TrackCatalog
from resonance.core.errors import ResonanceError, StorageError, ValidationError
from resonance.core.metadata import MetadataExtractor
from resonance.core.storage import LocalStorage
from resonance.core.transcode import Transcoder
from resonance.models.track import Track

log = structlog.get_logger()

UNKNOWN_ARTIST = "Unknown Artist"
MP3_TYPES = {"audio/mpeg", "audio/mp3"}

EXTENSIONS = {
    "audio/mpeg":  "mp3",
    "audio/mp3":   "mp3",
    "audio/wav":   "wav",
    "audio/x-wav": "wav",
    "audio/ogg":   "ogg",
    "audio/flac":  "flac",
    "audio/x-flac": "flac",
    "audio/m4a":   "m4a",
    "audio/x-m4a": "m4a",
    "audio/mp4":   "m4a",
    "audio/aac":   "aac",
}


def strip_extension(filename: Optional[str]) -> str:
    name = PurePath(filename or "").name
    return os.path.splitext(name)[0].strip()


class IngestProcessor:

    def __init__(
        self,
        catalog: TrackCatalog,
        storage: LocalStorage,
        extractor: MetadataExtractor,
        transcoder: Transcoder,
        analyzer: AudioAnalyzer,
        allowed_types,
        max_upload_bytes: int,
        target_bitrate_kbps: int = 192,
        passthrough_max_kbps: int = 256,
        chunk_size: int = 1024 * 1024,
    ):
        self.catalog = catalog
        self.storage = storage
        self.extractor = extractor
        self.transcoder = transcoder
        self.analyzer = analyzer
        self.allowed_types = set(allowed_types)
        self.max_upload_bytes = max_upload_bytes
        self.target_bitrate_kbps = target_bitrate_kbps
        self.passthrough_max_kbps = passthrough_max_kbps
        self.chunk_size = chunk_size

    def validate(self, content_type: Optional[str]):
        if content_type not in self.allowed_types:
            raise ValidationError("Invalid file type. Supported: MP3, WAV, OGG, FLAC, M4A, AAC")

    def should_passthrough(self, content_type: str, bitrate_bps: int) -> bool:
        if content_type not in MP3_TYPES:
            return False
        # unknown bitrate → transcode
        return 0 < bitrate_bps <= self.passthrough_max_kbps * 1000

    async def process(
        self,
        stream,
        content_type: Optional[str],
        filename: Optional[str],
        uploaded_by: Optional[uuid.UUID] = None,
        fallback_title: Optional[str] = None,
        fallback_artist: Optional[str] = None,
    ) -> Track:
        self.validate(content_type)

        track_id = uuid.uuid4()
        temp_path = self.storage.temp_path(track_id, EXTENSIONS.get(content_type, "bin"))
        final_path = self.storage.audio_path(track_id)
        log.info("ingest_start", track_id=str(track_id), content_type=content_type)

        committed = False
        try:
            size = await self.storage.save_stream(
                stream, temp_path, self.max_upload_bytes, self.chunk_size
            )

            meta = await run_in_threadpool(self.extractor.extract, temp_path)
            base_name = strip_extension(filename)

            if self.should_passthrough(content_type, meta.bitrate):
                self.storage.promote(temp_path, final_path)
                mode = "passthrough"
            else:
                await self.transcoder.transcode(temp_path, final_path, self.target_bitrate_kbps)
                mode = "transcoded"

            if not final_path.exists():
                raise StorageError("Processed file was not written")
            final_size = self.storage.size(final_path)

            analysis = await self.analyzer.analyze(final_path)

            track = Track(
                id=track_id,
                title=meta.title or fallback_title or base_name or "Untitled",
                artist=meta.artist or fallback_artist or UNKNOWN_ARTIST,
                album=meta.album,
                duration=meta.duration,
                stored_path=self.storage.relative(final_path),
                original_filename=base_name or None,
                content_type=content_type,
                file_size_bytes=final_size,
                bpm=analysis.bpm,
                key=analysis.key,
                energy=analysis.energy,
                uploaded_by=uploaded_by,
            )
            track = await self.catalog.add(track)
            # the row now references final_path; keep the file whatever happens next
            committed = True
            track = await self.catalog.refresh(track)

            log.info(
                "ingest_complete",
                track_id=str(track_id),
                mode=mode,
                upload_bytes=size,
                stored_bytes=final_size,
                duration=track.duration,
            )
            return track

        except ResonanceError as e:
            log.error("ingest_failed", track_id=str(track_id), error=e.message)
            raise
        finally:
            self.storage.remove(temp_path)
            if not committed:
                self.storage.remove(final_path)
