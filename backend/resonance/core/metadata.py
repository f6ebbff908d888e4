"""
Container-tag reader for uploaded files.

mutagen is the primary source for title/artist/album, duration and bitrate.
When mutagen cannot determine a duration, soundfile is asked instead (covers
bare WAV/FLAC/OGG files without a recognised header). Nothing here raises:
an unreadable file yields empty tags and duration 0.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import soundfile as sf
import structlog
from mutagen import File as MutagenFile

log = structlog.get_logger()


@dataclass
class ExtractedMetadata:
    title: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None
    duration: int = 0      # seconds
    bitrate: int = 0       # bits per second, 0 when unknown


def first_text(value: Any) -> Optional[str]:
    """First textual value of a tag regardless of container flavour."""
    if value is None:
        return None
    if hasattr(value, "text"):          # ID3 frame
        value = value.text
    if isinstance(value, (list, tuple)):
        if not value:
            return None
        value = value[0]
    if isinstance(value, bytes):        # MP4 freeform atoms
        value = value.decode("utf-8", "replace")
    text = str(value).strip()
    return text or None


def _lookup(tags, *names: str) -> Optional[str]:
    for name in names:
        try:
            value = tags.get(name)
        except (KeyError, ValueError):
            continue
        text = first_text(value)
        if text:
            return text
    return None


class MetadataExtractor:

    def extract(self, path: Path) -> ExtractedMetadata:
        meta = ExtractedMetadata()
        try:
            audio = MutagenFile(str(path), easy=True)
        except Exception as e:
            log.warning("metadata_read_failed", file=path.name, error=str(e))
            audio = None

        if audio is not None:
            info = getattr(audio, "info", None)
            length = getattr(info, "length", None)
            if length:
                meta.duration = max(0, int(round(length)))
            meta.bitrate = int(getattr(info, "bitrate", 0) or 0)

            tags = audio.tags
            if tags is not None:
                # easy keys first, raw ID3 frames for WAVE/AIFF containers
                meta.title  = _lookup(tags, "title", "TIT2")
                meta.artist = _lookup(tags, "artist", "TPE1")
                meta.album  = _lookup(tags, "album", "TALB")

        if meta.duration == 0:
            meta.duration = self._soundfile_duration(path)

        log.info(
            "metadata_extracted",
            file=path.name,
            duration=meta.duration,
            bitrate=meta.bitrate,
            tagged=meta.title is not None,
        )
        return meta

    def _soundfile_duration(self, path: Path) -> int:
        try:
            return max(0, int(round(sf.info(str(path)).duration)))
        except Exception as e:
            log.warning("duration_fallback_failed", file=path.name, error=str(e))
            return 0
