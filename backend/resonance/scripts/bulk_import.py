"""
Bulk import a folder of audio files into the shared library.

Every file goes through the same ingest pipeline as an HTTP upload
(transcode, analysis, catalog row). Files without embedded tags get their
title/artist from an "Artist - Title" file name.

Usage:
  python -m resonance.scripts.bulk_import --source /music/inbox
  python -m resonance.scripts.bulk_import --source /music/inbox --user admin
  python -m resonance.scripts.bulk_import --source /music/inbox --dry-run
"""

import argparse
import asyncio
import re
import sys
from pathlib import Path
from typing import Optional, Tuple

import structlog
from sqlalchemy import select
from starlette.datastructures import UploadFile

from resonance.core.errors import ResonanceError

log = structlog.get_logger()

CONTENT_TYPES = {
    ".mp3":  "audio/mpeg",
    ".wav":  "audio/wav",
    ".flac": "audio/flac",
    ".m4a":  "audio/m4a",
    ".aac":  "audio/aac",
    ".ogg":  "audio/ogg",
}

UNKNOWN_ARTIST = "Unknown Artist"

_SUFFIXES = [
    re.compile(r"_spotdown\.org$", re.IGNORECASE),
    re.compile(r"_spotify$", re.IGNORECASE),
    re.compile(r"\s*\(Official.*?\)", re.IGNORECASE),
    re.compile(r"\s*\[Official.*?\]", re.IGNORECASE),
]
_FROM_ALBUM = re.compile(r"^(.+?)\s*-\s*From\s*['\"](.+?)['\"]$", re.IGNORECASE)
_ARTIST_TITLE = re.compile(r"^(.+?)\s*[-–—]\s*(.+)$")


def parse_filename(filename: str) -> Tuple[str, str]:
    """(title, artist) guessed from a download-style file name."""
    name = Path(filename).stem
    for pattern in _SUFFIXES:
        name = pattern.sub("", name)

    # "Title - From 'Album'" has a dash but no artist
    from_album = _FROM_ALBUM.match(name)
    if from_album:
        return from_album.group(1).strip(), UNKNOWN_ARTIST

    artist_title = _ARTIST_TITLE.match(name)
    if artist_title:
        return artist_title.group(2).strip(), artist_title.group(1).strip()

    return name.strip(), UNKNOWN_ARTIST


def scan(source: Path) -> list[Path]:
    return sorted(
        p for p in source.iterdir()
        if p.is_file() and p.suffix.lower() in CONTENT_TYPES
    )


async def import_files(files, processor, catalog, uploaded_by=None) -> dict:
    counts = {"imported": 0, "skipped": 0, "failed": 0}

    for i, path in enumerate(files, start=1):
        progress = f"[{i}/{len(files)}]"
        title, artist = parse_filename(path.name)

        if await catalog.exists_with_title(title):
            print(f"{progress} Skipped (exists): {title}")
            counts["skipped"] += 1
            continue

        try:
            with open(path, "rb") as fh:
                track = await processor.process(
                    UploadFile(file=fh, filename=path.name),
                    content_type=CONTENT_TYPES[path.suffix.lower()],
                    filename=path.name,
                    uploaded_by=uploaded_by,
                    fallback_title=title,
                    fallback_artist=artist,
                )
        except (ResonanceError, OSError) as e:
            print(f"{progress} Error: {path.name} - {e}")
            counts["failed"] += 1
            continue

        print(f"{progress} Imported: {track.title} - {track.artist}")
        counts["imported"] += 1

    return counts


async def _lookup_user(db, username: str):
    from resonance.models.user import User
    return await db.scalar(select(User).where(User.username == username))


async def run(source: Path, username: Optional[str], dry_run: bool) -> int:
    files = scan(source)
    print(f"Found {len(files)} audio files")
    if not files:
        return 0

    if dry_run:
        for i, path in enumerate(files, start=1):
            title, artist = parse_filename(path.name)
            print(f"[{i}/{len(files)}] Would import: {title} - {artist}")
        return 0

    from resonance.api.deps import build_ingest_processor
    from resonance.config import settings
    from resonance.core.analysis import AudioAnalyzer
    from resonance.core.catalog import TrackCatalog
    from resonance.core.process import ProcessRunner
    from resonance.core.storage import get_storage
    from resonance.core.transcode import Transcoder
    from resonance.db import dispose_engine, get_session_factory, init_db

    await init_db()
    storage = get_storage()
    storage.ensure_dirs()
    runner = ProcessRunner()

    try:
        async with get_session_factory()() as db:
            uploaded_by = None
            if username:
                user = await _lookup_user(db, username)
                if user is None:
                    print(f"Error: user '{username}' not found", file=sys.stderr)
                    return 1
                uploaded_by = user.id

            catalog = TrackCatalog(db)
            processor = build_ingest_processor(
                catalog,
                storage,
                Transcoder(runner, settings.FFMPEG_BIN, settings.PROCESS_TIMEOUT_SEC),
                AudioAnalyzer(runner, settings.FFMPEG_BIN, settings.ANALYSIS_TIMEOUT_SEC),
            )
            counts = await import_files(files, processor, catalog, uploaded_by)
    finally:
        await dispose_engine()

    print("=" * 50)
    print(f"Imported: {counts['imported']}")
    print(f"Skipped:  {counts['skipped']}")
    print(f"Failed:   {counts['failed']}")
    log.info("bulk_import_complete", source=str(source), **counts)
    return 1 if counts["failed"] else 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Import a folder of audio files into the library")
    parser.add_argument("--source", type=Path, required=True, help="Folder containing audio files")
    parser.add_argument("--user", default=None, help="Username recorded as uploader")
    parser.add_argument("--dry-run", action="store_true", help="List what would be imported")
    args = parser.parse_args(argv)

    if not args.source.is_dir():
        parser.error(f"cannot read folder {args.source}")

    return asyncio.run(run(args.source, args.user, args.dry_run))


if __name__ == "__main__":
    sys.exit(main())
