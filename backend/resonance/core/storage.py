"""
Local audio storage.

    <UPLOADS_DIR>/temp/<id>_temp.<ext>   raw uploads while they are processed
    <UPLOADS_DIR>/audio/<id>.mp3         final files, referenced by Track.stored_path

Both roots share a parent so promoting a passthrough file is a single rename.
"""
import os
from pathlib import Path
from typing import Optional

import structlog
from starlette.concurrency import run_in_threadpool

from resonance.core.errors import StorageError, ValidationError

log = structlog.get_logger()

AUDIO_SUBDIR = "audio"
TEMP_SUBDIR  = "temp"
FINAL_EXT    = "mp3"


class LocalStorage:

    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()
        self.audio_dir = self.root / AUDIO_SUBDIR
        self.temp_dir = self.root / TEMP_SUBDIR

    def ensure_dirs(self):
        for d in (self.audio_dir, self.temp_dir):
            d.mkdir(parents=True, exist_ok=True)

    # ── Paths ──────────────────────────────────────────────────────────────

    def temp_path(self, track_id, ext: str) -> Path:
        return self.temp_dir / f"{track_id}_temp.{ext}"

    def audio_path(self, track_id) -> Path:
        return self.audio_dir / f"{track_id}.{FINAL_EXT}"

    def relative(self, path: Path) -> str:
        return path.relative_to(self.root).as_posix()

    def resolve(self, stored_path: str) -> Path:
        """Absolute path for a Track.stored_path; refuses anything outside the root."""
        path = (self.root / stored_path).resolve()
        if not path.is_relative_to(self.root):
            raise StorageError(f"Stored path escapes uploads root: {stored_path}")
        return path

    # ── Writes ─────────────────────────────────────────────────────────────

    async def save_stream(self, stream, dest: Path, max_bytes: int, chunk_size: int = 1024 * 1024) -> int:
        """
        Copy an async-readable stream (UploadFile) to `dest` in chunks.
        Stops and removes the partial file as soon as `max_bytes` is exceeded.
        """
        written = 0
        try:
            fh = await run_in_threadpool(open, dest, "wb")
            try:
                while True:
                    chunk = await stream.read(chunk_size)
                    if not chunk:
                        break
                    written += len(chunk)
                    if written > max_bytes:
                        raise ValidationError(
                            f"File too large. Maximum size is {max_bytes // (1024 * 1024)} MB",
                            status_code=413,
                        )
                    await run_in_threadpool(fh.write, chunk)
            finally:
                await run_in_threadpool(fh.close)
        except ValidationError:
            self.remove(dest)
            raise
        except OSError as e:
            self.remove(dest)
            log.error("storage_write_failed", path=dest.name, error=str(e))
            raise StorageError("Failed to store upload") from e
        return written

    def promote(self, src: Path, dest: Path):
        """Atomic move from temp to final storage."""
        try:
            os.replace(src, dest)
        except OSError as e:
            log.error("storage_promote_failed", src=src.name, dest=dest.name, error=str(e))
            raise StorageError("Failed to move file into library") from e

    def remove(self, path: Optional[Path]) -> bool:
        """Idempotent delete; failures are logged, never raised."""
        if path is None:
            return False
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            log.warning("file_remove_failed", path=path.name, error=str(e))
            return False

    def size(self, path: Path) -> int:
        try:
            return path.stat().st_size
        except OSError as e:
            raise StorageError(f"Stored file is missing: {path.name}") from e


def get_storage() -> LocalStorage:
    from resonance.config import settings
    return LocalStorage(settings.UPLOADS_DIR)


async def init_storage():
    storage = get_storage()
    storage.ensure_dirs()
    log.info("storage_dirs_ready", root=str(storage.root))
