"""
Shared fixtures: in-memory SQLite catalog, temp upload root, a fake ffmpeg
runner and real WAV files written with soundfile and tagged with mutagen.
"""
import random
import uuid
from pathlib import Path

import numpy as np
import pytest
import soundfile as sf
from httpx import AsyncClient, ASGITransport
from mutagen.id3 import TALB, TBPM, TIT2, TKEY, TPE1
from mutagen.wave import WAVE
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from resonance.core.analysis import AudioAnalyzer
from resonance.core.auth import AdminPolicy, Caller, hash_api_key
from resonance.core.catalog import TrackCatalog
from resonance.core.ingest import IngestProcessor
from resonance.core.metadata import MetadataExtractor
from resonance.core.process import ProcessResult
from resonance.core.storage import LocalStorage
from resonance.core.transcode import Transcoder
from resonance.db import init_db
from resonance.models.track import Track
from resonance.models.user import User

ADMIN_KEY = "admin-secret"
LISTENER_KEY = "listener-secret"


class FakeRunner:
    """
    Stands in for ffmpeg. Transcodes write a small file at the output path;
    volumedetect answers with `mean_volume` dB on stderr.
    """

    def __init__(self, mean_volume="-21.0", transcode_exit=0, write_output=True, error=None):
        self.mean_volume = mean_volume
        self.transcode_exit = transcode_exit
        self.write_output = write_output
        self.error = error
        self.calls = []

    def transcode_calls(self):
        return [c for c in self.calls if "libmp3lame" in c]

    async def run(self, args, timeout):
        args = list(args)
        self.calls.append(args)
        if self.error is not None:
            raise self.error

        if "volumedetect" in args:
            if self.mean_volume is None:
                return ProcessResult(0, "", "Output #0, null\n")
            stderr = (
                "[Parsed_volumedetect_0 @ 0x55d] n_samples: 1800000\n"
                f"[Parsed_volumedetect_0 @ 0x55d] mean_volume: {self.mean_volume} dB\n"
                "[Parsed_volumedetect_0 @ 0x55d] max_volume: -0.5 dB\n"
            )
            return ProcessResult(0, "", stderr)

        if self.transcode_exit != 0:
            return ProcessResult(self.transcode_exit, "", "Invalid data found when processing input")
        if self.write_output:
            Path(args[-1]).write_bytes(b"\x00" * 2048)
        return ProcessResult(0, "", "")


def make_wav(path: Path, seconds: float, samplerate: int = 8000, **tags) -> Path:
    """Silent mono WAV with optional ID3 tags (title, artist, album, bpm, key)."""
    frames = np.zeros(int(seconds * samplerate), dtype="int16")
    sf.write(str(path), frames, samplerate, subtype="PCM_16")

    frame_types = {"title": TIT2, "artist": TPE1, "album": TALB, "bpm": TBPM, "key": TKEY}
    present = {k: v for k, v in tags.items() if v is not None}
    if present:
        audio = WAVE(str(path))
        audio.add_tags()
        for name, value in present.items():
            audio.tags.add(frame_types[name](encoding=3, text=str(value)))
        audio.save()
    return path


def make_track(**kwargs) -> Track:
    track_id = kwargs.pop("id", None) or uuid.uuid4()
    defaults = dict(
        id=track_id,
        title="Untitled",
        artist=None,
        album=None,
        duration=180,
        stored_path=f"audio/{track_id}.mp3",
        original_filename=None,
        bpm=None,
        key=None,
        energy=None,
    )
    defaults.update(kwargs)
    return Track(**defaults)


# ── Database ───────────────────────────────────────────────────────────────

@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def users(db):
    admin = User(username="admin", email="admin@example.com", api_key_hash=hash_api_key(ADMIN_KEY))
    listener = User(username="listener", api_key_hash=hash_api_key(LISTENER_KEY))
    db.add_all([admin, listener])
    await db.commit()
    return {"admin": admin, "listener": listener}


# ── Services ───────────────────────────────────────────────────────────────

@pytest.fixture
def storage(tmp_path):
    storage = LocalStorage(tmp_path / "uploads")
    storage.ensure_dirs()
    return storage


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def processor_factory(db, storage):
    def build(runner, extractor=None, catalog=None, max_upload_bytes=100 * 1024 * 1024):
        return IngestProcessor(
            catalog=catalog or TrackCatalog(db),
            storage=storage,
            extractor=extractor or MetadataExtractor(),
            transcoder=Transcoder(runner, timeout=5),
            analyzer=AudioAnalyzer(runner, timeout=5),
            allowed_types=["audio/mpeg", "audio/mp3", "audio/wav", "audio/flac", "audio/ogg"],
            max_upload_bytes=max_upload_bytes,
            chunk_size=64 * 1024,
        )
    return build


@pytest.fixture
async def stored_track(db, storage):
    """Insert a catalog row whose audio file exists on disk."""
    async def add(**kwargs) -> Track:
        track = make_track(**kwargs)
        path = storage.resolve(track.stored_path)
        path.write_bytes(b"\x00" * 1024)
        db.add(track)
        await db.commit()
        return track
    return add


# ── HTTP ───────────────────────────────────────────────────────────────────

@pytest.fixture
async def client(session_factory, storage, runner, users):
    from resonance.api.deps import get_rng, get_runner
    from resonance.core.auth import get_caller, get_policy
    from resonance.core.storage import get_storage
    from resonance.db import get_db
    from resonance.main import app

    admin = users["admin"]

    async def override_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_runner] = lambda: runner
    app.dependency_overrides[get_rng] = lambda: random.Random(7)
    app.dependency_overrides[get_policy] = lambda: AdminPolicy("admin", "admin@example.com")
    app.dependency_overrides[get_caller] = lambda: Caller(admin.id, admin.username, admin.email)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
