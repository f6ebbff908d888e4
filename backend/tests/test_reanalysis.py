"""Batch re-analysis of tracks without energy."""
import pytest

from conftest import FakeRunner
from resonance.core.analysis import AudioAnalyzer
from resonance.core.catalog import TrackCatalog
from resonance.core.reanalysis import reanalyze_catalog
from resonance.models.track import Track


@pytest.mark.asyncio
async def test_fills_missing_energy_and_is_idempotent(db, storage, stored_track, session_factory):
    pending = [await stored_track(title=f"Old {i}") for i in range(3)]
    done = await stored_track(title="New", energy=40, bpm=120)
    analyzer = AudioAnalyzer(FakeRunner(mean_volume="-30.0"))

    first = await reanalyze_catalog(TrackCatalog(db), analyzer, storage)
    assert first.as_dict() == {"analyzed": 3, "failed": 0, "total": 4}

    second = await reanalyze_catalog(TrackCatalog(db), analyzer, storage)
    assert second.as_dict() == {"analyzed": 0, "failed": 0, "total": 4}

    async with session_factory() as session:
        for track in pending:
            assert (await session.get(Track, track.id)).energy == 50
        untouched = await session.get(Track, done.id)
        assert untouched.energy == 40
        assert untouched.bpm == 120


@pytest.mark.asyncio
async def test_missing_file_counts_as_failed(db, storage, stored_track):
    track = await stored_track(title="Lost")
    storage.resolve(track.stored_path).unlink()
    await stored_track(title="Here")

    summary = await reanalyze_catalog(TrackCatalog(db), AudioAnalyzer(FakeRunner()), storage)
    assert summary.as_dict() == {"analyzed": 1, "failed": 1, "total": 2}


@pytest.mark.asyncio
async def test_unmeasurable_energy_stays_pending(db, storage, stored_track):
    await stored_track(title="Quiet")
    analyzer = AudioAnalyzer(FakeRunner(mean_volume=None))

    first = await reanalyze_catalog(TrackCatalog(db), analyzer, storage)
    assert first.failed == 1
    assert first.analyzed == 0

    # still selected on the next pass
    again = await reanalyze_catalog(TrackCatalog(db), AudioAnalyzer(FakeRunner()), storage)
    assert again.analyzed == 1


@pytest.mark.asyncio
async def test_empty_catalog(db, storage):
    summary = await reanalyze_catalog(TrackCatalog(db), AudioAnalyzer(FakeRunner()), storage)
    assert summary.as_dict() == {"analyzed": 0, "failed": 0, "total": 0}


@pytest.mark.asyncio
async def test_silent_track_is_analyzed_once(db, storage, stored_track):
    await stored_track(title="Silence")
    analyzer = AudioAnalyzer(FakeRunner(mean_volume="-inf"))

    first = await reanalyze_catalog(TrackCatalog(db), analyzer, storage)
    assert first.analyzed == 1
    assert first.failed == 0

    again = await reanalyze_catalog(TrackCatalog(db), analyzer, storage)
    assert again.analyzed == 0
    assert again.failed == 0
