"""Track repository over an AsyncSession."""
import uuid
from typing import List, Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from resonance.core.errors import StorageError
from resonance.models.track import Track

log = structlog.get_logger()


class TrackCatalog:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def add(self, track: Track) -> Track:
        """Insert and commit. The row is durable once this returns."""
        self.db.add(track)
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            log.error("catalog_insert_failed", track_id=str(track.id), error=str(e))
            raise StorageError("Failed to save track") from e
        return track

    async def refresh(self, track: Track) -> Track:
        """Read server-side defaults (created_at) back into a committed row."""
        try:
            await self.db.refresh(track)
        except SQLAlchemyError as e:
            log.error("catalog_refresh_failed", track_id=str(track.id), error=str(e))
            raise StorageError("Track saved but could not be reloaded") from e
        return track

    async def get(self, track_id: uuid.UUID) -> Optional[Track]:
        return await self.db.get(Track, track_id)

    async def list_all(self) -> List[Track]:
        result = await self.db.execute(select(Track).order_by(Track.created_at.desc()))
        return list(result.scalars().all())

    async def count(self) -> int:
        return await self.db.scalar(select(func.count()).select_from(Track)) or 0

    async def missing_energy(self) -> List[Track]:
        result = await self.db.execute(
            select(Track).where(Track.energy.is_(None)).order_by(Track.created_at)
        )
        return list(result.scalars().all())

    async def exists_with_title(self, title: str) -> bool:
        return await self.db.scalar(select(Track.id).where(Track.title == title).limit(1)) is not None

    async def update_analysis(self, track: Track, bpm, key, energy):
        track.bpm = bpm
        track.key = key
        track.energy = energy
        await self.db.commit()

    async def update_metadata(self, track: Track, title=None, artist=None, album=None) -> Track:
        if title:
            track.title = title
        if artist is not None:
            track.artist = artist
        if album is not None:
            track.album = album
        await self.db.commit()
        await self.db.refresh(track)
        return track

    async def delete(self, track: Track):
        await self.db.delete(track)
        await self.db.commit()

    async def rollback(self):
        await self.db.rollback()
