"""
ORM model for catalog tracks.
"""
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from resonance.db import Base


class Track(Base):
    __tablename__ = "tracks"
    __table_args__ = (
        CheckConstraint("energy IS NULL OR (energy >= 0 AND energy <= 100)", name="ck_tracks_energy_range"),
        CheckConstraint("bpm IS NULL OR (bpm > 0 AND bpm < 300)", name="ck_tracks_bpm_range"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(500))
    artist: Mapped[Optional[str]] = mapped_column(String(500))
    album: Mapped[Optional[str]] = mapped_column(String(500))
    duration: Mapped[int] = mapped_column(Integer, default=0)  # seconds

    # Relative to UPLOADS_DIR, e.g. audio/<id>.mp3
    stored_path: Mapped[str] = mapped_column(String(500), unique=True)
    # Upload name without extension; NULL for legacy rows
    original_filename: Mapped[Optional[str]] = mapped_column(String(500))
    content_type: Mapped[Optional[str]] = mapped_column(String(50))
    file_size_bytes: Mapped[Optional[int]] = mapped_column(Integer)

    # Radio mode
    bpm: Mapped[Optional[int]] = mapped_column(Integer)
    key: Mapped[Optional[str]] = mapped_column(String(10))     # C, Am, F#m, ...
    energy: Mapped[Optional[int]] = mapped_column(Integer)     # 0-100

    uploaded_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL")
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
