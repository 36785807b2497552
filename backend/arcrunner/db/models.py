"""SQLAlchemy 2.0 ORM models for ArcRunner.

Multi-value columns (character names, reference URLs) are stored as
comma-separated strings, matching the spreadsheet the data was migrated
from. Parse them with ``arcrunner.fields`` before handing them to the
resolver or builders.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _new_id() -> str:
    return uuid.uuid4().hex


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


class Series(Base):
    """A production series; owns episodes and the studio library."""
    __tablename__ = "series"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    title: Mapped[str] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(50), default="")
    default_model: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())

    episodes: Mapped[list["Episode"]] = relationship(back_populates="series")


class Episode(Base):
    """An episode within a series. ``number`` is unique per series."""
    __tablename__ = "episodes"
    __table_args__ = (
        UniqueConstraint("series_id", "number", name="uq_episode_series_number"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    series_id: Mapped[str] = mapped_column(ForeignKey("series.id"), index=True)
    number: Mapped[int] = mapped_column(Integer)
    title: Mapped[str] = mapped_column(Text, default="")
    model: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    style: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    aspect_ratio: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    style_strength: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    seed: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())

    series: Mapped[Series] = relationship(back_populates="episodes")
    clips: Mapped[list["Clip"]] = relationship(back_populates="episode")


class Clip(Base):
    """A single generation unit (one image or video request).

    ``explicit_ref_urls`` is user-curated and never rewritten by derived
    lookups; ``full_ref_urls`` is the derived library + explicit set.
    ``ref_image_urls`` is the legacy combined column kept for old rows.
    """
    __tablename__ = "clips"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    episode_id: Mapped[str] = mapped_column(ForeignKey("episodes.id"), index=True)
    scene: Mapped[str] = mapped_column(String(20), default="")
    title: Mapped[str] = mapped_column(Text, default="")
    character: Mapped[str] = mapped_column(Text, default="")
    location: Mapped[str] = mapped_column(Text, default="")
    style: Mapped[str] = mapped_column(Text, default="")
    camera: Mapped[str] = mapped_column(Text, default="")
    action: Mapped[str] = mapped_column(Text, default="")
    dialog: Mapped[str] = mapped_column(Text, default="")
    explicit_ref_urls: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ref_image_urls: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    full_ref_urls: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    negative_prompt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    seed: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    duration: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)

    status: Mapped[str] = mapped_column(String(50), default="", index=True)
    task_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    result_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    model: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        onupdate=func.now()
    )

    episode: Mapped[Episode] = relationship(back_populates="clips")


class StudioItem(Base):
    """A named, typed library asset with one or more reference images."""
    __tablename__ = "studio_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    series_id: Mapped[str] = mapped_column(ForeignKey("series.id"), index=True)
    type: Mapped[str] = mapped_column(String(20))
    name: Mapped[str] = mapped_column(Text)
    description: Mapped[str] = mapped_column(Text, default="")
    ref_image_url: Mapped[str] = mapped_column(Text, default="")
    negatives: Mapped[str] = mapped_column(Text, default="")
    notes: Mapped[str] = mapped_column(Text, default="")
    episode: Mapped[str] = mapped_column(String(20), default="1")
    status: Mapped[str] = mapped_column(String(50), default="")
    task_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
