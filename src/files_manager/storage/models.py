"""SQLAlchemy ORM models for Files Manager."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

ROOT_PARENT_ID = "0"


class Base(DeclarativeBase):
    """Base class for all ORM models."""


# -----------------------------------------------------------------------------
# Files
# -----------------------------------------------------------------------------


class FileModel(Base):
    """A node of the file tree: a folder, a plain file or an image."""

    __tablename__ = "files"
    __table_args__ = (Index("ix_files_owner_parent", "owner_id", "parent_id"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(512), nullable=False)
    kind: Mapped[str] = mapped_column(String(16), nullable=False)
    # "0" is the root sentinel, otherwise the id of a folder of the same owner
    parent_id: Mapped[str] = mapped_column(
        String(64), nullable=False, default=ROOT_PARENT_ID
    )
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    blob_key: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# -----------------------------------------------------------------------------
# Derivative Jobs
# -----------------------------------------------------------------------------


class DerivativeJobModel(Base):
    """Durable thumbnail job with queue delivery state."""

    __tablename__ = "derivative_jobs"
    __table_args__ = (Index("ix_derivative_jobs_claim", "status", "available_at"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    file_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    available_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    claimed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
