"""
Project and chunk models.

A Project owns its roadmap, topics and assistant action policy as
structured JSON, plus exactly one chunk set produced by the latest
ingestion. Re-ingesting replaces the chunk set; it never appends.

Project status lifecycle:
    created -> ingesting -> ingested -> planning -> planned
    any planning failure -> failed
"""
from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, utcnow

if TYPE_CHECKING:
    from .artifact import Artifact


class ProjectStatus:
    """Allowed values of Project.status."""
    CREATED = "created"
    INGESTING = "ingesting"
    INGESTED = "ingested"
    PLANNING = "planning"
    PLANNED = "planned"
    FAILED = "failed"

    ALL = (CREATED, INGESTING, INGESTED, PLANNING, PLANNED, FAILED)


class Project(Base):
    """A learner's study project built from uploaded documents."""

    __tablename__ = "projects"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    owner_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    title: Mapped[str] = mapped_column(Text, nullable=False, default="Untitled project")
    status: Mapped[str] = mapped_column(Text, nullable=False, default=ProjectStatus.CREATED)

    # Plan snapshot (written by the planner and check-ins)
    roadmap: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    topics: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    assistant_menu_policy: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    # Relationships
    chunks: Mapped[list[ProjectChunk]] = relationship(
        back_populates="project", cascade="all, delete-orphan", passive_deletes=True
    )
    artifacts: Mapped[list[Artifact]] = relationship(
        back_populates="project", cascade="all, delete-orphan", passive_deletes=True
    )


class ProjectChunk(Base):
    """A bounded slice of ingested text; the unit of retrieval."""

    __tablename__ = "project_chunks"
    __table_args__ = (Index("ix_project_chunks_project_seq", "project_id", "seq"),)

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    project_id: Mapped[UUID] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    owner_id: Mapped[str] = mapped_column(Text, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    # "metadata" is reserved on declarative classes
    chunk_metadata: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, default=dict)
    seq: Mapped[int] = mapped_column(Integer, nullable=False)  # ingestion order
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    project: Mapped[Project] = relationship(back_populates="chunks")
