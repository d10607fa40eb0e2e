"""
Snapshot storage models.

The engine owns the snapshot shape (JSON produced by `to_dict()`); these
tables only key, version and store it. A few scalar columns are copied out
of the snapshot for querying.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Float, Index, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base for snapshot tables."""


class AbilityProfileRow(Base):
    """Ability profile snapshot per (learner, component)."""

    __tablename__ = "ability_profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    learner_id: Mapped[str] = mapped_column(String(128), nullable=False)
    component: Mapped[str] = mapped_column(String(16), nullable=False)

    theta: Mapped[float] = mapped_column(Float, default=0.0)
    standard_error: Mapped[float] = mapped_column(Float, default=4.0)
    response_count: Mapped[int] = mapped_column(Integer, default=0)
    snapshot: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    updated_at: Mapped[datetime] = mapped_column(default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("learner_id", "component", name="uq_ability_learner_component"),
    )

    def __repr__(self) -> str:
        return f"<AbilityProfileRow learner={self.learner_id} component={self.component} v{self.version}>"


class MemoryStateRow(Base):
    """Memory state snapshot per (learner, object)."""

    __tablename__ = "memory_states"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    learner_id: Mapped[str] = mapped_column(String(128), nullable=False)
    object_id: Mapped[str] = mapped_column(String(256), nullable=False)

    state: Mapped[str] = mapped_column(String(16), default="new")
    stability: Mapped[float] = mapped_column(Float, default=0.0)
    last_review_at: Mapped[datetime | None] = mapped_column()
    snapshot: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    updated_at: Mapped[datetime] = mapped_column(default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("learner_id", "object_id", name="uq_memory_learner_object"),
        Index("idx_memory_learner_state", "learner_id", "state"),
    )

    def __repr__(self) -> str:
        return f"<MemoryStateRow learner={self.learner_id} object={self.object_id} v{self.version}>"


class CollocationSnapshotRow(Base):
    """Raw collocation counts for a named corpus."""

    __tablename__ = "collocation_snapshots"

    name: Mapped[str] = mapped_column(String(128), primary_key=True)
    total_tokens: Mapped[int] = mapped_column(Integer, default=0)
    window_size: Mapped[int] = mapped_column(Integer, default=5)
    snapshot: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    updated_at: Mapped[datetime] = mapped_column(default=func.now(), onupdate=func.now())

    def __repr__(self) -> str:
        return f"<CollocationSnapshotRow name={self.name} tokens={self.total_tokens} v{self.version}>"
