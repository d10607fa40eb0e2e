"""
Snapshot repository with optimistic concurrency.

Every snapshot carries the version it was loaded at (0 = never stored).
Saving issues

    UPDATE ... SET version = expected + 1 WHERE key = :key AND version = :expected

and raises ConcurrencyConflictError when no row matched, so a write from a
stale session never silently overwrites a newer state. First saves insert
and rely on the unique key to detect a concurrent first save.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from logos.ability.profile import AbilityProfile
from logos.collocation.pmi import CollocationStatistics
from logos.core.components import ComponentType
from logos.core.errors import ConcurrencyConflictError
from logos.memory.fsrs import MemoryState
from logos.persistence.database import session_scope
from logos.persistence.models import AbilityProfileRow, CollocationSnapshotRow, MemoryStateRow


class SnapshotRepository:
    """
    Load/save engine snapshots.

    Usage:
        repo = SnapshotRepository(create_session_factory(engine))
        profile = repo.load_ability("learner-1", ComponentType.LEX)
        profile = repo.save_ability(updated_profile)
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self.session_factory = session_factory

    # ------------------------------------------------------------------
    # Ability profiles
    # ------------------------------------------------------------------

    def load_ability(self, learner_id: str, component: ComponentType) -> AbilityProfile | None:
        with session_scope(self.session_factory) as session:
            row = session.scalars(
                select(AbilityProfileRow).where(
                    AbilityProfileRow.learner_id == learner_id,
                    AbilityProfileRow.component == ComponentType(component).value,
                )
            ).one_or_none()
            if row is None:
                return None
            return replace(AbilityProfile.from_dict(row.snapshot), version=row.version)

    def save_ability(self, profile: AbilityProfile) -> AbilityProfile:
        """Persist a profile; returns it with its new version."""
        snapshot = profile.to_dict()
        values = {
            "theta": profile.theta,
            "standard_error": profile.standard_error,
            "response_count": len(profile.history),
            "snapshot": snapshot,
        }
        key = (profile.learner_id, profile.component.value)
        with session_scope(self.session_factory) as session:
            if profile.version == 0:
                self._insert(
                    session,
                    AbilityProfileRow(
                        learner_id=profile.learner_id,
                        component=profile.component.value,
                        version=1,
                        **values,
                    ),
                    "AbilityProfile",
                    key,
                )
            else:
                self._update(
                    session,
                    AbilityProfileRow,
                    (
                        AbilityProfileRow.learner_id == profile.learner_id,
                        AbilityProfileRow.component == profile.component.value,
                    ),
                    profile.version,
                    values,
                    "AbilityProfile",
                    key,
                )
        logger.info(f"Saved ability profile {'/'.join(key)} v{profile.version + 1}")
        return replace(profile, version=profile.version + 1)

    # ------------------------------------------------------------------
    # Memory states
    # ------------------------------------------------------------------

    def load_memory_state(self, learner_id: str, object_id: str) -> MemoryState | None:
        with session_scope(self.session_factory) as session:
            row = session.scalars(
                select(MemoryStateRow).where(
                    MemoryStateRow.learner_id == learner_id,
                    MemoryStateRow.object_id == object_id,
                )
            ).one_or_none()
            if row is None:
                return None
            return replace(MemoryState.from_dict(row.snapshot), version=row.version)

    def load_memory_states(self, learner_id: str) -> dict[str, MemoryState]:
        """All memory states of a learner keyed by object id."""
        with session_scope(self.session_factory) as session:
            rows = session.scalars(
                select(MemoryStateRow).where(MemoryStateRow.learner_id == learner_id)
            ).all()
            return {
                row.object_id: replace(MemoryState.from_dict(row.snapshot), version=row.version)
                for row in rows
            }

    def save_memory_state(self, state: MemoryState) -> MemoryState:
        snapshot = state.to_dict()
        values = {
            "state": state.state.value,
            "stability": state.stability,
            "last_review_at": state.last_review,
            "snapshot": snapshot,
        }
        key = (state.learner_id, state.object_id)
        with session_scope(self.session_factory) as session:
            if state.version == 0:
                self._insert(
                    session,
                    MemoryStateRow(
                        learner_id=state.learner_id,
                        object_id=state.object_id,
                        version=1,
                        **values,
                    ),
                    "MemoryState",
                    key,
                )
            else:
                self._update(
                    session,
                    MemoryStateRow,
                    (
                        MemoryStateRow.learner_id == state.learner_id,
                        MemoryStateRow.object_id == state.object_id,
                    ),
                    state.version,
                    values,
                    "MemoryState",
                    key,
                )
        logger.info(f"Saved memory state {'/'.join(key)} v{state.version + 1}")
        return replace(state, version=state.version + 1)

    # ------------------------------------------------------------------
    # Collocation statistics
    # ------------------------------------------------------------------

    def load_collocations(self, name: str) -> tuple[CollocationStatistics, int] | None:
        """Statistics and their version, or None."""
        with session_scope(self.session_factory) as session:
            row = session.get(CollocationSnapshotRow, name)
            if row is None:
                return None
            return CollocationStatistics.from_dict(row.snapshot), row.version

    def save_collocations(
        self,
        name: str,
        statistics: CollocationStatistics,
        expected_version: int = 0,
    ) -> int:
        """Persist statistics; returns the new version."""
        values = {
            "total_tokens": statistics.total_tokens,
            "window_size": statistics.window_size,
            "snapshot": statistics.to_dict(),
        }
        with session_scope(self.session_factory) as session:
            if expected_version == 0:
                self._insert(
                    session,
                    CollocationSnapshotRow(name=name, version=1, **values),
                    "CollocationStatistics",
                    (name,),
                )
            else:
                self._update(
                    session,
                    CollocationSnapshotRow,
                    (CollocationSnapshotRow.name == name,),
                    expected_version,
                    values,
                    "CollocationStatistics",
                    (name,),
                )
        logger.info(f"Saved collocation statistics {name!r} v{expected_version + 1}")
        return expected_version + 1

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _insert(session: Session, row: Any, kind: str, key: tuple[str, ...]) -> None:
        session.add(row)
        try:
            session.flush()
        except IntegrityError as exc:
            logger.warning(f"Concurrent first save of {kind} {'/'.join(key)}")
            raise ConcurrencyConflictError(kind, key, 0) from exc

    @staticmethod
    def _update(
        session: Session,
        model: Any,
        key_filters: tuple,
        expected_version: int,
        values: dict[str, Any],
        kind: str,
        key: tuple[str, ...],
    ) -> None:
        result = session.execute(
            update(model)
            .where(*key_filters, model.version == expected_version)
            .values(version=expected_version + 1, **values)
        )
        if result.rowcount == 0:
            logger.warning(f"Version conflict on {kind} {'/'.join(key)} (expected v{expected_version})")
            raise ConcurrencyConflictError(kind, key, expected_version)
