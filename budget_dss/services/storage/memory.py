"""
In-Memory Storage Implementation

Used by tests and as the default backend when no spreadsheet is
configured. Data lives only as long as the process.
"""

from typing import Optional, Sequence
from uuid import UUID

from budget_dss.models.audit import AuditEvent
from budget_dss.models.planning import Constraint, Debt, Goal
from budget_dss.models.workflow import MonthStateVersion
from budget_dss.services.storage.interface import (
    AuditStorageInterface,
    MonthStateStorageInterface,
    NotFoundError,
    PlanningInputsInterface,
    StorageError,
    VersionConflictError,
)


class InMemoryMonthStateStorage(MonthStateStorageInterface):
    """Month states kept in per-month lists, oldest first."""

    def __init__(self):
        self._versions: dict[str, list[MonthStateVersion]] = {}

    async def get_current_version(self, month_id: str) -> int:
        versions = self._versions.get(month_id, [])
        return versions[-1].version if versions else 0

    async def get_latest_state(self, month_id: str) -> Optional[MonthStateVersion]:
        versions = self._versions.get(month_id, [])
        return versions[-1] if versions else None

    async def list_versions(self, month_id: str) -> list[MonthStateVersion]:
        return list(self._versions.get(month_id, []))

    async def append_state(
        self,
        state: MonthStateVersion,
        expected_version: int,
    ) -> MonthStateVersion:
        current = await self.get_current_version(state.month_id)
        if current != expected_version:
            raise VersionConflictError(state.month_id, expected_version, current)
        if state.version != expected_version + 1:
            raise StorageError(
                f"Version {state.version} does not follow {expected_version} "
                f"for month {state.month_id}"
            )
        self._versions.setdefault(state.month_id, []).append(state)
        return state


class InMemoryPlanningInputs(PlanningInputsInterface):
    """Fixed planning inputs, typically seeded by a test."""

    def __init__(
        self,
        incomes: Optional[dict[str, float]] = None,
        goals: Sequence[Goal] = (),
        debts: Sequence[Debt] = (),
        constraints: Sequence[Constraint] = (),
    ):
        self._incomes = dict(incomes or {})
        self._goals = list(goals)
        self._debts = list(debts)
        self._constraints = list(constraints)

    async def get_monthly_income(self, month_id: str) -> float:
        if month_id not in self._incomes:
            raise NotFoundError(f"No income recorded for {month_id}")
        return self._incomes[month_id]

    async def list_active_goals(self) -> list[Goal]:
        return [g for g in self._goals if g.is_active]

    async def list_debts(self) -> list[Debt]:
        return list(self._debts)

    async def list_constraints(self) -> list[Constraint]:
        return list(self._constraints)


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
