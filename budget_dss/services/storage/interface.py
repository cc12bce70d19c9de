"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep the workflow decoupled from storage implementation

The DSS reads planning inputs (income, goals, debts, constraints) and
writes exactly one thing: a new month state version at finalize.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from budget_dss.models.audit import AuditEvent
from budget_dss.models.planning import Constraint, Debt, Goal
from budget_dss.models.workflow import MonthStateVersion


class MonthStateStorageInterface(ABC):
    """
    Versioned, append-only store of committed month plans.

    CRITICAL: Versions are never updated or deleted. Concurrent writers are
    serialized by the expected_version check in append_state.
    """

    @abstractmethod
    async def get_current_version(self, month_id: str) -> int:
        """
        Latest committed version number for a month.

        Returns:
            The version number, or 0 if the month has no state yet
        """
        pass

    @abstractmethod
    async def get_latest_state(self, month_id: str) -> Optional[MonthStateVersion]:
        """
        Latest committed state for a month.

        Returns:
            The state if any version exists, None otherwise
        """
        pass

    @abstractmethod
    async def list_versions(self, month_id: str) -> list[MonthStateVersion]:
        """
        All committed versions of a month, oldest first.
        """
        pass

    @abstractmethod
    async def append_state(
        self,
        state: MonthStateVersion,
        expected_version: int,
    ) -> MonthStateVersion:
        """
        Append a new version.

        Args:
            state: The new version; state.version must be expected_version + 1
            expected_version: The version the caller built the state against

        Returns:
            The stored state

        Raises:
            VersionConflictError: If the current version is not expected_version
            StorageError: If the write fails
        """
        pass


class PlanningInputsInterface(ABC):
    """
    Read-only access to the household entities the DSS plans over.

    Backed by the goal, debt, constraint and income APIs of the outer
    application.
    """

    @abstractmethod
    async def get_monthly_income(self, month_id: str) -> float:
        """
        Income for the planning month.

        Raises:
            NotFoundError: If no income is recorded for the month
        """
        pass

    @abstractmethod
    async def list_active_goals(self) -> list[Goal]:
        pass

    @abstractmethod
    async def list_debts(self) -> list[Debt]:
        pass

    @abstractmethod
    async def list_constraints(self) -> list[Constraint]:
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Args:
            event: The audit event to log

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (one month session).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Args:
            entity_type: Type of entity (e.g., 'month', 'stage')
            entity_id: The entity's ID, usually a month id

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class VersionConflictError(StorageError):
    """The month moved on since the caller last read it."""

    def __init__(self, month_id: str, expected_version: int, actual_version: int):
        self.month_id = month_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Month {month_id} is at version {actual_version}, expected {expected_version}. "
            "Re-preview against the latest state and retry."
        )


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
