"""Services package."""

from budget_dss.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    InMemoryAuditStorage,
    InMemoryMonthStateStorage,
    InMemoryPlanningInputs,
    MonthStateStorageInterface,
    NotFoundError,
    PlanningInputsInterface,
    StorageError,
    VersionConflictError,
)

__all__ = [
    # Storage services
    "AuditStorageInterface",
    "ConnectionError",
    "InMemoryAuditStorage",
    "InMemoryMonthStateStorage",
    "InMemoryPlanningInputs",
    "MonthStateStorageInterface",
    "NotFoundError",
    "PlanningInputsInterface",
    "StorageError",
    "VersionConflictError",
]
