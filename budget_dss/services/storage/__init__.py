"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
In-memory storage backs tests and local use; Google Sheets is the durable
backend. Both sit behind the same interfaces.
"""

from budget_dss.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    MonthStateStorageInterface,
    NotFoundError,
    PlanningInputsInterface,
    StorageError,
    VersionConflictError,
)
from budget_dss.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryMonthStateStorage,
    InMemoryPlanningInputs,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "MonthStateStorageInterface",
    "PlanningInputsInterface",
    # Exceptions
    "ConnectionError",
    "NotFoundError",
    "StorageError",
    "VersionConflictError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryMonthStateStorage",
    "InMemoryPlanningInputs",
]
