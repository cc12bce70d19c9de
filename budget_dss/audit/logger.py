"""
Audit Logger

DESIGN DECISION: Every workflow action is logged.
This provides:
1. Traceability of how a month's plan was reached
2. Debugging capability when a stage fails
3. A record of rejected and conflicting commits

The audit logger:
- Is async to match the storage interfaces
- Gracefully handles failures (doesn't crash the workflow if logging fails)
- Supports correlation IDs to trace all events of one month session
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from budget_dss.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from budget_dss.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence), when configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("budget_dss.audit")

    @property
    def storage(self) -> Optional[AuditStorageInterface]:
        return self._storage

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_initialized(
        self,
        month_id: str,
        goal_count: int,
        debt_count: int,
        constraint_count: int,
        correlation_id: UUID,
    ) -> None:
        """Log session initialization."""
        await self.log(AuditEventBuilder.dss_initialized(
            month_id=month_id,
            goal_count=goal_count,
            debt_count=debt_count,
            constraint_count=constraint_count,
            correlation_id=correlation_id,
        ))

    async def log_stage_previewed(
        self,
        month_id: str,
        stage: str,
        summary: dict,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.stage_previewed(
            month_id=month_id,
            stage=stage,
            summary=summary,
            correlation_id=correlation_id,
        ))

    async def log_stage_preview_failed(
        self,
        month_id: str,
        stage: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.stage_preview_failed(
            month_id=month_id,
            stage=stage,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_stage_applied(
        self,
        month_id: str,
        stage: str,
        selection: dict,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.stage_applied(
            month_id=month_id,
            stage=stage,
            selection=selection,
            correlation_id=correlation_id,
        ))

    async def log_workflow_reset(
        self,
        month_id: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.workflow_reset(
            month_id=month_id,
            correlation_id=correlation_id,
        ))

    async def log_finalize_rejected(
        self,
        month_id: str,
        issues: list[dict],
        correlation_id: UUID,
    ) -> None:
        """Log a finalize that failed validation."""
        await self.log(AuditEventBuilder.finalize_rejected(
            month_id=month_id,
            issues=issues,
            correlation_id=correlation_id,
        ))

    async def log_finalize_conflict(
        self,
        month_id: str,
        expected_version: int,
        actual_version: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.finalize_conflict(
            month_id=month_id,
            expected_version=expected_version,
            actual_version=actual_version,
            correlation_id=correlation_id,
        ))

    async def log_month_state_appended(
        self,
        month_id: str,
        version: int,
        total_allocated: float,
        to_be_budgeted: float,
        correlation_id: UUID,
    ) -> None:
        """Log a committed month state."""
        await self.log(AuditEventBuilder.month_state_appended(
            month_id=month_id,
            version=version,
            total_allocated=total_allocated,
            to_be_budgeted=to_be_budgeted,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Created once per month session at initialization and passed to
    every event of that session.
    """
    return uuid4()
