"""
Audit Models for Budget DSS

Every preview, apply, reset and finalize in the planning workflow is
logged for audit purposes. This provides:
1. Traceability of how a month's plan was reached
2. Debugging information when a stage fails
3. A record of rejected and conflicting commits

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
All events of one month session share the session's correlation_id.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every workflow operation has its own event type.
    """
    # Session lifecycle
    DSS_INITIALIZED = "dss_initialized"
    WORKFLOW_RESET = "workflow_reset"

    # Stage operations
    STAGE_PREVIEWED = "stage_previewed"
    STAGE_PREVIEW_FAILED = "stage_preview_failed"
    STAGE_APPLIED = "stage_applied"

    # Finalize
    FINALIZE_REJECTED = "finalize_rejected"
    FINALIZE_CONFLICT = "finalize_conflict"
    MONTH_STATE_APPENDED = "month_state_appended"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'month', 'stage', 'month_state')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity, usually the month id"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID shared by all events of one month session"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    stack_trace: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.dss_initialized(month_id, 3, 2, 5, correlation_id)
        event = AuditEventBuilder.stage_applied(month_id, "debt_strategy", {...}, correlation_id)
    """

    @staticmethod
    def dss_initialized(
        month_id: str,
        goal_count: int,
        debt_count: int,
        constraint_count: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DSS_INITIALIZED,
            entity_type="month",
            entity_id=month_id,
            correlation_id=correlation_id,
            description=f"Planning session initialized for {month_id}",
            details={
                "goal_count": goal_count,
                "debt_count": debt_count,
                "constraint_count": constraint_count,
            },
            is_user_action=True,
        )

    @staticmethod
    def stage_previewed(
        month_id: str,
        stage: str,
        summary: dict,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STAGE_PREVIEWED,
            entity_type="stage",
            entity_id=month_id,
            correlation_id=correlation_id,
            description=f"Stage previewed: {stage}",
            details={
                "stage": stage,
                **summary,
            },
        )

    @staticmethod
    def stage_preview_failed(
        month_id: str,
        stage: str,
        error_message: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STAGE_PREVIEW_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="stage",
            entity_id=month_id,
            correlation_id=correlation_id,
            description=f"Stage preview failed: {stage}",
            error_message=error_message,
            details={
                "stage": stage,
            },
        )

    @staticmethod
    def stage_applied(
        month_id: str,
        stage: str,
        selection: dict,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STAGE_APPLIED,
            entity_type="stage",
            entity_id=month_id,
            correlation_id=correlation_id,
            description=f"Stage applied: {stage}",
            details={
                "stage": stage,
                "selection": selection,
            },
            is_user_action=True,
        )

    @staticmethod
    def workflow_reset(
        month_id: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.WORKFLOW_RESET,
            entity_type="month",
            entity_id=month_id,
            correlation_id=correlation_id,
            description=f"Planning session reset for {month_id}",
            is_user_action=True,
        )

    @staticmethod
    def finalize_rejected(
        month_id: str,
        issues: list[dict],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.FINALIZE_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="month",
            entity_id=month_id,
            correlation_id=correlation_id,
            description=f"Finalize rejected with {len(issues)} issues",
            details={
                "issues": issues,
            },
            is_user_action=True,
        )

    @staticmethod
    def finalize_conflict(
        month_id: str,
        expected_version: int,
        actual_version: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.FINALIZE_CONFLICT,
            severity=AuditSeverity.WARNING,
            entity_type="month",
            entity_id=month_id,
            correlation_id=correlation_id,
            description=(
                f"Finalize conflict: expected version {expected_version}, "
                f"found {actual_version}"
            ),
            details={
                "expected_version": expected_version,
                "actual_version": actual_version,
            },
        )

    @staticmethod
    def month_state_appended(
        month_id: str,
        version: int,
        total_allocated: float,
        to_be_budgeted: float,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MONTH_STATE_APPENDED,
            entity_type="month_state",
            entity_id=month_id,
            correlation_id=correlation_id,
            description=f"Month state {month_id} v{version} committed",
            details={
                "version": version,
                "total_allocated": round(total_allocated, 2),
                "to_be_budgeted": round(to_be_budgeted, 2),
            },
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
