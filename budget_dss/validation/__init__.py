"""Validation package."""

from budget_dss.validation.validator import WorkflowValidator, first_error

__all__ = ["WorkflowValidator", "first_error"]
