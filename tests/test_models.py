"""
Tests for Budget DSS models

Test strategy:
1. Unit tests for individual components (models, engines, validators)
2. Workflow tests against in-memory storage
3. No real Google Sheets calls in tests (use fakes)
"""

import pytest
from datetime import date, datetime, timedelta
from uuid import uuid4

from pydantic import ValidationError

from budget_dss.models.planning import (
    Constraint,
    CriteriaWeights,
    Debt,
    DebtBehavior,
    Goal,
    GoalStatus,
)
from budget_dss.models.workflow import (
    ApplyGoalDebtTradeoffRequest,
    DebtPaymentInput,
    FinalizeDSSRequest,
    GoalFunding,
    MonthStateVersion,
    PlanningInputs,
    PreviewBudgetAllocationRequest,
    ScenarioParametersOverride,
    StageName,
    ValidationIssue,
    ValidationResult,
    WorkflowState,
)
from budget_dss.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


class TestPlanningModels:
    """Tests for goal, debt and constraint models."""

    def test_goal_accepts_camel_case_names(self):
        """Test that the goal listing API's field names are accepted."""
        goal = Goal(
            id="g1",
            name="Emergency fund",
            targetAmount=10_000_000,
            currentAmount=2_500_000,
            targetDate="2025-06-30",
        )
        assert goal.target_amount == 10_000_000
        assert goal.remaining_amount == 7_500_000
        assert goal.target_date == date(2025, 6, 30)

    def test_goal_remaining_amount_never_negative(self):
        goal = Goal(id="g1", name="Laptop", target_amount=100, current_amount=150)
        assert goal.remaining_amount == 0.0

    def test_goal_strips_whitespace(self):
        """Test that whitespace is stripped from goal name."""
        goal = Goal(id="g1", name="  Vacation  ", target_amount=100)
        assert goal.name == "Vacation"

    def test_goal_inactive_statuses(self):
        goal = Goal(id="g1", name="Car", target_amount=100, status=GoalStatus.PAUSED)
        assert goal.is_active is False

    def test_debt_rate_percent_is_normalized(self):
        """Test that 18 (percent) is read as 0.18."""
        debt = Debt(id="d1", name="Card", current_balance=1000, interest_rate=18)
        assert debt.interest_rate == pytest.approx(0.18)
        assert debt.monthly_rate == pytest.approx(0.015)

    def test_debt_rejects_negative_balance(self):
        with pytest.raises(ValidationError):
            Debt(id="d1", name="Card", current_balance=-1)

    def test_fixed_debt_is_not_adjustable(self):
        debt = Debt(id="d1", name="Car loan", current_balance=1000, behavior=DebtBehavior.INSTALLMENT)
        assert debt.is_adjustable is False

    def test_constraint_band_validation(self):
        """Test that maximum below minimum is rejected."""
        with pytest.raises(ValidationError):
            Constraint(category_id="food", minimum_amount=500, maximum_amount=400, is_flexible=True)

    def test_constraint_effective_maximum(self):
        fixed = Constraint(category_id="rent", minimum_amount=1000)
        open_ended = Constraint(category_id="food", minimum_amount=400, is_flexible=True)
        bounded = Constraint(category_id="fun", minimum_amount=100, maximum_amount=300, is_flexible=True)

        assert fixed.effective_maximum() == 1000
        assert open_ended.effective_maximum(1.5) == 600
        assert bounded.effective_maximum() == 300


class TestCriteriaWeights:
    """Tests for the criteria weights model."""

    def test_impact_is_forced_to_zero(self):
        weights = CriteriaWeights(feasibility=0.5, importance=0.3, urgency=0.2, impact=0.4)
        assert weights.impact == 0.0

    def test_weights_must_sum_to_one(self):
        with pytest.raises(ValidationError):
            CriteriaWeights(feasibility=0.5, importance=0.5, urgency=0.5)


class TestWorkflowModels:
    """Tests for workflow requests and the session aggregate."""

    def test_tradeoff_apply_must_sum_to_100(self):
        with pytest.raises(ValidationError):
            ApplyGoalDebtTradeoffRequest(
                month_id="2025-01",
                goal_allocation_percent=60,
                debt_allocation_percent=30,
            )

    def test_tradeoff_apply_accepts_valid_split(self):
        request = ApplyGoalDebtTradeoffRequest(
            month_id="2025-01",
            goal_allocation_percent=25,
            debt_allocation_percent=75,
        )
        assert request.goal_allocation_percent == 25

    def test_month_id_format(self):
        with pytest.raises(ValidationError):
            ApplyGoalDebtTradeoffRequest(
                month_id="2025-13",
                goal_allocation_percent=50,
                debt_allocation_percent=50,
            )

    def test_allocation_preview_rejects_split_above_100(self):
        with pytest.raises(ValidationError):
            PreviewBudgetAllocationRequest(
                month_id="2025-01",
                goal_allocation_pct=70,
                debt_allocation_pct=40,
            )

    def test_allocation_preview_rejects_duplicate_overrides(self):
        with pytest.raises(ValidationError):
            PreviewBudgetAllocationRequest(
                month_id="2025-01",
                scenario_overrides=[
                    ScenarioParametersOverride(scenario_type="safe", goals_percent=0.1),
                    ScenarioParametersOverride(scenario_type="safe", goals_percent=0.2),
                ],
            )

    def test_finalize_totals_use_effective_amounts(self):
        """Test that user adjustments replace suggestions in totals."""
        request = FinalizeDSSRequest(
            budget_allocations={"rent": 1000, "food": 500},
            goal_fundings=[GoalFunding(goal_id="g1", suggested_amount=200, user_adjusted_amount=300)],
            debt_payments=[DebtPaymentInput(debt_id="d1", minimum_payment=100, suggested_payment=150)],
        )
        assert request.category_total == 1500
        assert request.goal_total == 300
        assert request.debt_total == 150
        assert request.total_allocated == 1950

    def test_planning_inputs_derived_values(self):
        inputs = PlanningInputs(
            monthly_income=5000,
            goals=[
                Goal(id="g1", name="A", target_amount=100),
                Goal(id="g2", name="B", target_amount=100, status=GoalStatus.COMPLETED),
            ],
            debts=[Debt(id="d1", name="Card", current_balance=500, minimum_payment=50)],
            constraints=[
                Constraint(category_id="rent", minimum_amount=1500),
                Constraint(category_id="food", minimum_amount=400, is_flexible=True),
            ],
        )
        assert [g.id for g in inputs.active_goals] == ["g1"]
        assert inputs.fixed_costs == 1900
        assert inputs.total_minimum_payment == 50
        assert inputs.has_goals and inputs.has_debts

    def test_workflow_state_expiry(self):
        now = datetime(2025, 1, 1, 12, 0)
        state = WorkflowState(
            month_id="2025-01",
            correlation_id=uuid4(),
            inputs=PlanningInputs(monthly_income=1000),
            stages=[StageName.BUDGET_ALLOCATION, StageName.FINALIZE],
            expires_at=now + timedelta(minutes=60),
        )
        assert state.is_expired(now) is False
        assert state.is_expired(now + timedelta(minutes=60)) is True

    def test_applied_selection_requires_apply(self):
        state = WorkflowState(
            month_id="2025-01",
            correlation_id=uuid4(),
            inputs=PlanningInputs(monthly_income=1000),
            stages=[StageName.TRADEOFF],
            expires_at=datetime(2030, 1, 1),
        )
        slot = state.slot(StageName.TRADEOFF)
        slot.selection = "preview only"
        assert state.applied_selection(StageName.TRADEOFF) is None

        slot.applied = True
        assert state.applied_selection(StageName.TRADEOFF) == "preview only"

    def test_month_state_version_is_immutable(self):
        state = MonthStateVersion(
            month_id="2025-01",
            version=1,
            monthly_income=1000,
            total_allocated=900,
            to_be_budgeted=100,
        )
        with pytest.raises(ValidationError):
            state.total_allocated = 950

    def test_month_state_version_starts_at_one(self):
        with pytest.raises(ValidationError):
            MonthStateVersion(
                month_id="2025-01",
                version=0,
                monthly_income=1000,
                total_allocated=0,
                to_be_budgeted=1000,
            )


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.DSS_INITIALIZED,
            description="Session initialized",
        )
        assert event.event_type == AuditEventType.DSS_INITIALIZED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.STAGE_APPLIED,
            description="Stage applied",
            details={"stage": "debt_strategy", "selected_strategy": "avalanche"},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "stage_applied"
        assert log_dict["details"]["selected_strategy"] == "avalanche"

    def test_audit_event_to_sheets_row(self):
        """Test conversion to sheets row."""
        event = AuditEvent(
            event_type=AuditEventType.WORKFLOW_RESET,
            entity_id="2025-01",
            description="Reset",
            is_user_action=True,
        )
        row = event.to_sheets_row()
        assert len(row) == 11  # Expected number of columns
        assert row[2] == "workflow_reset"
        assert row[5] == "2025-01"
        assert row[10] == "True"

    def test_audit_event_builder_stage_applied(self):
        correlation_id = uuid4()
        event = AuditEventBuilder.stage_applied(
            month_id="2025-01",
            stage="tradeoff",
            selection={"goal_allocation_pct": 25},
            correlation_id=correlation_id,
        )
        assert event.event_type == AuditEventType.STAGE_APPLIED
        assert event.entity_id == "2025-01"
        assert event.correlation_id == correlation_id
        assert event.details["stage"] == "tradeoff"
        assert event.is_user_action is True

    def test_audit_event_builder_finalize_conflict(self):
        event = AuditEventBuilder.finalize_conflict(
            month_id="2025-01",
            expected_version=1,
            actual_version=2,
            correlation_id=uuid4(),
        )
        assert event.severity == AuditSeverity.WARNING
        assert event.details == {"expected_version": 1, "actual_version": 2}


class TestValidationResult:
    """Tests for ValidationResult model."""

    def test_validation_result_has_errors(self):
        """Test has_errors property."""
        result = ValidationResult(
            subject="finalize",
            is_valid=False,
            issues=[
                ValidationIssue(
                    field="total_allocated",
                    issue_type="exceeds_income",
                    message="Allocations exceed income",
                    severity="error",
                ),
            ],
        )
        assert result.has_errors is True
        assert result.error_count == 1
        assert result.error_messages == ["Allocations exceed income"]

    def test_validation_result_warnings_only(self):
        """Test that warnings don't count as errors."""
        result = ValidationResult(
            subject="finalize",
            is_valid=True,
            issues=[
                ValidationIssue(
                    field="budget_allocations.misc",
                    issue_type="unknown_id",
                    message="Unknown category",
                    severity="warning",
                ),
            ],
        )
        assert result.has_errors is False
        assert result.error_count == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
