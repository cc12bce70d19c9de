"""
Workflow Validation

DESIGN DECISION: Pydantic rejects malformed payloads before they reach
this module. What remains are the checks that need the session:

STAGE 1 - REFERENCE VALIDATION:
- Goal, debt and category ids must belong to the session
- Amounts must not be negative
- Adjusted debt payments must not drop below the minimum payment

STAGE 2 - INVARIANT VALIDATION (finalize only):
- Category + goal + debt allocations must not exceed monthly income

Stage 2 only runs when stage 1 passes.

IMPORTANT: Validation NEVER silently fixes issues.
It reports them so the caller can adjust and resubmit.
"""

from collections import Counter
from typing import Iterable, Optional

from budget_dss.models.planning import BudgetAllocationResult, DebtStrategyResult
from budget_dss.models.workflow import (
    ApplyBudgetAllocationRequest,
    ApplyDebtStrategyRequest,
    ApplyGoalPrioritizationRequest,
    FinalizeDSSRequest,
    PlanningInputs,
    ValidationIssue,
    ValidationResult,
)


# Tolerance when comparing money sums against income
AMOUNT_TOLERANCE = 0.01


class WorkflowValidator:
    """
    Validates apply and finalize requests against a session's inputs.
    """

    def __init__(self, inputs: PlanningInputs):
        self._inputs = inputs
        self._goal_ids = {g.id for g in inputs.goals}
        self._debts = {d.id: d for d in inputs.debts}
        self._category_ids = {c.category_id for c in inputs.constraints}

    def _result(self, subject: str, issues: list[ValidationIssue]) -> ValidationResult:
        return ValidationResult(
            subject=subject,
            is_valid=not any(issue.severity == "error" for issue in issues),
            issues=issues,
            warnings=[issue.message for issue in issues if issue.severity == "warning"],
        )

    def _duplicates(self, field: str, ids: Iterable[str]) -> list[ValidationIssue]:
        return [
            ValidationIssue(
                field=field,
                issue_type="duplicate_id",
                message=f"{field} lists {item_id} {count} times",
                severity="error",
                suggested_fix="List each id once",
            )
            for item_id, count in Counter(ids).items()
            if count > 1
        ]

    # =========================================================================
    # APPLY REQUESTS
    # =========================================================================

    def validate_goal_ranking(
        self,
        request: ApplyGoalPrioritizationRequest,
        previewed_ids: list[str],
    ) -> ValidationResult:
        """The accepted ranking must be a permutation of the previewed goals."""
        issues = self._duplicates("accepted_ranking", request.accepted_ranking)

        unknown = [g for g in request.accepted_ranking if g not in previewed_ids]
        for goal_id in unknown:
            issues.append(ValidationIssue(
                field="accepted_ranking",
                issue_type="unknown_id",
                message=f"Goal {goal_id} was not part of the previewed ranking",
                severity="error",
            ))

        missing = [g for g in previewed_ids if g not in request.accepted_ranking]
        if missing:
            issues.append(ValidationIssue(
                field="accepted_ranking",
                issue_type="incomplete",
                message=f"Ranking is missing goals: {', '.join(missing)}",
                severity="error",
                suggested_fix="Include every previewed goal exactly once",
            ))

        return self._result("apply_goal_prioritization", issues)

    def validate_debt_selection(
        self,
        request: ApplyDebtStrategyRequest,
        preview: DebtStrategyResult,
    ) -> ValidationResult:
        """Selecting an infeasible strategy is allowed but flagged."""
        issues = []
        scenario = preview.scenario_for(request.selected_strategy)
        if scenario is None:
            issues.append(ValidationIssue(
                field="selected_strategy",
                issue_type="unknown_strategy",
                message=f"Strategy {request.selected_strategy.value} was not previewed",
                severity="error",
            ))
        elif not scenario.is_feasible:
            issues.append(ValidationIssue(
                field="selected_strategy",
                issue_type="infeasible_strategy",
                message=scenario.infeasible_reason or "Selected strategy is infeasible",
                severity="warning",
                suggested_fix="Raise the debt budget and preview again",
            ))
        return self._result("apply_debt_strategy", issues)

    def validate_allocation_choice(
        self,
        request: ApplyBudgetAllocationRequest,
        preview: BudgetAllocationResult,
    ) -> ValidationResult:
        issues = []
        scenario = preview.scenario(request.selected_scenario)
        if scenario is None:
            available = ", ".join(s.scenario_type for s in preview.scenarios)
            issues.append(ValidationIssue(
                field="selected_scenario",
                issue_type="unknown_scenario",
                message=f"Scenario {request.selected_scenario} was not previewed",
                severity="error",
                suggested_fix=f"Choose one of: {available}",
            ))
        elif not scenario.is_feasible:
            issues.append(ValidationIssue(
                field="selected_scenario",
                issue_type="infeasible_scenario",
                message=f"Scenario {request.selected_scenario} does not fit within income",
                severity="warning",
            ))

        issues.extend(self._category_issues(request.allocations or {}, "allocations"))
        return self._result("apply_budget_allocation", issues)

    # =========================================================================
    # FINALIZE
    # =========================================================================

    def _category_issues(self, allocations: dict[str, float], field: str) -> list[ValidationIssue]:
        issues = []
        for category_id, amount in allocations.items():
            if amount < 0:
                issues.append(ValidationIssue(
                    field=f"{field}.{category_id}",
                    issue_type="negative_amount",
                    message=f"Allocation for {category_id} cannot be negative",
                    severity="error",
                ))
            if category_id not in self._category_ids:
                issues.append(ValidationIssue(
                    field=f"{field}.{category_id}",
                    issue_type="unknown_id",
                    message=f"Category {category_id} has no spending constraint this month",
                    severity="warning",
                ))
        return issues

    def _validate_references(self, request: FinalizeDSSRequest) -> list[ValidationIssue]:
        """Stage 1: ids and per-item amounts."""
        issues = self._category_issues(request.budget_allocations, "budget_allocations")

        issues.extend(self._duplicates("goal_fundings", [f.goal_id for f in request.goal_fundings]))
        issues.extend(self._duplicates("debt_payments", [p.debt_id for p in request.debt_payments]))
        issues.extend(self._duplicates("goal_priorities", [p.goal_id for p in request.goal_priorities]))

        for field, goal_ids in (
            ("goal_priorities", [p.goal_id for p in request.goal_priorities]),
            ("goal_fundings", [f.goal_id for f in request.goal_fundings]),
        ):
            for goal_id in goal_ids:
                if goal_id not in self._goal_ids:
                    issues.append(ValidationIssue(
                        field=field,
                        issue_type="unknown_id",
                        message=f"Goal {goal_id} is not part of this month's plan",
                        severity="error",
                    ))

        for payment in request.debt_payments:
            debt = self._debts.get(payment.debt_id)
            if debt is None:
                issues.append(ValidationIssue(
                    field="debt_payments",
                    issue_type="unknown_id",
                    message=f"Debt {payment.debt_id} is not part of this month's plan",
                    severity="error",
                ))
                continue
            effective = payment.effective_payment
            required = min(debt.minimum_payment, debt.current_balance)
            if effective + AMOUNT_TOLERANCE < required:
                issues.append(ValidationIssue(
                    field=f"debt_payments.{payment.debt_id}",
                    issue_type="below_minimum",
                    message=(
                        f"Payment {effective:,.0f} for {debt.name} is below "
                        f"its minimum payment {debt.minimum_payment:,.0f}"
                    ),
                    severity="error",
                    suggested_fix=f"Pay at least {required:,.0f}",
                ))

        if request.goal_priorities:
            total = sum(p.priority for p in request.goal_priorities)
            if abs(total - 1.0) > 1e-3:
                issues.append(ValidationIssue(
                    field="goal_priorities",
                    issue_type="priorities_not_normalized",
                    message=f"Goal priorities sum to {total:.3f}, not 1",
                    severity="warning",
                ))

        return issues

    def _validate_invariants(self, request: FinalizeDSSRequest) -> list[ValidationIssue]:
        """Stage 2: the submitted plan must fit within income."""
        income = self._inputs.monthly_income
        total = request.total_allocated
        if total > income + AMOUNT_TOLERANCE:
            return [ValidationIssue(
                field="total_allocated",
                issue_type="exceeds_income",
                message=(
                    f"Allocations total {total:,.2f}, exceeding monthly income "
                    f"{income:,.2f} by {total - income:,.2f}"
                ),
                severity="error",
                suggested_fix="Lower category, goal or debt amounts and resubmit",
            )]
        return []

    def validate_finalize(self, request: FinalizeDSSRequest) -> ValidationResult:
        """
        Run both validation stages for a finalize request.

        Returns:
            ValidationResult; is_valid is False on any error-level issue
        """
        issues = self._validate_references(request)
        if not any(issue.severity == "error" for issue in issues):
            issues.extend(self._validate_invariants(request))
        return self._result("finalize", issues)

    @staticmethod
    def get_user_friendly_summary(result: ValidationResult) -> str:
        """
        Plain-language summary of a validation result.
        """
        if result.is_valid and not result.warnings:
            return "All checks passed."

        lines = []
        if result.has_errors:
            lines.append("Nothing was saved. Please fix the following:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     → {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("Please double-check:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)


def first_error(result: ValidationResult) -> Optional[ValidationIssue]:
    for issue in result.issues:
        if issue.severity == "error":
            return issue
    return None
