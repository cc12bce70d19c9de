"""
Workflow Orchestrator for Budget DSS

This module ties the planning engines together into the month workflow:

1. Initialize → capture income, goals, debts, constraints; compute stage plan
2. Auto-score → Prioritize goals (AHP) → apply ranking
3. Debt strategy preview → apply avalanche/snowball
4. Goal/debt tradeoff preview → apply split
5. Budget allocation preview → apply scenario
6. Finalize → validate → append one immutable MonthStateVersion

DESIGN DECISION: The orchestrator enforces the boundaries:
- Previews are pure; they only overwrite their own stage slot
- Applies record a selection in the session and nothing else
- Finalize is the only durable write, and it is all-or-nothing
- Every step is audited under the session's correlation id

Stages whose inputs are absent are left out of the plan, and calling
them raises StageNotAvailableError.
"""

import asyncio
import re
from datetime import date, datetime, timedelta
from typing import Any, Callable, Optional

import structlog

from budget_dss.audit import AuditLogger, create_correlation_id
from budget_dss.config import DSSSettings, Settings, get_settings
from budget_dss.engines.ahp import prioritize
from budget_dss.engines.allocation import allocate_budget, resolve_scenarios
from budget_dss.engines.debt_strategy import plan_debt_strategies
from budget_dss.engines.scoring import score_goals
from budget_dss.engines.tradeoff import optimize_tradeoff
from budget_dss.engines.weights import resolve_weights
from budget_dss.models.planning import (
    AHPResult,
    AllocationScenario,
    AllocationWarning,
    AutoScoringResult,
    BudgetAllocationResult,
    CategoryAllocation,
    DebtStrategyResult,
    Goal,
    RankedAlternative,
    StrategyScenario,
    TradeoffResult,
)
from budget_dss.models.workflow import (
    MONTH_ID_PATTERN,
    AllocationParams,
    ApplyBudgetAllocationRequest,
    ApplyDebtStrategyRequest,
    ApplyGoalDebtTradeoffRequest,
    ApplyGoalPrioritizationRequest,
    AutoScoringRequest,
    DebtStrategyRequest,
    FinalizeDSSRequest,
    FinalizeDSSResponse,
    GoalPrioritizationRequest,
    GoalPriorityInput,
    InitializeDSSRequest,
    InitializeDSSResponse,
    MonthStateVersion,
    PlanningInputs,
    PreviewBudgetAllocationRequest,
    PreviewGoalDebtTradeoffRequest,
    StageName,
    StageSlot,
    StageStatus,
    StageStatusView,
    TradeoffChoice,
    ValidationIssue,
    ValidationResult,
    WorkflowState,
    WorkflowStatus,
)
from budget_dss.services.storage import (
    InMemoryAuditStorage,
    InMemoryMonthStateStorage,
    MonthStateStorageInterface,
    PlanningInputsInterface,
    StorageError,
    VersionConflictError,
)
from budget_dss.stages import PREVIEW_ONLY_STAGES, build_stage_plan, stage_label
from budget_dss.validation import WorkflowValidator


logger = structlog.get_logger("budget_dss.orchestrator")


# =============================================================================
# EXCEPTIONS
# =============================================================================

class WorkflowError(Exception):
    """Base exception for workflow operations."""
    pass


class SessionNotInitializedError(WorkflowError):
    """No live session for the month (never initialized, or expired)."""

    def __init__(self, month_id: str):
        self.month_id = month_id
        super().__init__(f"No planning session for {month_id}. Initialize the month first.")


class StageNotAvailableError(WorkflowError):
    """The stage is not part of this month's stage plan."""

    def __init__(self, month_id: str, stage: StageName):
        self.month_id = month_id
        self.stage = stage
        super().__init__(f"Stage {stage.value} is not part of the plan for {month_id}")


class StageNotReadyError(WorkflowError):
    """Apply was called before the stage had a preview to choose from."""

    def __init__(self, month_id: str, stage: StageName):
        self.month_id = month_id
        self.stage = stage
        super().__init__(f"Preview {stage.value} for {month_id} before applying it")


class RequestValidationError(WorkflowError):
    """A request failed semantic validation. Nothing was changed."""

    def __init__(self, result: ValidationResult):
        self.result = result
        super().__init__("; ".join(result.error_messages) or "Request is invalid")


class FinalizeRejectedError(WorkflowError):
    """Finalize failed validation. No month state was created."""

    def __init__(self, result: ValidationResult):
        self.result = result
        super().__init__(
            "Finalize rejected, nothing was saved: " + "; ".join(result.error_messages)
        )


def _invalid(subject: str, field: str, message: str) -> RequestValidationError:
    return RequestValidationError(ValidationResult(
        subject=subject,
        is_valid=False,
        issues=[ValidationIssue(
            field=field,
            issue_type="invalid_value",
            message=message,
            severity="error",
        )],
    ))


# =============================================================================
# WORKFLOW
# =============================================================================

class DSSWorkflow:
    """
    Month-by-month planning workflow.

    Holds one WorkflowState per month in memory. Sessions expire after
    session_ttl_minutes; committed month states live in storage.
    """

    def __init__(
        self,
        month_state_storage: Optional[MonthStateStorageInterface] = None,
        planning_inputs: Optional[PlanningInputsInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[DSSSettings] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self._month_states = month_state_storage or InMemoryMonthStateStorage()
        self._planning_inputs = planning_inputs
        self._audit = audit_logger or AuditLogger()
        self._settings = settings or get_settings().dss
        self._clock = clock
        self._sessions: dict[str, WorkflowState] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def month_states(self) -> MonthStateStorageInterface:
        return self._month_states

    # -------------------------------------------------------------------------
    # Session helpers
    # -------------------------------------------------------------------------

    def _check_month_id(self, month_id: str, subject: str) -> None:
        if not re.match(MONTH_ID_PATTERN, month_id or ""):
            raise _invalid(subject, "month_id", f"Month id must look like YYYY-MM (got {month_id!r})")

    def _session(self, month_id: str) -> WorkflowState:
        state = self._sessions.get(month_id)
        if state is None:
            raise SessionNotInitializedError(month_id)
        if state.is_expired(self._clock()):
            del self._sessions[month_id]
            logger.info("session_expired", month_id=month_id)
            raise SessionNotInitializedError(month_id)
        return state

    def _require_stage(self, state: WorkflowState, stage: StageName) -> StageSlot:
        if stage not in state.stages:
            raise StageNotAvailableError(state.month_id, stage)
        return state.slot(stage)

    def _ready_result(self, state: WorkflowState, stage: StageName, result_type: type) -> Any:
        """Latest preview of a stage, provided the last preview succeeded."""
        slot = self._require_stage(state, stage)
        if slot.status != StageStatus.READY or not isinstance(slot.result, result_type):
            raise StageNotReadyError(state.month_id, stage)
        return slot.result

    def _lock(self, month_id: str) -> asyncio.Lock:
        if month_id not in self._locks:
            self._locks[month_id] = asyncio.Lock()
        return self._locks[month_id]

    @staticmethod
    def _as_of(month_id: str) -> date:
        year, month = month_id.split("-")
        return date(int(year), int(month), 1)

    def _touch(self, state: WorkflowState, slot: Optional[StageSlot] = None) -> None:
        now = self._clock()
        state.last_updated = now
        if slot is not None:
            slot.updated_at = now

    async def _run_preview(
        self,
        state: WorkflowState,
        stage: StageName,
        params: dict,
        compute: Callable[[], Any],
        summarize: Callable[[Any], dict],
    ) -> Any:
        """
        Run a pure computation and cache it in the stage slot.

        On failure the slot is marked error, the previous result is kept,
        and the exception propagates.
        """
        slot = self._require_stage(state, stage)
        slot.status = StageStatus.LOADING
        try:
            result = compute()
        except Exception as e:
            slot.status = StageStatus.ERROR
            slot.error = str(e)
            self._touch(state, slot)
            await self._audit.log_stage_preview_failed(
                month_id=state.month_id,
                stage=stage.value,
                error_message=str(e),
                correlation_id=state.correlation_id,
            )
            raise

        slot.status = StageStatus.READY
        slot.params = params
        slot.result = result
        slot.error = None
        self._touch(state, slot)
        await self._audit.log_stage_previewed(
            month_id=state.month_id,
            stage=stage.value,
            summary=summarize(result),
            correlation_id=state.correlation_id,
        )
        return result

    async def _record_apply(
        self,
        state: WorkflowState,
        stage: StageName,
        selection: Any,
        audit_selection: dict,
    ) -> None:
        slot = state.slot(stage)
        slot.applied = True
        slot.selection = selection
        self._touch(state, slot)
        await self._audit.log_stage_applied(
            month_id=state.month_id,
            stage=stage.value,
            selection=audit_selection,
            correlation_id=state.correlation_id,
        )

    # -------------------------------------------------------------------------
    # Derived inputs shared by several stages
    # -------------------------------------------------------------------------

    def _fresh_scores(self, state: WorkflowState, goals: Optional[list[Goal]] = None) -> AutoScoringResult:
        inputs = state.inputs
        return score_goals(
            goals if goals is not None else inputs.goals,
            inputs.monthly_income,
            inputs.fixed_costs,
            self._as_of(state.month_id),
            weights=resolve_weights(session_weights=state.custom_weights),
        )

    def _goal_requirements(self, state: WorkflowState) -> dict[str, float]:
        return {g.goal_id: g.required_monthly for g in self._fresh_scores(state).goals}

    def _goal_priorities(self, state: WorkflowState) -> dict[str, float]:
        """
        Priority weight per goal id.

        Applied ranking first, then the previewed AHP result, then
        auto-scores normalized to sum 1.
        """
        applied = state.applied_selection(StageName.GOAL_PRIORITIZATION)
        if applied is not None:
            return {r.alternative_id: r.priority for r in applied}

        slot = state.slots.get(StageName.GOAL_PRIORITIZATION)
        if slot is not None and isinstance(slot.result, AHPResult):
            return dict(slot.result.alternative_priorities)

        auto = state.slots.get(StageName.AUTO_SCORE)
        scores = auto.result if auto is not None and isinstance(auto.result, AutoScoringResult) else None
        if scores is None:
            scores = self._fresh_scores(state)
        total = sum(g.total_score for g in scores.goals)
        if total <= 0:
            return {g.goal_id: 1.0 / len(scores.goals) for g in scores.goals} if scores.goals else {}
        return {g.goal_id: g.total_score / total for g in scores.goals}

    def _ordered_goals(self, state: WorkflowState) -> list[Goal]:
        """Active goals in accepted ranking order when a ranking was applied."""
        goals = state.inputs.active_goals
        applied = state.applied_selection(StageName.GOAL_PRIORITIZATION)
        if applied is None:
            return goals
        position = {r.alternative_id: r.rank for r in applied}
        return sorted(goals, key=lambda g: position.get(g.id, len(position) + 1))

    def _discretionary_pool(self, state: WorkflowState) -> float:
        inputs = state.inputs
        return max(0.0, inputs.monthly_income - inputs.fixed_costs - inputs.total_minimum_payment)

    def _default_debt_budget(self, state: WorkflowState) -> float:
        minimums = state.inputs.total_minimum_payment
        debt_pct = state.allocation_params.debt_allocation_pct
        if debt_pct > 0:
            return minimums + self._discretionary_pool(state) * debt_pct / 100.0
        return minimums

    # -------------------------------------------------------------------------
    # Initialize / status / reset
    # -------------------------------------------------------------------------

    async def initialize(
        self,
        month_id: str,
        request: Optional[InitializeDSSRequest] = None,
    ) -> InitializeDSSResponse:
        """
        Start (or restart) the planning session for a month.

        Inputs come from the request, or from the planning inputs source
        when no request is given.
        """
        self._check_month_id(month_id, "initialize")

        if request is None:
            if self._planning_inputs is None:
                raise WorkflowError("No planning inputs supplied and no inputs source configured")
            request = InitializeDSSRequest(
                monthly_income=await self._planning_inputs.get_monthly_income(month_id),
                goals=await self._planning_inputs.list_active_goals(),
                debts=await self._planning_inputs.list_debts(),
                constraints=await self._planning_inputs.list_constraints(),
            )

        inputs = PlanningInputs(
            monthly_income=request.monthly_income,
            goals=request.goals,
            debts=request.debts,
            constraints=request.constraints,
        )
        stages = build_stage_plan(inputs)
        now = self._clock()
        ttl = self._settings.session_ttl_minutes
        state = WorkflowState(
            month_id=month_id,
            correlation_id=create_correlation_id(),
            inputs=inputs,
            stages=stages,
            slots={stage: StageSlot() for stage in stages},
            allocation_params=AllocationParams(
                goal_allocation_pct=self._settings.default_goal_allocation_pct,
            ),
            created_at=now,
            expires_at=now + timedelta(minutes=ttl),
            last_updated=now,
        )
        self._sessions[month_id] = state

        await self._audit.log_initialized(
            month_id=month_id,
            goal_count=len(inputs.active_goals),
            debt_count=len(inputs.debts),
            constraint_count=len(inputs.constraints),
            correlation_id=state.correlation_id,
        )

        return InitializeDSSResponse(
            month_id=month_id,
            status="initialized",
            expires_in=f"{ttl} minutes",
            message="Planning session ready: " + ", ".join(stage_label(s) for s in stages),
            goal_count=len(inputs.active_goals),
            debt_count=len(inputs.debts),
            constraint_count=len(inputs.constraints),
            monthly_income=inputs.monthly_income,
            stages=stages,
        )

    def _is_stage_complete(self, stage: StageName, slot: StageSlot) -> bool:
        if slot.applied:
            return True
        return stage in PREVIEW_ONLY_STAGES and slot.status == StageStatus.READY

    def _status_of(self, state: WorkflowState) -> WorkflowStatus:
        views = []
        completed = []
        for stage in state.stages:
            slot = state.slot(stage)
            views.append(StageStatusView(
                stage=stage,
                status=slot.status,
                applied=slot.applied,
                error=slot.error,
            ))
            if self._is_stage_complete(stage, slot):
                completed.append(stage)

        current = next((s for s in state.stages if s not in completed), None)
        before_finalize = [s for s in state.stages if s != StageName.FINALIZE]
        return WorkflowStatus(
            month_id=state.month_id,
            stages=views,
            current_step=current,
            completed_steps=completed,
            is_complete=current is None,
            can_proceed=all(s in completed for s in before_finalize),
            last_updated=state.last_updated,
        )

    async def get_workflow_status(self, month_id: str) -> WorkflowStatus:
        return self._status_of(self._session(month_id))

    async def reset_workflow(self, month_id: str) -> WorkflowStatus:
        """Clear every stage slot and parameter; inputs are kept."""
        state = self._session(month_id)
        state.slots = {stage: StageSlot() for stage in state.stages}
        state.allocation_params = AllocationParams(
            goal_allocation_pct=self._settings.default_goal_allocation_pct,
        )
        state.custom_weights = None
        self._touch(state)
        await self._audit.log_workflow_reset(month_id=month_id, correlation_id=state.correlation_id)
        return self._status_of(state)

    # -------------------------------------------------------------------------
    # Goal scoring and prioritization
    # -------------------------------------------------------------------------

    async def preview_auto_scoring(self, request: AutoScoringRequest) -> AutoScoringResult:
        state = self._session(request.month_id)
        inputs = state.inputs
        weights = resolve_weights(session_weights=state.custom_weights)
        income = request.monthly_income if request.monthly_income is not None else inputs.monthly_income
        goals = request.goals if request.goals is not None else inputs.goals

        return await self._run_preview(
            state,
            StageName.AUTO_SCORE,
            request.model_dump(mode="json", exclude={"month_id"}),
            lambda: score_goals(
                goals,
                income,
                inputs.fixed_costs,
                self._as_of(state.month_id),
                request.goal_allocation_pct,
                weights,
            ),
            lambda r: {"goal_count": len(r.goals)},
        )

    async def preview_goal_prioritization(self, request: GoalPrioritizationRequest) -> AHPResult:
        state = self._session(request.month_id)
        self._require_stage(state, StageName.GOAL_PRIORITIZATION)
        try:
            weights = resolve_weights(
                request.criteria_weights,
                request.criteria_ratings,
                state.custom_weights,
            )
        except ValueError as e:
            raise _invalid("preview_goal_prioritization", "criteria", str(e))

        auto = state.slots.get(StageName.AUTO_SCORE)
        if request.goals is None and auto is not None and isinstance(auto.result, AutoScoringResult):
            scores = auto.result
        else:
            scores = self._fresh_scores(state, request.goals)

        result = await self._run_preview(
            state,
            StageName.GOAL_PRIORITIZATION,
            request.model_dump(mode="json", exclude={"month_id"}),
            lambda: prioritize(scores.goals, weights, self._settings.consistency_threshold),
            lambda r: {
                "consistency_ratio": round(r.consistency_ratio, 4),
                "is_consistent": r.is_consistent,
                "top_goal": r.ranking[0].alternative_id if r.ranking else None,
            },
        )
        if request.criteria_weights or request.criteria_ratings:
            state.custom_weights = weights.as_dict()
        return result

    async def apply_goal_prioritization(
        self,
        request: ApplyGoalPrioritizationRequest,
    ) -> list[RankedAlternative]:
        """
        Accept a goal order.

        The previewed priority values, highest first, are handed out
        along the accepted order, so the first accepted goal always
        carries the largest priority.
        """
        state = self._session(request.month_id)
        preview: AHPResult = self._ready_result(state, StageName.GOAL_PRIORITIZATION, AHPResult)
        validation = WorkflowValidator(state.inputs).validate_goal_ranking(
            request, [r.alternative_id for r in preview.ranking]
        )
        if not validation.is_valid:
            raise RequestValidationError(validation)

        names = {r.alternative_id: r.alternative_name for r in preview.ranking}
        values = [r.priority for r in preview.ranking]
        accepted = [
            RankedAlternative(
                alternative_id=goal_id,
                alternative_name=names[goal_id],
                rank=rank,
                priority=values[rank - 1],
            )
            for rank, goal_id in enumerate(request.accepted_ranking, start=1)
        ]
        await self._record_apply(
            state,
            StageName.GOAL_PRIORITIZATION,
            accepted,
            {"accepted_ranking": request.accepted_ranking},
        )
        return accepted

    # -------------------------------------------------------------------------
    # Debt strategy
    # -------------------------------------------------------------------------

    async def preview_debt_strategy(self, request: DebtStrategyRequest) -> DebtStrategyResult:
        state = self._session(request.month_id)
        debts = request.debts if request.debts is not None else state.inputs.debts
        if request.total_debt_budget is not None:
            budget = request.total_debt_budget
        else:
            budget = self._default_debt_budget(state)

        return await self._run_preview(
            state,
            StageName.DEBT_STRATEGY,
            {"total_debt_budget": budget, "debt_count": len(debts)},
            lambda: plan_debt_strategies(debts, budget, self._settings.amortization_max_months),
            lambda r: {
                "recommended_strategy": r.recommended_strategy.value if r.recommended_strategy else None,
                "is_feasible": r.is_feasible,
                "budget_deficit": r.budget_deficit,
            },
        )

    async def apply_debt_strategy(self, request: ApplyDebtStrategyRequest) -> StrategyScenario:
        """Store the selected strategy's scenario. The allocator reuses it as-is."""
        state = self._session(request.month_id)
        preview = self._ready_result(state, StageName.DEBT_STRATEGY, DebtStrategyResult)
        validation = WorkflowValidator(state.inputs).validate_debt_selection(request, preview)
        if not validation.is_valid:
            raise RequestValidationError(validation)

        scenario = preview.scenario_for(request.selected_strategy).model_copy(deep=True)
        await self._record_apply(
            state,
            StageName.DEBT_STRATEGY,
            scenario,
            {
                "selected_strategy": request.selected_strategy.value,
                "warnings": validation.warnings,
            },
        )
        return scenario

    # -------------------------------------------------------------------------
    # Goal/debt tradeoff
    # -------------------------------------------------------------------------

    async def preview_tradeoff(self, request: PreviewGoalDebtTradeoffRequest) -> TradeoffResult:
        state = self._session(request.month_id)
        self._require_stage(state, StageName.TRADEOFF)

        strategy = None
        baseline_months = None
        applied = state.applied_selection(StageName.DEBT_STRATEGY)
        if applied is not None:
            strategy = applied.strategy
            if applied.is_feasible:
                baseline_months = applied.months_to_debt_free
        else:
            debt_slot = state.slots.get(StageName.DEBT_STRATEGY)
            if debt_slot is not None and isinstance(debt_slot.result, DebtStrategyResult):
                strategy = debt_slot.result.recommended_strategy

        pool = self._discretionary_pool(state)
        requirements = self._goal_requirements(state)
        priorities = self._goal_priorities(state)

        return await self._run_preview(
            state,
            StageName.TRADEOFF,
            request.model_dump(mode="json", exclude={"month_id"}),
            lambda: optimize_tradeoff(
                state.inputs.debts,
                pool,
                requirements,
                priorities,
                request.preferences,
                strategy,
                self._settings.tradeoff_step_percent,
                self._settings.amortization_max_months,
                baseline_months,
            ),
            lambda r: {
                "recommended_strategy": r.recommended_strategy,
                "recommended_goal_allocation": r.recommended_goal_allocation,
            },
        )

    async def apply_tradeoff(self, request: ApplyGoalDebtTradeoffRequest) -> TradeoffChoice:
        """Store a goal/debt split; it may be any split, not only a previewed one."""
        state = self._session(request.month_id)
        slot = self._require_stage(state, StageName.TRADEOFF)

        scenario_type = None
        if isinstance(slot.result, TradeoffResult):
            for candidate in slot.result.scenarios:
                if abs(candidate.goal_percent - request.goal_allocation_percent) < 1e-9:
                    scenario_type = candidate.name
                    break

        choice = TradeoffChoice(
            scenario_type=scenario_type or "custom",
            goal_allocation_pct=request.goal_allocation_percent,
            debt_allocation_pct=request.debt_allocation_percent,
        )
        state.allocation_params = AllocationParams(
            goal_allocation_pct=request.goal_allocation_percent,
            debt_allocation_pct=request.debt_allocation_percent,
        )
        await self._record_apply(state, StageName.TRADEOFF, choice, choice.model_dump())
        return choice

    # -------------------------------------------------------------------------
    # Budget allocation
    # -------------------------------------------------------------------------

    async def preview_budget_allocation(
        self,
        request: PreviewBudgetAllocationRequest,
    ) -> BudgetAllocationResult:
        state = self._session(request.month_id)
        self._require_stage(state, StageName.BUDGET_ALLOCATION)
        inputs = state.inputs

        try:
            scenarios = resolve_scenarios(
                [o.model_dump(exclude_none=True) for o in request.scenario_overrides]
            )
        except ValueError as e:
            raise _invalid("preview_budget_allocation", "scenario_overrides", str(e))

        goal_pct = request.goal_allocation_pct
        if goal_pct is None:
            goal_pct = state.allocation_params.goal_allocation_pct

        applied = state.applied_selection(StageName.DEBT_STRATEGY)
        payment_plans = applied.payment_plans if applied is not None else None
        priorities = self._goal_priorities(state)
        requirements = self._goal_requirements(state)
        goals = self._ordered_goals(state)

        def compute() -> BudgetAllocationResult:
            result = allocate_budget(
                inputs.monthly_income,
                inputs.constraints,
                goals,
                priorities,
                requirements,
                inputs.debts,
                payment_plans,
                goal_pct,
                scenarios,
                self._settings.min_goal_contribution,
                self._settings.flexible_max_multiplier,
            )
            if request.debt_allocation_pct is not None:
                for scenario in result.scenarios:
                    scenario.warnings.append(AllocationWarning(
                        type="debt_allocation_pct_ignored",
                        message=(
                            "debt_allocation_pct is not used here; debt amounts come from "
                            "the applied debt strategy, or minimum payments without one"
                        ),
                        severity="low",
                    ))
            return result

        return await self._run_preview(
            state,
            StageName.BUDGET_ALLOCATION,
            request.model_dump(mode="json", exclude={"month_id"}),
            compute,
            lambda r: {
                "scenarios": [s.scenario_type for s in r.scenarios],
                "is_feasible": r.is_feasible,
            },
        )

    @staticmethod
    def _with_category_edits(
        scenario: AllocationScenario,
        edits: dict[str, float],
    ) -> AllocationScenario:
        """Copy of the scenario with user-edited category amounts."""
        edited = scenario.model_copy(deep=True)
        by_id = {a.category_id: a for a in edited.category_allocations}
        for category_id, amount in edits.items():
            if category_id in by_id:
                by_id[category_id].amount = amount
            else:
                edited.category_allocations.append(CategoryAllocation(
                    category_id=category_id,
                    category_name=category_id,
                    amount=amount,
                    is_flexible=True,
                ))

        summary = edited.summary
        mandatory = sum(a.amount for a in edited.category_allocations if not a.is_flexible)
        categories = sum(a.amount for a in edited.category_allocations)
        summary.mandatory_expenses = mandatory
        summary.flexible_expenses = categories - mandatory
        summary.total_allocated = (
            categories
            + summary.total_goal_contributions
            + summary.total_debt_payments
            + summary.emergency_fund
        )
        summary.surplus = summary.total_income - summary.total_allocated
        return edited

    async def apply_budget_allocation(
        self,
        request: ApplyBudgetAllocationRequest,
    ) -> AllocationScenario:
        state = self._session(request.month_id)
        preview = self._ready_result(state, StageName.BUDGET_ALLOCATION, BudgetAllocationResult)
        validation = WorkflowValidator(state.inputs).validate_allocation_choice(request, preview)
        if not validation.is_valid:
            raise RequestValidationError(validation)

        scenario = self._with_category_edits(
            preview.scenario(request.selected_scenario),
            request.allocations or {},
        )
        await self._record_apply(
            state,
            StageName.BUDGET_ALLOCATION,
            scenario,
            {
                "selected_scenario": request.selected_scenario,
                "edited_categories": sorted((request.allocations or {}).keys()),
                "warnings": validation.warnings,
            },
        )
        return scenario

    # -------------------------------------------------------------------------
    # Finalize
    # -------------------------------------------------------------------------

    def _complete_request(self, state: WorkflowState, request: FinalizeDSSRequest) -> FinalizeDSSRequest:
        """Fill omitted choices from what was applied in the session."""
        updates = {}

        if request.use_auto_scoring and not request.goal_priorities:
            applied = state.applied_selection(StageName.GOAL_PRIORITIZATION)
            prio_slot = state.slots.get(StageName.GOAL_PRIORITIZATION)
            if applied is not None or (prio_slot is not None and isinstance(prio_slot.result, AHPResult)):
                method = "ahp"
            else:
                method = "auto_scoring"
            updates["goal_priorities"] = [
                GoalPriorityInput(goal_id=goal_id, priority=min(1.0, max(0.0, value)), method=method)
                for goal_id, value in self._goal_priorities(state).items()
            ]

        if request.debt_strategy is None:
            applied_debt = state.applied_selection(StageName.DEBT_STRATEGY)
            if applied_debt is not None:
                updates["debt_strategy"] = applied_debt.strategy

        if request.tradeoff_choice is None:
            applied_tradeoff = state.applied_selection(StageName.TRADEOFF)
            if applied_tradeoff is not None:
                updates["tradeoff_choice"] = applied_tradeoff

        return request.model_copy(update=updates) if updates else request

    async def finalize(self, month_id: str, request: FinalizeDSSRequest) -> FinalizeDSSResponse:
        """
        Commit the month's plan as a new MonthStateVersion.

        CRITICAL: All-or-nothing. Validation failures and version conflicts
        leave storage untouched. Calls for the same month are serialized.

        Raises:
            VersionConflictError: base_version is stale, or another writer won
            FinalizeRejectedError: The plan failed validation
        """
        state = self._session(month_id)
        self._require_stage(state, StageName.FINALIZE)
        correlation_id = state.correlation_id

        async with self._lock(month_id):
            current = await self._month_states.get_current_version(month_id)
            if request.base_version is not None and request.base_version != current:
                await self._audit.log_finalize_conflict(
                    month_id=month_id,
                    expected_version=request.base_version,
                    actual_version=current,
                    correlation_id=correlation_id,
                )
                raise VersionConflictError(month_id, request.base_version, current)

            request = self._complete_request(state, request)
            validation = WorkflowValidator(state.inputs).validate_finalize(request)
            if not validation.is_valid:
                await self._audit.log_finalize_rejected(
                    month_id=month_id,
                    issues=[
                        {"field": i.field, "type": i.issue_type, "message": i.message}
                        for i in validation.issues
                        if i.severity == "error"
                    ],
                    correlation_id=correlation_id,
                )
                raise FinalizeRejectedError(validation)

            income = state.inputs.monthly_income
            total = request.total_allocated
            new_state = MonthStateVersion(
                month_id=month_id,
                version=current + 1,
                created_at=self._clock(),
                monthly_income=income,
                goal_priorities=request.goal_priorities,
                debt_strategy=request.debt_strategy,
                tradeoff_choice=request.tradeoff_choice,
                category_allocations=dict(request.budget_allocations),
                goal_fundings=request.goal_fundings,
                debt_payments=request.debt_payments,
                total_allocated=total,
                to_be_budgeted=income - total,
                notes=request.notes,
                correlation_id=correlation_id,
            )

            try:
                stored = await self._month_states.append_state(new_state, expected_version=current)
            except VersionConflictError as e:
                await self._audit.log_finalize_conflict(
                    month_id=month_id,
                    expected_version=e.expected_version,
                    actual_version=e.actual_version,
                    correlation_id=correlation_id,
                )
                raise
            except StorageError as e:
                await self._audit.log_external_service_error(
                    service="month_state_storage",
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
                raise
            except Exception as e:
                await self._audit.log_error(
                    error_type=type(e).__name__,
                    error_message=str(e),
                    details={"month_id": month_id, "version": new_state.version},
                    correlation_id=correlation_id,
                )
                raise

        slot = state.slot(StageName.FINALIZE)
        slot.status = StageStatus.READY
        slot.applied = True
        slot.selection = stored
        self._touch(state, slot)

        await self._audit.log_month_state_appended(
            month_id=month_id,
            version=stored.version,
            total_allocated=stored.total_allocated,
            to_be_budgeted=stored.to_be_budgeted,
            correlation_id=correlation_id,
        )

        return FinalizeDSSResponse(
            month_id=month_id,
            message=f"Month {month_id} saved as version {stored.version}",
            new_state_version=stored.version,
            to_be_budgeted=stored.to_be_budgeted,
            status="finalized",
            workflow=self._status_of(state),
        )

    async def get_month_state(self, month_id: str) -> Optional[MonthStateVersion]:
        """Latest committed state of a month, if any."""
        return await self._month_states.get_latest_state(month_id)


def create_app_components(
    settings: Optional[Settings] = None,
    planning_inputs: Optional[PlanningInputsInterface] = None,
) -> tuple[DSSWorkflow, AuditLogger]:
    """
    Factory function to create all application components.

    Uses Google Sheets when AppSettings.storage_backend is google_sheets,
    falling back to in-memory storage if Sheets is not configured.

    Returns:
        (workflow, audit_logger)
    """
    settings = settings or get_settings()
    backend = settings.app.storage_backend

    month_states: MonthStateStorageInterface = InMemoryMonthStateStorage()
    audit_logger = AuditLogger(InMemoryAuditStorage())

    if backend == "google_sheets":
        from budget_dss.services.storage.google_sheets import (
            GoogleSheetsAuditStorage,
            GoogleSheetsClient,
            GoogleSheetsMonthStateStorage,
        )
        try:
            sheets_client = GoogleSheetsClient()
            month_states = GoogleSheetsMonthStateStorage(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue with in-memory storage
            logger.warning("storage_not_configured", backend=backend, error=str(e))

    workflow = DSSWorkflow(
        month_state_storage=month_states,
        planning_inputs=planning_inputs,
        audit_logger=audit_logger,
        settings=settings.dss,
    )
    return workflow, audit_logger
