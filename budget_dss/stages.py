"""
Stage Plan

Which workflow stages a month session goes through, decided once from
what the session has to plan over. Each stage carries one predicate; the
plan is every stage whose predicate holds, in pipeline order.
"""

from typing import Callable, NamedTuple

from budget_dss.models.workflow import PlanningInputs, StageName


class StageDefinition(NamedTuple):
    name: StageName
    label: str
    is_present: Callable[[PlanningInputs], bool]


def has_goals(inputs: PlanningInputs) -> bool:
    return inputs.has_goals


def has_debts(inputs: PlanningInputs) -> bool:
    return inputs.has_debts


def has_goals_and_debts(inputs: PlanningInputs) -> bool:
    return inputs.has_goals and inputs.has_debts


def always(inputs: PlanningInputs) -> bool:
    return True


STAGE_DEFINITIONS: tuple[StageDefinition, ...] = (
    StageDefinition(StageName.AUTO_SCORE, "Goal scoring", has_goals),
    StageDefinition(StageName.GOAL_PRIORITIZATION, "Goal prioritization", has_goals),
    StageDefinition(StageName.DEBT_STRATEGY, "Debt strategy", has_debts),
    StageDefinition(StageName.TRADEOFF, "Goal/debt tradeoff", has_goals_and_debts),
    StageDefinition(StageName.BUDGET_ALLOCATION, "Budget allocation", always),
    StageDefinition(StageName.FINALIZE, "Finalize", always),
)

# Stages that are complete once previewed; the others need an apply
PREVIEW_ONLY_STAGES = frozenset({StageName.AUTO_SCORE})


def build_stage_plan(inputs: PlanningInputs) -> list[StageName]:
    """Stages present for these inputs, in pipeline order."""
    return [d.name for d in STAGE_DEFINITIONS if d.is_present(inputs)]


def stage_label(stage: StageName) -> str:
    for definition in STAGE_DEFINITIONS:
        if definition.name == stage:
            return definition.label
    return stage.value
