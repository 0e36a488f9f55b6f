"""Run state for the LangGraph pipeline and the run status state machine."""

from datetime import datetime
from typing import Any, Optional, TypedDict

from coursegen.models import (
    PipelineInput,
    RunStatus,
    Stage,
    StageError,
    StageResult,
)

_TRANSITIONS: dict[RunStatus, frozenset[RunStatus]] = {
    RunStatus.NOT_STARTED: frozenset({RunStatus.RUNNING_A}),
    RunStatus.RUNNING_A: frozenset({RunStatus.RUNNING_B, RunStatus.FAILED}),
    RunStatus.RUNNING_B: frozenset({RunStatus.RUNNING_C, RunStatus.FAILED}),
    RunStatus.RUNNING_C: frozenset({RunStatus.PARSING, RunStatus.FAILED}),
    RunStatus.PARSING: frozenset({
        RunStatus.COMPLETED,
        RunStatus.COMPLETED_WITH_WARNINGS,
        RunStatus.FAILED,
    }),
    RunStatus.COMPLETED: frozenset(),
    RunStatus.COMPLETED_WITH_WARNINGS: frozenset(),
    RunStatus.FAILED: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, targets in _TRANSITIONS.items() if not targets)


class InvalidTransitionError(Exception):
    """Attempted a status change the run lifecycle does not allow."""

    def __init__(self, current: RunStatus, target: RunStatus):
        super().__init__(f"Illegal run status transition: {current.value} -> {target.value}")
        self.current = current
        self.target = target


def can_transition(current: RunStatus, target: RunStatus) -> bool:
    return target in _TRANSITIONS[current]


def transition(current: RunStatus, target: RunStatus) -> RunStatus:
    """Validate a status change.

    Args:
        current: Present status.
        target: Requested status.

    Returns:
        The target status.

    Raises:
        InvalidTransitionError: If the lifecycle forbids the change.
    """
    if not can_transition(current, target):
        raise InvalidTransitionError(current, target)
    return target


class CourseRunState(TypedDict, total=False):
    """State that flows through the LangGraph pipeline.

    One dict per run; the compiled graph itself holds no run data.
    """

    # Input
    run_id: str
    started_at: datetime
    input: PipelineInput
    invoker: Any  # ModelInvoker

    # Lifecycle
    status: RunStatus
    status_history: list[RunStatus]

    # Per-stage invocation results
    stage_results: dict[Stage, StageResult]

    # In-chain artifacts consumed by the next prompt
    course_markdown: Optional[str]
    course_meta: Optional[Any]  # CourseMeta
    quiz: Optional[Any]  # QuizOutput

    # Diagnostics from in-chain parsing of A and B
    chain_diagnostics: list[Any]  # list[DiagnosticWarning]
    chain_repairs: dict[Stage, list[str]]

    # Error tracking
    stage_errors: dict[Stage, StageError]

    # Parser output
    parsed: Optional[Any]  # ParseResult


def advance(state: CourseRunState, *targets: RunStatus) -> dict:
    """Build the state update for one or more successive status changes.

    Raises:
        InvalidTransitionError: If the lifecycle forbids any change.
    """
    status = state["status"]
    history = list(state["status_history"])
    for target in targets:
        status = transition(status, target)
        history.append(status)
    return {"status": status, "status_history": history}


def create_initial_state(
    run_id: str,
    pipeline_input: PipelineInput,
    invoker: Any,
    started_at: datetime,
) -> CourseRunState:
    """Create initial run state.

    Args:
        run_id: Run identifier.
        pipeline_input: Documents, metadata and config.
        invoker: ModelInvoker used for every stage of this run.
        started_at: Run start time.

    Returns:
        Initial CourseRunState dict.
    """
    return CourseRunState(
        run_id=run_id,
        started_at=started_at,
        input=pipeline_input,
        invoker=invoker,
        status=RunStatus.NOT_STARTED,
        status_history=[RunStatus.NOT_STARTED],
        stage_results={},
        course_markdown=None,
        course_meta=None,
        quiz=None,
        chain_diagnostics=[],
        chain_repairs={},
        stage_errors={},
        parsed=None,
    )
