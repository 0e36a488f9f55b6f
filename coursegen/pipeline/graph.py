"""LangGraph workflow definition for the course generation pipeline."""

import asyncio
import uuid
from datetime import datetime, timezone
from functools import lru_cache
from typing import Optional

import structlog
from langgraph.graph import END, START, StateGraph

from coursegen.llm import ModelInvoker, OllamaInvoker
from coursegen.models import (
    FailureCategory,
    FullPipelineResult,
    InvocationErrorKind,
    PipelineInput,
    PipelineResult,
    RawPipelineOutputs,
    RawStageOutput,
    RunStatus,
    Stage,
    StageError,
)
from coursegen.pipeline.diagnostics import DiagnosticsCollector, compute_coverage
from coursegen.pipeline.nodes import architect_node, inspector_node, parser_node, teacher_node
from coursegen.pipeline.state import TERMINAL_STATUSES, CourseRunState, advance, create_initial_state

logger = structlog.get_logger(__name__)

# Stage in flight and the status it runs under, keyed by the last status reached
_IN_FLIGHT = {
    RunStatus.NOT_STARTED: (Stage.A, RunStatus.RUNNING_A),
    RunStatus.RUNNING_A: (Stage.B, RunStatus.RUNNING_B),
    RunStatus.RUNNING_B: (Stage.C, RunStatus.RUNNING_C),
    RunStatus.RUNNING_C: (Stage.C, RunStatus.PARSING),
}


def should_continue(state: CourseRunState) -> str:
    """Determine if the chain continues after a stage.

    Args:
        state: Current run state.

    Returns:
        'continue' unless the run has failed, 'error' otherwise.
    """
    if state["status"] == RunStatus.FAILED:
        logger.warning("pipeline_stopping", run_id=state["run_id"], failed=[s.value for s in state["stage_errors"]])
        return "error"
    return "continue"


def build_pipeline() -> StateGraph:
    """Build the LangGraph workflow: architect -> inspector -> teacher -> parser.

    Returns:
        Uncompiled StateGraph.
    """
    logger.info("building_pipeline")

    workflow = StateGraph(CourseRunState)

    workflow.add_node("architect", architect_node)
    workflow.add_node("inspector", inspector_node)
    workflow.add_node("teacher", teacher_node)
    workflow.add_node("parser", parser_node)

    workflow.add_edge(START, "architect")
    workflow.add_conditional_edges("architect", should_continue, {"continue": "inspector", "error": END})
    workflow.add_conditional_edges("inspector", should_continue, {"continue": "teacher", "error": END})
    workflow.add_conditional_edges("teacher", should_continue, {"continue": "parser", "error": END})
    workflow.add_edge("parser", END)

    logger.info("pipeline_built")

    return workflow


@lru_cache
def create_pipeline_app():
    """Create the compiled pipeline application.

    The compiled graph holds no run data and is shared by all runs.
    """
    return build_pipeline().compile()


# =============================================================================
# Result assembly
# =============================================================================

def _raw_outputs(state: CourseRunState) -> RawPipelineOutputs:
    raw = {}
    for stage, run in state["stage_results"].items():
        raw[f"raw_{stage.value.lower()}"] = RawStageOutput(
            output=run.output,
            duration_ms=run.duration_ms,
            prompt_chars=run.prompt_chars,
        )
    return RawPipelineOutputs(run_id=state["run_id"], timestamp=state["started_at"], **raw)


def _build_result(state: CourseRunState) -> FullPipelineResult:
    config = state["input"].config
    parsed = state.get("parsed")
    status = state["status"]

    collector = DiagnosticsCollector()
    for stage, run in state["stage_results"].items():
        collector.record_stage(stage, run.success, run.duration_ms, len(run.output))

    if parsed is not None:
        collector.extend(parsed.diagnostics)
        for stage, repairs in parsed.repairs.items():
            collector.add_repairs(stage, repairs)
        coverage = compute_coverage(parsed.quiz, parsed.course_meta)
    else:
        collector.extend(state["chain_diagnostics"])
        for stage, repairs in state["chain_repairs"].items():
            collector.add_repairs(stage, repairs)
        coverage = compute_coverage(state.get("quiz"), state.get("course_meta"))

    diagnostics = collector.build(
        run_id=state["run_id"],
        prompt_version=config.prompt_version,
        started_at=state["started_at"],
        completed_at=datetime.now(timezone.utc),
        status=status,
        coverage=coverage,
    )

    result = None
    if status in (RunStatus.COMPLETED, RunStatus.COMPLETED_WITH_WARNINGS) and parsed is not None and parsed.complete:
        result = PipelineResult(
            course_markdown=parsed.course_markdown,
            course_meta=parsed.course_meta,
            quiz=parsed.quiz,
            explanations=parsed.explanations,
            diagnostics=diagnostics,
        )

    return FullPipelineResult(
        success=result is not None,
        status=status,
        result=result,
        stage_errors=state["stage_errors"],
        raw_outputs=_raw_outputs(state),
        diagnostics=diagnostics,
        status_history=state["status_history"],
    )


def _crashed(state: CourseRunState, exc: Exception) -> CourseRunState:
    """Mark a run whose graph execution raised as failed at the current stage."""
    if state["status"] in TERMINAL_STATUSES:
        return state

    stage, running = _IN_FLIGHT[state["status"]]
    error = StageError(
        stage=stage,
        category=FailureCategory.INVOCATION,
        message=f"Unexpected pipeline error: {exc}",
        invocation_kind=InvocationErrorKind.UNKNOWN,
    )
    return {
        **state,
        **advance(state, running, RunStatus.FAILED),
        "stage_errors": {**state["stage_errors"], stage: error},
    }


# =============================================================================
# Entry points
# =============================================================================

def run_full_pipeline(
    pipeline_input: PipelineInput,
    invoker: Optional[ModelInvoker] = None,
) -> FullPipelineResult:
    """Execute Architect, Inspector and Teacher in order, then parse.

    Halts at the first fatal stage failure. Raw output of every stage that
    ran is kept in the result either way. Never raises.

    Args:
        pipeline_input: Documents, optional seed metadata and config.
        invoker: Model invoker. Defaults to OllamaInvoker().

    Returns:
        FullPipelineResult.
    """
    run_id = uuid.uuid4().hex
    started_at = datetime.now(timezone.utc)
    state = create_initial_state(run_id, pipeline_input, invoker or OllamaInvoker(), started_at)

    logger.info(
        "pipeline_starting",
        run_id=run_id,
        documents=len(pipeline_input.documents),
        prompt_version=pipeline_input.config.prompt_version,
    )

    app = create_pipeline_app()
    try:
        for values in app.stream(state, stream_mode="values"):
            state = values
    except Exception as e:
        logger.exception("pipeline_crashed", run_id=run_id, error=str(e))
        state = _crashed(state, e)

    result = _build_result(state)

    logger.info(
        "pipeline_complete",
        run_id=run_id,
        status=result.status.value,
        success=result.success,
        warnings=len(result.diagnostics.warnings) if result.diagnostics else 0,
        errors=len(result.diagnostics.errors) if result.diagnostics else 0,
    )
    return result


async def run_full_pipeline_async(
    pipeline_input: PipelineInput,
    invoker: Optional[ModelInvoker] = None,
) -> FullPipelineResult:
    """Run the pipeline in a worker thread so independent runs can overlap."""
    return await asyncio.to_thread(run_full_pipeline, pipeline_input, invoker)
