"""LangGraph node functions for the three stages and the final parse.

Each node reads the run state and returns a partial update. Stage A and B
outputs are parsed in the node because the next prompt consumes them; a
fatal parse or validation failure moves the run to Failed.
"""

import structlog

from coursegen.models import RunStatus, Stage, StageError, StageResult
from coursegen.pipeline.parser import StageParse, parse_pipeline, parse_stage_a, parse_stage_b
from coursegen.pipeline.stages import (
    run_prompt_a,
    run_prompt_b,
    run_prompt_c,
    stage_error_from_parse,
    stage_error_from_run,
)
from coursegen.pipeline.state import CourseRunState, advance

logger = structlog.get_logger(__name__)


def _record_run(state: CourseRunState, run: StageResult) -> dict:
    return {"stage_results": {**state["stage_results"], run.stage: run}}


def _fail(state: CourseRunState, running: RunStatus, error: StageError) -> dict:
    logger.warning(
        "stage_failed",
        run_id=state["run_id"],
        stage=error.stage.value,
        category=error.category.value,
        error=error.message,
    )
    return {
        **advance(state, running, RunStatus.FAILED),
        "stage_errors": {**state["stage_errors"], error.stage: error},
    }


def _chain_update(state: CourseRunState, parsed: StageParse) -> dict:
    repairs = dict(state["chain_repairs"])
    if parsed.repairs:
        repairs[parsed.stage] = list(parsed.repairs)
    return {
        "chain_diagnostics": [*state["chain_diagnostics"], *parsed.diagnostics],
        "chain_repairs": repairs,
    }


def architect_node(state: CourseRunState) -> dict:
    """Stage A: course markdown and CourseMeta from the source documents."""
    pipeline_input = state["input"]
    config = pipeline_input.config

    run = run_prompt_a(pipeline_input.documents, pipeline_input.metadata, config, state["invoker"])
    update = _record_run(state, run)
    if not run.success:
        return {**update, **_fail(state, RunStatus.RUNNING_A, stage_error_from_run(run))}

    parsed = parse_stage_a(run.output, config)
    update.update(_chain_update(state, parsed))
    if not parsed.success:
        return {**update, **_fail(state, RunStatus.RUNNING_A, stage_error_from_parse(parsed))}

    logger.info(
        "architect_complete",
        run_id=state["run_id"],
        markdown_chars=len(parsed.course_markdown or ""),
        objectives=len(parsed.course_meta.objectives),
    )
    return {
        **update,
        **advance(state, RunStatus.RUNNING_A),
        "course_markdown": parsed.course_markdown,
        "course_meta": parsed.course_meta,
    }


def inspector_node(state: CourseRunState) -> dict:
    """Stage B: quiz grounded in the Stage A course."""
    config = state["input"].config

    run = run_prompt_b(state["course_markdown"], state["course_meta"], config, state["invoker"])
    update = _record_run(state, run)
    if not run.success:
        return {**update, **_fail(state, RunStatus.RUNNING_B, stage_error_from_run(run))}

    parsed = parse_stage_b(run.output, config, state["course_meta"])
    update.update(_chain_update(state, parsed))
    if not parsed.success:
        return {**update, **_fail(state, RunStatus.RUNNING_B, stage_error_from_parse(parsed))}

    logger.info("inspector_complete", run_id=state["run_id"], questions=len(parsed.quiz.questions))
    return {**update, **advance(state, RunStatus.RUNNING_B), "quiz": parsed.quiz}


def teacher_node(state: CourseRunState) -> dict:
    """Stage C: explanations for every quiz question. Parsed in parser_node."""
    config = state["input"].config

    run = run_prompt_c(state["course_markdown"], state["quiz"], config, state["invoker"])
    update = _record_run(state, run)
    if not run.success:
        return {**update, **_fail(state, RunStatus.RUNNING_C, stage_error_from_run(run))}

    logger.info("teacher_complete", run_id=state["run_id"], output_chars=len(run.output))
    return {**update, **advance(state, RunStatus.RUNNING_C)}


def parser_node(state: CourseRunState) -> dict:
    """Re-parse all three raw texts and classify the run."""
    config = state["input"].config
    results = state["stage_results"]

    parsed = parse_pipeline(results[Stage.A].output, results[Stage.B].output, results[Stage.C].output, config)
    update: dict = {"parsed": parsed}

    if parsed.failures:
        errors = {stage: stage_error_from_parse(p) for stage, p in parsed.failures.items()}
        logger.warning("parsing_failed", run_id=state["run_id"], failed_stages=[s.value for s in errors])
        return {
            **update,
            **advance(state, RunStatus.PARSING, RunStatus.FAILED),
            "stage_errors": {**state["stage_errors"], **errors},
        }

    has_warnings = any(not d.is_error for d in parsed.diagnostics)
    if has_warnings and config.strict:
        logger.warning("strict_mode_warnings", run_id=state["run_id"], warnings=len(parsed.diagnostics))
        terminal = RunStatus.FAILED
    elif has_warnings:
        terminal = RunStatus.COMPLETED_WITH_WARNINGS
    else:
        terminal = RunStatus.COMPLETED

    return {**update, **advance(state, RunStatus.PARSING, terminal)}
