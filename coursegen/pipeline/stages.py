"""Stage runners and single-stage regeneration.

Runners build the prompt, invoke the model with retries and always return a
StageResult; they never raise. Regeneration re-runs exactly one stage from
upstream artifacts passed in explicitly.
"""

import time
from typing import Optional, Sequence

import structlog
from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt

from coursegen.llm import ModelInvocationError, ModelInvoker, ModelResponse, classify_invocation_error
from coursegen.models import (
    CourseMeta,
    CourseMetadataInput,
    FailureCategory,
    InvocationErrorKind,
    PipelineConfig,
    PipelineInput,
    QuizOutput,
    SourceDocument,
    Stage,
    StageError,
    StageRegeneration,
    StageResult,
)
from coursegen.pipeline.parser import StageParse, parse_stage_a, parse_stage_b, parse_stage_c
from coursegen.pipeline.prompts import build_prompt_a, build_prompt_b, build_prompt_c

logger = structlog.get_logger(__name__)

# Rate-limited attempts wait this many times longer than ordinary failures
RATE_LIMIT_BACKOFF_FACTOR = 5


def _retry_wait(config: PipelineConfig):
    def _wait(retry_state: RetryCallState) -> float:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(exc, ModelInvocationError) and exc.is_rate_limit:
            return config.retry_delay_seconds * RATE_LIMIT_BACKOFF_FACTOR * retry_state.attempt_number
        return config.retry_delay_seconds

    return _wait


def _log_retry(stage: Stage):
    def _before_sleep(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "stage_retrying",
            stage=stage.value,
            attempt=retry_state.attempt_number,
            error=str(exc),
            kind=exc.kind.value if isinstance(exc, ModelInvocationError) else None,
        )

    return _before_sleep


def run_stage(
    prompt: str,
    stage: Stage,
    config: PipelineConfig,
    invoker: ModelInvoker,
) -> StageResult:
    """Invoke the model for one stage, retrying failed invocations.

    A response shorter than config.min_response_chars counts as a failed
    invocation and is retried like any other.

    Args:
        prompt: Fully built stage prompt.
        stage: Stage being run.
        config: Run configuration (retry policy).
        invoker: Model invoker.

    Returns:
        StageResult; success is False after the last failed attempt.
    """
    attempts = 0
    start = time.perf_counter()

    def _attempt() -> ModelResponse:
        nonlocal attempts
        attempts += 1
        try:
            response = invoker.invoke(prompt)
        except ModelInvocationError:
            raise
        except Exception as e:
            raise ModelInvocationError(str(e), classify_invocation_error(e)) from e

        if len(response.text.strip()) < config.min_response_chars:
            raise ModelInvocationError(
                f"Response too short ({len(response.text.strip())} chars)",
                InvocationErrorKind.EMPTY_RESPONSE,
            )
        return response

    retryer = Retrying(
        stop=stop_after_attempt(config.max_retries),
        wait=_retry_wait(config),
        retry=retry_if_exception_type(ModelInvocationError),
        before_sleep=_log_retry(stage),
        reraise=True,
    )

    logger.info(f"stage_{stage.value.lower()}_start", prompt_chars=len(prompt))

    try:
        response = retryer(_attempt)
    except ModelInvocationError as e:
        duration_ms = int((time.perf_counter() - start) * 1000)
        logger.error(
            f"stage_{stage.value.lower()}_failed",
            attempts=attempts,
            error=str(e),
            kind=e.kind.value,
        )
        return StageResult(
            stage=stage,
            success=False,
            duration_ms=duration_ms,
            attempts=attempts,
            prompt_chars=len(prompt),
            error=str(e),
            error_kind=e.kind,
        )

    duration_ms = int((time.perf_counter() - start) * 1000)
    logger.info(
        f"stage_{stage.value.lower()}_complete",
        attempts=attempts,
        duration_ms=duration_ms,
        output_chars=len(response.text),
        model=response.model,
    )
    return StageResult(
        stage=stage,
        success=True,
        output=response.text,
        duration_ms=duration_ms,
        attempts=attempts,
        prompt_chars=len(prompt),
        model=response.model,
    )


# =============================================================================
# Stage runners
# =============================================================================

def run_prompt_a(
    documents: Sequence[SourceDocument],
    metadata: Optional[CourseMetadataInput],
    config: PipelineConfig,
    invoker: ModelInvoker,
) -> StageResult:
    """Run the Architect stage."""
    return run_stage(build_prompt_a(documents, metadata, config), Stage.A, config, invoker)


def run_prompt_b(
    course_markdown: str,
    course_meta: CourseMeta,
    config: PipelineConfig,
    invoker: ModelInvoker,
) -> StageResult:
    """Run the Inspector stage."""
    return run_stage(build_prompt_b(course_markdown, course_meta, config), Stage.B, config, invoker)


def run_prompt_c(
    course_markdown: str,
    quiz: QuizOutput,
    config: PipelineConfig,
    invoker: ModelInvoker,
) -> StageResult:
    """Run the Teacher stage."""
    return run_stage(build_prompt_c(course_markdown, quiz, config), Stage.C, config, invoker)


def stage_error_from_run(run: StageResult) -> StageError:
    return StageError(
        stage=run.stage,
        category=FailureCategory.INVOCATION,
        message=run.error or f"Stage {run.stage.value} invocation failed",
        invocation_kind=run.error_kind,
    )


def stage_error_from_parse(parsed: StageParse) -> StageError:
    return StageError(
        stage=parsed.stage,
        category=parsed.failure or FailureCategory.VALIDATION,
        message=parsed.error_message(),
    )


# =============================================================================
# Regeneration
# =============================================================================

def _regeneration(run: StageResult, parsed: Optional[StageParse]) -> StageRegeneration:
    if parsed is None:
        return StageRegeneration(stage=run.stage, run=run, error=stage_error_from_run(run))

    return StageRegeneration(
        stage=run.stage,
        run=run,
        course_markdown=parsed.course_markdown,
        course_meta=parsed.course_meta,
        quiz=parsed.quiz,
        explanations=parsed.explanations,
        diagnostics=parsed.diagnostics,
        repairs=parsed.repairs,
        error=None if parsed.success else stage_error_from_parse(parsed),
    )


def regenerate_stage_a(pipeline_input: PipelineInput, invoker: ModelInvoker) -> StageRegeneration:
    """Re-run the Architect stage.

    Args:
        pipeline_input: Original documents, metadata and config.
        invoker: Model invoker.

    Returns:
        StageRegeneration with new course markdown and metadata on success.
    """
    config = pipeline_input.config
    logger.info("regenerate_stage", stage=Stage.A.value)

    run = run_prompt_a(pipeline_input.documents, pipeline_input.metadata, config, invoker)
    if not run.success:
        return _regeneration(run, None)
    return _regeneration(run, parse_stage_a(run.output, config))


def regenerate_stage_b(
    course_markdown: str,
    course_meta: CourseMeta,
    invoker: ModelInvoker,
    config: Optional[PipelineConfig] = None,
) -> StageRegeneration:
    """Re-run the Inspector stage from existing Stage A artifacts.

    Stage A is never invoked and the given artifacts are not modified.

    Args:
        course_markdown: Stage A course text.
        course_meta: Stage A metadata.
        invoker: Model invoker.
        config: Run configuration. Defaults to PipelineConfig().

    Returns:
        StageRegeneration with a new quiz on success.
    """
    config = config or PipelineConfig()
    logger.info("regenerate_stage", stage=Stage.B.value)

    run = run_prompt_b(course_markdown, course_meta, config, invoker)
    if not run.success:
        return _regeneration(run, None)
    return _regeneration(run, parse_stage_b(run.output, config, course_meta))


def regenerate_stage_c(
    course_markdown: str,
    quiz: QuizOutput,
    invoker: ModelInvoker,
    config: Optional[PipelineConfig] = None,
) -> StageRegeneration:
    """Re-run the Teacher stage from an existing course and quiz."""
    config = config or PipelineConfig()
    logger.info("regenerate_stage", stage=Stage.C.value)

    run = run_prompt_c(course_markdown, quiz, config, invoker)
    if not run.success:
        return _regeneration(run, None)
    return _regeneration(run, parse_stage_c(run.output, quiz, config))
