"""End-to-end tests for the pipeline graph and run state machine."""

import asyncio

import pytest

from coursegen.llm import ModelInvocationError
from coursegen.models import (
    BUSY_MESSAGE,
    FailureCategory,
    InvocationErrorKind,
    PipelineConfig,
    PipelineInput,
    RunStatus,
    Stage,
)
from coursegen.pipeline.graph import run_full_pipeline, run_full_pipeline_async
from coursegen.pipeline.state import InvalidTransitionError, transition

HAPPY_PATH = [
    RunStatus.NOT_STARTED,
    RunStatus.RUNNING_A,
    RunStatus.RUNNING_B,
    RunStatus.RUNNING_C,
    RunStatus.PARSING,
    RunStatus.COMPLETED,
]


class TestRunFullPipeline:
    """Tests for full runs against a scripted model."""

    def test_end_to_end(self, scripted_invoker, pipeline_input, documents, raw_a, raw_b, raw_c):
        assert 1000 <= sum(len(d.content) for d in documents) <= 1400

        invoker = scripted_invoker([raw_a, raw_b, raw_c])
        result = run_full_pipeline(pipeline_input, invoker)

        assert result.success
        assert result.status == RunStatus.COMPLETED
        assert result.status_history == HAPPY_PATH
        assert result.stage_errors == {}

        course = result.result
        assert len(course.course_meta.objectives) == 3
        assert len(course.quiz.questions) == 5
        assert all(len(q.options) == 4 for q in course.quiz.questions)
        assert all(0 <= q.correct_answer_index <= 3 for q in course.quiz.questions)
        assert list(course.explanations.explanations) == course.quiz.question_ids

        diagnostics = course.diagnostics
        assert diagnostics.errors == []
        assert diagnostics.warnings == []
        assert diagnostics.status == RunStatus.COMPLETED
        assert set(diagnostics.stages) == {Stage.A, Stage.B, Stage.C}
        assert diagnostics.coverage.correct_answer_distribution == {0: 1, 1: 2, 2: 1, 3: 1}
        assert diagnostics.coverage.objectives_without_questions == []

        assert result.raw_outputs.raw_a.output == raw_a
        assert result.raw_outputs.raw_c.output == raw_c
        assert invoker.calls == 3

    def test_warnings_complete_with_warnings(self, scripted_invoker, documents, raw_a, raw_b, raw_c):
        pipeline_input = PipelineInput(
            documents=documents,
            config=PipelineConfig(num_questions=6, retry_delay_seconds=0),
        )
        result = run_full_pipeline(pipeline_input, scripted_invoker([raw_a, raw_b, raw_c]))

        assert result.success
        assert result.status == RunStatus.COMPLETED_WITH_WARNINGS
        assert [w.code for w in result.diagnostics.warnings] == ["QUESTION_COUNT_MISMATCH"]

    def test_strict_mode_fails_on_warnings(self, scripted_invoker, documents, raw_a, raw_b, raw_c):
        pipeline_input = PipelineInput(
            documents=documents,
            config=PipelineConfig(num_questions=6, strict=True, retry_delay_seconds=0),
        )
        result = run_full_pipeline(pipeline_input, scripted_invoker([raw_a, raw_b, raw_c]))

        assert not result.success
        assert result.status == RunStatus.FAILED
        assert result.result is None
        assert result.status_history[-2:] == [RunStatus.PARSING, RunStatus.FAILED]
        assert result.user_message

    def test_truncated_stage_b(self, scripted_invoker, pipeline_input, raw_a, raw_b, raw_c):
        truncated_b = raw_b[: raw_b.index('"Refuse and direct') + 12]
        invoker = scripted_invoker([raw_a, truncated_b, raw_c])

        result = run_full_pipeline(pipeline_input, invoker)

        assert result.raw_outputs.raw_a.output == raw_a
        assert result.raw_outputs.raw_b.output == truncated_b
        assert result.success
        assert result.status == RunStatus.COMPLETED_WITH_WARNINGS
        assert result.result.quiz.question_ids == ["q1", "q2", "q3"]
        assert list(result.result.explanations.explanations) == ["q1", "q2", "q3"]
        assert result.diagnostics.repairs[Stage.B] == ["close_truncation", "drop_partial_element"]

        warning_codes = [w.code for w in result.diagnostics.warnings]
        assert "QUESTION_COUNT_MISMATCH" in warning_codes
        assert warning_codes.count("UNKNOWN_QUESTION_ID") == 2
        assert '"id": "q4"' not in invoker.prompts[2]
        assert invoker.calls == 3

    def test_stage_b_cut_before_first_question_halts(self, scripted_invoker, pipeline_input, raw_a, raw_b, raw_c):
        truncated_b = raw_b[: raw_b.index("Only at the start") + 4]
        invoker = scripted_invoker([raw_a, truncated_b, raw_c])

        result = run_full_pipeline(pipeline_input, invoker)

        assert not result.success
        assert result.failed_stage == Stage.B
        assert result.stage_errors[Stage.B].category == FailureCategory.PARSE
        assert result.status_history[-2:] == [RunStatus.RUNNING_B, RunStatus.FAILED]
        assert result.raw_outputs.raw_a.output == raw_a
        assert result.raw_outputs.raw_c.output == ""
        assert invoker.calls == 2

    def test_stage_a_invocation_failure_halts(self, scripted_invoker, documents):
        config = PipelineConfig(max_retries=2, retry_delay_seconds=0)
        invoker = scripted_invoker([
            ModelInvocationError("connection refused", InvocationErrorKind.TRANSPORT),
            ModelInvocationError("connection refused", InvocationErrorKind.TRANSPORT),
        ])
        result = run_full_pipeline(PipelineInput(documents=documents, config=config), invoker)

        assert not result.success
        assert result.failed_stage == Stage.A
        assert result.status_history == [RunStatus.NOT_STARTED, RunStatus.RUNNING_A, RunStatus.FAILED]
        assert result.user_message == "connection refused"
        assert result.diagnostics.stages[Stage.A].success is False

    def test_rate_limit_surfaces_busy_message(self, scripted_invoker, documents, raw_a):
        config = PipelineConfig(num_questions=5, max_retries=1, retry_delay_seconds=0)
        invoker = scripted_invoker([raw_a, ModelInvocationError("RESOURCE_EXHAUSTED", InvocationErrorKind.RATE_LIMIT)])
        result = run_full_pipeline(PipelineInput(documents=documents, config=config), invoker)

        assert not result.success
        assert result.failed_stage == Stage.B
        assert result.stage_errors[Stage.B].rate_limited
        assert result.user_message == BUSY_MESSAGE
        assert result.raw_outputs.raw_a.output == raw_a

    def test_missing_explanation_fails_stage_c(self, scripted_invoker, pipeline_input, raw_a, raw_b, raw_c):
        broken_c = raw_c.replace('"questionId": "q5"', '"questionId": "q55"')
        result = run_full_pipeline(pipeline_input, scripted_invoker([raw_a, raw_b, broken_c]))

        assert not result.success
        assert result.failed_stage == Stage.C
        assert result.stage_errors[Stage.C].category == FailureCategory.VALIDATION
        error_ids = [e.question_id for e in result.diagnostics.errors]
        assert error_ids == ["q5"]

    def test_independent_runs_do_not_share_state(self, scripted_invoker, pipeline_input, raw_a, raw_b, raw_c):
        first = run_full_pipeline(pipeline_input, scripted_invoker([raw_a, raw_b, raw_c]))
        second = run_full_pipeline(pipeline_input, scripted_invoker([raw_a, raw_b, raw_c]))
        assert first.raw_outputs.run_id != second.raw_outputs.run_id
        assert first.result.quiz == second.result.quiz

    def test_async_entry_point(self, scripted_invoker, pipeline_input, raw_a, raw_b, raw_c):
        result = asyncio.run(run_full_pipeline_async(pipeline_input, scripted_invoker([raw_a, raw_b, raw_c])))
        assert result.success


class TestRunStateMachine:
    """Tests for run status transitions."""

    def test_happy_path(self):
        status = RunStatus.NOT_STARTED
        for target in HAPPY_PATH[1:]:
            status = transition(status, target)
        assert status == RunStatus.COMPLETED

    @pytest.mark.parametrize("running", [
        RunStatus.RUNNING_A,
        RunStatus.RUNNING_B,
        RunStatus.RUNNING_C,
        RunStatus.PARSING,
    ])
    def test_failed_reachable_from_running_states(self, running):
        assert transition(running, RunStatus.FAILED) == RunStatus.FAILED

    @pytest.mark.parametrize("current,target", [
        (RunStatus.NOT_STARTED, RunStatus.RUNNING_B),
        (RunStatus.NOT_STARTED, RunStatus.FAILED),
        (RunStatus.RUNNING_A, RunStatus.COMPLETED),
        (RunStatus.COMPLETED, RunStatus.RUNNING_A),
        (RunStatus.FAILED, RunStatus.PARSING),
    ])
    def test_illegal_transitions_rejected(self, current, target):
        with pytest.raises(InvalidTransitionError):
            transition(current, target)
