"""Unit tests for prompt building."""

from coursegen.config.prompts import TRUNCATION_MARKER
from coursegen.models import CourseMetadataInput, Difficulty, PipelineConfig, SourceDocument
from coursegen.pipeline.prompts import (
    build_prompt_a,
    build_prompt_b,
    build_prompt_c,
    format_documents,
    resolve_question_count,
    truncate_source,
)


class TestTruncation:
    """Tests for source truncation."""

    def test_short_text_untouched(self):
        assert truncate_source("abc", 10) == "abc"

    def test_long_text_cut_with_marker(self):
        truncated = truncate_source("x" * 2000, 1000)
        assert truncated == "x" * 1000 + TRUNCATION_MARKER
        assert truncated.endswith("...[Text truncated for analysis]...")


class TestQuestionCount:
    """Tests for the target quiz length."""

    def test_explicit_count_wins(self, course_meta):
        assert resolve_question_count(PipelineConfig(num_questions=5), course_meta) == 5

    def test_derived_count_clamped_to_minimum(self, course_meta):
        # 3 objectives * 4 = 12 -> 15
        assert resolve_question_count(PipelineConfig(), course_meta) == 15

    def test_derived_count_clamped_to_maximum(self, course_meta):
        many = course_meta.model_copy(update={"objectives": [f"Objective {i}" for i in range(10)]})
        assert resolve_question_count(PipelineConfig(), many) == 25


class TestPromptA:
    """Tests for the Architect prompt."""

    def test_contains_documents_in_order(self, documents, config):
        prompt = build_prompt_a(documents, None, config)
        assert "--- DOCUMENT: hand_hygiene.txt ---" in prompt
        assert prompt.index("hand_hygiene.txt") < prompt.index("privacy.txt")
        assert documents[1].content in prompt

    def test_deterministic(self, documents, config):
        assert build_prompt_a(documents, None, config) == build_prompt_a(documents, None, config)

    def test_enumerated_sets_embedded(self, documents, config):
        prompt = build_prompt_a(documents, None, config)
        assert "Healthcare Compliance" in prompt
        assert "< 30 mins" in prompt
        assert "Beginner, Moderate, Advanced" in prompt

    def test_truncates_long_sources(self):
        config = PipelineConfig(max_input_chars=1000)
        documents = [SourceDocument(name="long.txt", content="policy " * 1000)]
        prompt = build_prompt_a(documents, None, config)
        assert TRUNCATION_MARKER in prompt

    def test_seed_metadata_section(self, documents, config):
        metadata = CourseMetadataInput(
            title="Clean Hands",
            difficulty=Difficulty.ADVANCED,
            objectives=["Explain the five moments"],
        )
        prompt = build_prompt_a(documents, metadata, config)
        assert "- Title: Clean Hands" in prompt
        assert "1. Explain the five moments" in prompt
        assert 'USE: "Clean Hands"' in prompt

    def test_prompt_version(self, documents):
        prompt = build_prompt_a(documents, None, PipelineConfig(prompt_version="v9.9"))
        assert "PROMPT VERSION: v9.9" in prompt


class TestPromptB:
    """Tests for the Inspector prompt."""

    def test_grounded_in_course_meta(self, course_markdown, course_meta, config):
        prompt = build_prompt_b(course_markdown, course_meta, config)
        assert '"complianceMapping"' in prompt
        assert "0. Apply the five moments of hand hygiene during patient care" in prompt
        assert "## Module 1: Hand Hygiene" in prompt

    def test_deterministic(self, course_markdown, course_meta, config):
        first = build_prompt_b(course_markdown, course_meta, config)
        assert first == build_prompt_b(course_markdown, course_meta, config)


class TestPromptC:
    """Tests for the Teacher prompt."""

    def test_lists_every_question_id(self, course_markdown, quiz, config):
        prompt = build_prompt_c(course_markdown, quiz, config)
        assert "q1, q2, q3, q4, q5" in prompt
        assert '"correctAnswerIndex": 3' in prompt


class TestFormatDocuments:
    """Tests for document delimiting."""

    def test_single_document(self):
        text = format_documents([SourceDocument(name="a.txt", content="Body")])
        assert text == "--- DOCUMENT: a.txt ---\nBody\n--- END DOCUMENT ---"
