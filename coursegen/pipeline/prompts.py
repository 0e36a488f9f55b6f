"""Prompt builders for the three pipeline stages.

All builders are pure: identical inputs always produce identical prompt text.
"""

from typing import Optional, Sequence

from coursegen.config.prompts import (
    ARCHITECT_PROMPT,
    DIFFICULTY_INSTRUCTIONS,
    INSPECTOR_PROMPT,
    TEACHER_PROMPT,
    TRUNCATION_MARKER,
)
from coursegen.models import (
    Category,
    CourseMeta,
    CourseMetadataInput,
    Difficulty,
    Duration,
    PipelineConfig,
    QuizOutput,
    SourceDocument,
)

MIN_DERIVED_QUESTIONS = 15
MAX_DERIVED_QUESTIONS = 25
QUESTIONS_PER_OBJECTIVE = 4


def truncate_source(text: str, max_chars: int) -> str:
    """Cut text to max_chars, appending a marker when anything was dropped."""
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + TRUNCATION_MARKER


def format_documents(documents: Sequence[SourceDocument]) -> str:
    """Join source documents into one delimited context block."""
    return "\n\n".join(
        f"--- DOCUMENT: {doc.name} ---\n{doc.content}\n--- END DOCUMENT ---"
        for doc in documents
    )


def resolve_question_count(config: PipelineConfig, course_meta: Optional[CourseMeta] = None) -> int:
    """Target quiz length.

    Uses config.num_questions when set; otherwise four questions per
    objective, clamped to 15-25.
    """
    if config.num_questions:
        return config.num_questions
    objectives = len(course_meta.objectives) if course_meta else 0
    return max(MIN_DERIVED_QUESTIONS, min(MAX_DERIVED_QUESTIONS, objectives * QUESTIONS_PER_OBJECTIVE))


def _metadata_section(metadata: Optional[CourseMetadataInput]) -> str:
    if metadata is None:
        return ""

    lines = ["", "COURSE METADATA (use this to guide course creation):"]
    if metadata.title:
        lines.append(f"- Title: {metadata.title}")
    if metadata.description:
        lines.append(f"- Description: {metadata.description}")
    if metadata.category:
        lines.append(f"- Category: {metadata.category}")
    if metadata.difficulty:
        lines.append(f"- Difficulty Level: {metadata.difficulty.value}")
    if metadata.duration:
        lines.append(f"- Estimated Duration: {metadata.duration}")
    if metadata.objectives:
        lines.append("- Learning Objectives:")
        lines.extend(f"  {i}. {obj}" for i, obj in enumerate(metadata.objectives, start=1))
    if metadata.compliance_mapping:
        lines.append(f"- Compliance Mapping: {metadata.compliance_mapping}")

    if len(lines) == 2:
        return ""
    return "\n".join(lines) + "\n"


def _difficulty_section(difficulty: Optional[Difficulty]) -> str:
    if difficulty is None:
        return ""
    return DIFFICULTY_INSTRUCTIONS[difficulty.value]


def build_prompt_a(
    documents: Sequence[SourceDocument],
    metadata: Optional[CourseMetadataInput],
    config: PipelineConfig,
) -> str:
    """Build the Architect prompt (course markdown + courseMeta).

    Args:
        documents: Source documents, in upload order.
        metadata: Optional seed hints from the course author.
        config: Run configuration.

    Returns:
        Prompt text.
    """
    context = truncate_source(format_documents(documents), config.max_input_chars)
    difficulty = (metadata.difficulty if metadata else None) or config.difficulty
    title_hint = f' - USE: "{metadata.title}"' if metadata and metadata.title else ""

    return ARCHITECT_PROMPT.format(
        prompt_version=config.prompt_version,
        metadata_section=_metadata_section(metadata),
        difficulty_section=_difficulty_section(difficulty),
        title_hint=title_hint,
        categories=", ".join(c.value for c in Category),
        difficulties=", ".join(d.value for d in Difficulty),
        durations=", ".join(d.value for d in Duration),
        documents=context,
    )


def build_prompt_b(
    course_markdown: str,
    course_meta: CourseMeta,
    config: PipelineConfig,
) -> str:
    """Build the Inspector prompt (quiz grounded in the course)."""
    objectives = "\n".join(f"{i}. {obj}" for i, obj in enumerate(course_meta.objectives))
    difficulty_section = (
        f"\nTARGET DIFFICULTY: {config.difficulty.value} - calibrate question complexity to this level.\n"
        if config.difficulty
        else ""
    )

    return INSPECTOR_PROMPT.format(
        prompt_version=config.prompt_version,
        num_questions=resolve_question_count(config, course_meta),
        pass_mark=config.pass_mark,
        difficulty_section=difficulty_section,
        objectives=objectives,
        course_meta=course_meta.model_dump_json(by_alias=True, indent=2),
        course_markdown=truncate_source(course_markdown, config.max_input_chars),
    )


def build_prompt_c(
    course_markdown: str,
    quiz: QuizOutput,
    config: PipelineConfig,
) -> str:
    """Build the Teacher prompt (one explanation per quiz question)."""
    return TEACHER_PROMPT.format(
        prompt_version=config.prompt_version,
        num_questions=len(quiz.questions),
        question_ids=", ".join(quiz.question_ids),
        quiz=quiz.model_dump_json(by_alias=True, indent=2, exclude_none=True),
        course_markdown=truncate_source(course_markdown, config.max_input_chars),
    )
