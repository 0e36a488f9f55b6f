"""Pydantic data models for the pipeline."""

from .enums import (
    Category,
    Difficulty,
    Duration,
    FailureCategory,
    InvocationErrorKind,
    QuestionDifficulty,
    RunStatus,
    Severity,
    Stage,
    match_enum,
)
from .inputs import CourseMetadataInput, PipelineConfig, PipelineInput, SourceDocument
from .artifacts import (
    OPTIONS_PER_QUESTION,
    CourseMeta,
    ExplanationsOutput,
    QuestionExplanation,
    QuizOutput,
    QuizQuestion,
)
from .results import (
    BUSY_MESSAGE,
    Coverage,
    DiagnosticWarning,
    Diagnostics,
    FullPipelineResult,
    PipelineResult,
    RawPipelineOutputs,
    RawStageOutput,
    StageDiagnostics,
    StageError,
    StageRegeneration,
    StageResult,
)

__all__ = [
    # Enums
    "Stage",
    "Severity",
    "Category",
    "Difficulty",
    "Duration",
    "QuestionDifficulty",
    "RunStatus",
    "InvocationErrorKind",
    "FailureCategory",
    "match_enum",
    # Inputs
    "SourceDocument",
    "CourseMetadataInput",
    "PipelineConfig",
    "PipelineInput",
    # Artifacts
    "OPTIONS_PER_QUESTION",
    "CourseMeta",
    "QuizQuestion",
    "QuizOutput",
    "QuestionExplanation",
    "ExplanationsOutput",
    # Results
    "BUSY_MESSAGE",
    "DiagnosticWarning",
    "StageDiagnostics",
    "Coverage",
    "Diagnostics",
    "StageResult",
    "StageError",
    "RawStageOutput",
    "RawPipelineOutputs",
    "PipelineResult",
    "FullPipelineResult",
    "StageRegeneration",
]
