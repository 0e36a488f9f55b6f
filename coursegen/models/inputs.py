"""Pipeline input models: source documents, seed metadata and configuration."""

from typing import Optional

from pydantic import Field

from .base import CamelModel
from .enums import Difficulty


class SourceDocument(CamelModel):
    """A document already converted to plain text."""

    name: str = Field(..., min_length=1, description="Original file name")
    content: str = Field(..., description="Extracted plain text")
    type: Optional[str] = Field(None, description="MIME type or extension")


class CourseMetadataInput(CamelModel):
    """Seed hints supplied by the course author. All fields optional."""

    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    difficulty: Optional[Difficulty] = None
    duration: Optional[str] = None
    objectives: list[str] = Field(default_factory=list)
    compliance_mapping: Optional[str] = None


class PipelineConfig(CamelModel):
    """Per-run configuration."""

    num_questions: Optional[int] = Field(
        None, ge=1, le=100,
        description="Target quiz length; derived from objectives when omitted",
    )
    difficulty: Optional[Difficulty] = Field(
        None, description="Target complexity when the seed metadata has none"
    )
    pass_mark: int = Field(default=80, ge=0, le=100, description="Pass mark in percent")
    max_input_chars: int = Field(
        default=50_000, ge=1000,
        description="Source text budget per prompt before truncation",
    )
    max_retries: int = Field(default=3, ge=1, le=10)
    retry_delay_seconds: float = Field(default=2.0, ge=0.0)
    min_response_chars: int = Field(
        default=100, ge=0,
        description="Shorter responses are treated as failed invocations",
    )

    prompt_version: str = "v1.0"
    strict: bool = Field(default=False, description="Fail the run on warnings too")
    repair: bool = Field(default=True, description="Apply JSON repair heuristics")
    sanitize_course: bool = Field(
        default=True, description="Strip reviewer notes from course markdown"
    )


class PipelineInput(CamelModel):
    """Everything a full pipeline run needs."""

    documents: list[SourceDocument] = Field(..., min_length=1)
    metadata: Optional[CourseMetadataInput] = None
    config: PipelineConfig = Field(default_factory=PipelineConfig)
