"""Course generation pipeline: prompts, extraction, validation and orchestration."""

from .diagnostics import DiagnosticsCollector, compute_coverage
from .extraction import ParseError, extract_json_block, extract_markdown_content, repair_json
from .graph import build_pipeline, run_full_pipeline, run_full_pipeline_async
from .parser import ParseResult, StageParse, parse_pipeline, parse_stage_a, parse_stage_b, parse_stage_c
from .prompts import build_prompt_a, build_prompt_b, build_prompt_c
from .stages import (
    regenerate_stage_a,
    regenerate_stage_b,
    regenerate_stage_c,
    run_prompt_a,
    run_prompt_b,
    run_prompt_c,
)
from .state import InvalidTransitionError, transition
from .validation import validate_course_meta, validate_explanations, validate_quiz

__all__ = [
    "DiagnosticsCollector",
    "InvalidTransitionError",
    "ParseError",
    "ParseResult",
    "StageParse",
    "build_pipeline",
    "build_prompt_a",
    "build_prompt_b",
    "build_prompt_c",
    "compute_coverage",
    "extract_json_block",
    "extract_markdown_content",
    "parse_pipeline",
    "parse_stage_a",
    "parse_stage_b",
    "parse_stage_c",
    "regenerate_stage_a",
    "regenerate_stage_b",
    "regenerate_stage_c",
    "repair_json",
    "run_full_pipeline",
    "run_full_pipeline_async",
    "run_prompt_a",
    "run_prompt_b",
    "run_prompt_c",
    "transition",
    "validate_course_meta",
    "validate_explanations",
    "validate_quiz",
]
