"""Stage artifacts produced by the pipeline.

Artifacts are immutable once produced (sequence fields are tuples):
- Stage A (Architect) → course markdown + CourseMeta
- Stage B (Inspector) → QuizOutput
- Stage C (Teacher)   → ExplanationsOutput
"""

from typing import Optional

from pydantic import Field

from .base import FrozenCamelModel
from .enums import Category, Difficulty, Duration, QuestionDifficulty

OPTIONS_PER_QUESTION = 4


class CourseMeta(FrozenCamelModel):
    """Structured course metadata emitted by Stage A."""

    title: str = Field(..., min_length=1)
    description: str
    category: Category
    difficulty: Difficulty
    duration: Duration
    objectives: tuple[str, ...] = Field(..., min_length=1)
    compliance_mapping: str = ""


class QuizQuestion(FrozenCamelModel):
    """A single multiple-choice question."""

    id: str = Field(..., min_length=1)
    text: str = Field(..., min_length=1)
    options: tuple[str, ...] = Field(
        ..., min_length=OPTIONS_PER_QUESTION, max_length=OPTIONS_PER_QUESTION
    )
    correct_answer_index: int = Field(..., ge=0, le=OPTIONS_PER_QUESTION - 1)
    difficulty: Optional[QuestionDifficulty] = None
    objective_index: Optional[int] = Field(
        None, ge=0, description="0-based index into CourseMeta.objectives"
    )

    @property
    def correct_option(self) -> str:
        return self.options[self.correct_answer_index]


class QuizOutput(FrozenCamelModel):
    """Quiz emitted by Stage B."""

    questions: tuple[QuizQuestion, ...]

    @property
    def question_ids(self) -> list[str]:
        return [q.id for q in self.questions]


class QuestionExplanation(FrozenCamelModel):
    """Why the correct answer is right, and optionally why the others are wrong."""

    explanation: str = Field(..., min_length=1)
    incorrect_options: dict[str, str] = Field(
        default_factory=dict,
        description="Option index (as string) → why that option is wrong",
    )


class ExplanationsOutput(FrozenCamelModel):
    """Explanations emitted by Stage C, keyed by question id."""

    explanations: dict[str, QuestionExplanation]

    def for_question(self, question_id: str) -> Optional[QuestionExplanation]:
        return self.explanations.get(question_id)
