"""Pytest configuration and fixtures."""

import json
from typing import Union

import pytest

from coursegen.llm import ModelInvocationError, ModelResponse
from coursegen.models import PipelineConfig, PipelineInput, SourceDocument


class ScriptedInvoker:
    """ModelInvoker that replays canned responses in order.

    Each script entry is either response text or an exception to raise.
    """

    def __init__(self, script: list[Union[str, Exception]]):
        self.script = list(script)
        self.prompts: list[str] = []

    @property
    def calls(self) -> int:
        return len(self.prompts)

    def invoke(self, prompt: str) -> ModelResponse:
        self.prompts.append(prompt)
        if not self.script:
            raise ModelInvocationError("Script exhausted")
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return ModelResponse(text=item, duration_ms=5, model="scripted")


POLICY_HANDWASHING = (
    "Hand Hygiene Policy. All clinical staff must perform hand hygiene before and after "
    "every patient contact, before aseptic procedures, after exposure to body fluids and "
    "after touching patient surroundings. Alcohol-based hand rub is the preferred method "
    "when hands are not visibly soiled; soap and water must be used when hands are visibly "
    "dirty or after caring for patients with suspected C. difficile infection. Rubbing must "
    "last at least 20 seconds and cover all surfaces of the hands. Artificial nails are not "
    "permitted for staff with direct patient contact. Compliance is audited monthly by the "
    "infection prevention team and results are shared with each unit manager."
)

POLICY_PRIVACY = (
    "Patient Privacy Policy. Protected health information (PHI) may only be accessed when "
    "required for a staff member's job duties. Staff must never discuss patient information "
    "in public areas such as elevators or cafeterias. Workstations must be locked whenever "
    "they are left unattended, and passwords must never be shared. Suspected privacy "
    "breaches must be reported to the Privacy Officer within 24 hours of discovery. Printed "
    "documents containing PHI must be shredded in the secure bins provided. Violations of "
    "this policy may result in disciplinary action up to and including termination."
)

OBJECTIVES = [
    "Apply the five moments of hand hygiene during patient care",
    "Choose between alcohol rub and soap and water correctly",
    "Protect patient health information and report privacy breaches",
]

COURSE_META = {
    "title": "Infection Control and Patient Privacy Essentials",
    "description": "Learn the hand hygiene and privacy rules every clinical staff member must follow.",
    "category": "Healthcare Compliance",
    "difficulty": "Beginner",
    "duration": "< 30 mins",
    "objectives": OBJECTIVES,
    "complianceMapping": "HIPAA Privacy Rule; CDC Hand Hygiene Guidelines",
}

COURSE_MARKDOWN = """# Infection Control and Patient Privacy Essentials

Learn the hand hygiene and privacy rules every clinical staff member must follow.

---

## Module 1: Hand Hygiene

**Hand hygiene** is required before and after every patient contact. Use alcohol rub unless hands are visibly soiled.

---

## Module 2: Patient Privacy

Access **PHI** only when your job requires it and report suspected breaches within 24 hours.

---

## Module 3: Summary

- Clean hands at every moment of care
- Protect patient information"""

QUESTIONS = [
    {
        "id": "q1",
        "text": "When must clinical staff perform hand hygiene?",
        "options": [
            "Only at the start of a shift",
            "Before and after every patient contact",
            "Only when hands look dirty",
            "Once per hour",
        ],
        "correctAnswerIndex": 1,
        "difficulty": "recall",
        "objectiveIndex": 0,
    },
    {
        "id": "q2",
        "text": "Your hands are visibly soiled after a procedure. What should you use?",
        "options": [
            "Alcohol-based hand rub",
            "A paper towel",
            "Soap and water",
            "Gloves without cleaning",
        ],
        "correctAnswerIndex": 2,
        "difficulty": "application",
        "objectiveIndex": 1,
    },
    {
        "id": "q3",
        "text": "How long should hand rubbing last?",
        "options": [
            "At least 20 seconds",
            "About 5 seconds",
            "Until hands feel warm",
            "Two minutes",
        ],
        "correctAnswerIndex": 0,
        "difficulty": "recall",
        "objectiveIndex": 0,
    },
    {
        "id": "q4",
        "text": "A colleague asks for your password to check a chart quickly. What do you do?",
        "options": [
            "Share it this once",
            "Write it on a sticky note",
            "Log in for them",
            "Refuse and direct them to their own access",
        ],
        "correctAnswerIndex": 3,
        "difficulty": "judgment",
        "objectiveIndex": 2,
    },
    {
        "id": "q5",
        "text": "Within what time must a suspected privacy breach be reported?",
        "options": [
            "One week",
            "24 hours",
            "30 days",
            "Only if the patient complains",
        ],
        "correctAnswerIndex": 1,
        "difficulty": "recall",
        "objectiveIndex": 2,
    },
]


def _explanation(question: dict) -> dict:
    correct = question["correctAnswerIndex"]
    return {
        "questionId": question["id"],
        "explanation": f"The correct answer is '{question['options'][correct]}' as stated in the policy.",
        "incorrectOptions": {
            str(i): f"'{option}' does not match the policy."
            for i, option in enumerate(question["options"])
            if i != correct
        },
    }


EXPLANATIONS = [_explanation(q) for q in QUESTIONS]


def fenced(payload) -> str:
    return "```json\n" + json.dumps(payload, indent=2) + "\n```"


RAW_A = COURSE_MARKDOWN + "\n\n" + fenced(COURSE_META) + "\n"
RAW_B = "Here is the quiz grounded in the course.\n\n" + fenced({"questions": QUESTIONS})
RAW_C = "Explanations follow.\n\n" + fenced({"explanations": EXPLANATIONS})


@pytest.fixture
def course_meta_dict() -> dict:
    return json.loads(json.dumps(COURSE_META))


@pytest.fixture
def quiz_dict() -> dict:
    return {"questions": json.loads(json.dumps(QUESTIONS))}


@pytest.fixture
def explanations_dict() -> dict:
    return {"explanations": json.loads(json.dumps(EXPLANATIONS))}


@pytest.fixture
def raw_a() -> str:
    return RAW_A


@pytest.fixture
def raw_b() -> str:
    return RAW_B


@pytest.fixture
def raw_c() -> str:
    return RAW_C


@pytest.fixture
def course_markdown() -> str:
    return COURSE_MARKDOWN


@pytest.fixture
def documents() -> list[SourceDocument]:
    """Two policy documents, about 1,200 characters in total."""
    return [
        SourceDocument(name="hand_hygiene.txt", content=POLICY_HANDWASHING, type="txt"),
        SourceDocument(name="privacy.txt", content=POLICY_PRIVACY, type="txt"),
    ]


@pytest.fixture
def config() -> PipelineConfig:
    return PipelineConfig(num_questions=5, retry_delay_seconds=0)


@pytest.fixture
def pipeline_input(documents, config) -> PipelineInput:
    return PipelineInput(documents=documents, config=config)


@pytest.fixture
def course_meta(course_meta_dict):
    from coursegen.pipeline import validate_course_meta

    meta, _ = validate_course_meta(course_meta_dict)
    return meta


@pytest.fixture
def quiz(quiz_dict, course_meta):
    from coursegen.pipeline import validate_quiz

    result, _ = validate_quiz(quiz_dict, expected_count=5, course_meta=course_meta)
    return result


@pytest.fixture
def scripted_invoker():
    """Factory for ScriptedInvoker instances."""
    return ScriptedInvoker
