"""LLM prompt templates for the three pipeline stages.

Templates are filled with str.format, so literal curly braces are escaped
as {{ }}.
"""

TRUNCATION_MARKER = "\n...[Text truncated for analysis]..."

# Common instruction to keep the structured payload machine-readable
JSON_ONLY_INSTRUCTION = """
CRITICAL: The JSON you output MUST be valid JSON.
- Use double quotes for all keys and string values.
- No comments, no trailing commas.
- No text after the closing fence of the JSON block."""

DIFFICULTY_INSTRUCTIONS = {
    "Beginner": """
DIFFICULTY LEVEL: BEGINNER
- Use plain, everyday language
- Avoid jargon; explain technical terms immediately
- Use simple analogies from daily life
- Break concepts into small pieces
- Provide step-by-step instructions
- Focus on practical "how-to"
""",
    "Moderate": """
DIFFICULTY LEVEL: MODERATE
- Use professional terminology with explanations
- Provide both conceptual understanding AND practical application
- Explain the "why" behind processes
- Assume basic familiarity but not expertise
""",
    "Advanced": """
DIFFICULTY LEVEL: ADVANCED
- Use precise technical terminology
- Provide in-depth theoretical foundations
- Reference industry frameworks and compliance requirements
- Explain complex mechanisms and edge cases
- Assume professional expertise
""",
}

# =============================================================================
# PROMPT A: THE ARCHITECT
# =============================================================================

ARCHITECT_PROMPT = """You are an expert instructional designer creating a training course.

PROMPT VERSION: {prompt_version}
{metadata_section}{difficulty_section}
YOUR TASK:
Create a training course with two outputs:
1. Course content in Markdown format
2. A courseMeta JSON block describing the course

COURSE MARKDOWN REQUIREMENTS:
- Course title as H1 (single #){title_hint}
- Brief course description (2-3 sentences), then a horizontal rule (---)
- Modules as H2 using the format "## Module N: [Title]", each followed by ---
- At most 1000 characters per module (split into Part 1, Part 2 if needed)
- Use **bold** for key terms and bullet points for lists
- Explain "why", not just "what", with real-world examples
- End with a Summary module listing what was learned

COURSEMETA JSON REQUIREMENTS:
After the markdown, output exactly ONE fenced JSON block with this structure:

```json
{{
  "title": "Course title",
  "description": "2-3 sentence description of what learners will gain",
  "category": "One of: {categories}",
  "difficulty": "One of: {difficulties}",
  "duration": "One of: {durations}",
  "objectives": [
    "Learning objective 1",
    "Learning objective 2",
    "Learning objective 3"
  ],
  "complianceMapping": "Relevant compliance standard, or empty string"
}}
```

RULES:
- "objectives" must contain at least one objective
- category, difficulty and duration must be copied exactly from the allowed values
- Use ONLY the source documents; if sources contradict each other, say so in the description
""" + JSON_ONLY_INSTRUCTION + """

SOURCE DOCUMENTS:
{documents}
"""

# =============================================================================
# PROMPT B: THE INSPECTOR
# =============================================================================

INSPECTOR_PROMPT = """You are an expert quiz designer creating assessment questions.

PROMPT VERSION: {prompt_version}

YOUR TASK:
Create exactly {num_questions} multiple-choice questions based ONLY on the course content provided.
Learners need {pass_mark}% to pass, so every question must be answerable from the course.
{difficulty_section}
QUESTION REQUIREMENTS:
- Test content that IS in the course (no external knowledge)
- Each question has exactly 4 options and exactly 1 correct answer
- Distribute difficulty: ~40% recall, ~40% application, ~20% judgment
- Cover every learning objective at least once where possible

DIFFICULTY DEFINITIONS:
- recall: Direct memory of facts from the course
- application: Applying concepts to scenarios
- judgment: Evaluating situations or making decisions

LEARNING OBJECTIVES (use the number as objectiveIndex):
{objectives}

OUTPUT FORMAT:
Output exactly ONE fenced JSON block:

```json
{{
  "questions": [
    {{
      "id": "q01",
      "text": "What is the primary purpose of...?",
      "options": ["Option A", "Option B", "Option C", "Option D"],
      "correctAnswerIndex": 0,
      "difficulty": "recall",
      "objectiveIndex": 0
    }}
  ]
}}
```

CRITICAL VALIDATION:
- Question ids must be unique (q01, q02, ...)
- "options" has exactly 4 strings
- correctAnswerIndex is an integer 0-3 (index of the correct option)
- difficulty is one of: recall, application, judgment
""" + JSON_ONLY_INSTRUCTION + """

COURSE METADATA:
{course_meta}

COURSE CONTENT:
{course_markdown}
"""

# =============================================================================
# PROMPT C: THE TEACHER
# =============================================================================

TEACHER_PROMPT = """You are an expert educator writing learning explanations for a quiz.

PROMPT VERSION: {prompt_version}

YOUR TASK:
For EACH of the {num_questions} quiz questions, write:
1. An explanation of why the correct answer is correct
2. For each incorrect option, why it is wrong

REQUIREMENTS:
- Reference concepts FROM THE COURSE ONLY; do not introduce new facts
- Keep each explanation concise but educational (1-3 sentences)

OUTPUT FORMAT:
Output exactly ONE fenced JSON block:

```json
{{
  "explanations": [
    {{
      "questionId": "q01",
      "explanation": "Option A is correct because the course states that...",
      "incorrectOptions": {{
        "1": "This is incorrect because...",
        "2": "This contradicts what was taught about...",
        "3": "While this seems reasonable, the course specifically says..."
      }}
    }}
  ]
}}
```

CRITICAL:
- questionId MUST be one of: {question_ids}
- Every question must have exactly one explanation
- incorrectOptions keys are the indices (0-3) of the wrong options, excluding the correct one
""" + JSON_ONLY_INSTRUCTION + """

QUIZ QUESTIONS:
{quiz}

COURSE CONTENT:
{course_markdown}
"""
