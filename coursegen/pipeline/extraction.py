"""JSON extraction and repair for free-text model output.

Model output is prose, markdown, or JSON wrapped in either. This module
locates the embedded JSON payload and applies ordered syntactic repairs
until it parses.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Optional

import structlog

logger = structlog.get_logger(__name__)

FENCED_JSON_RE = re.compile(r"```[ \t]*json[ \t]*\n?(.*?)```", re.IGNORECASE | re.DOTALL)
OPEN_JSON_FENCE_RE = re.compile(r"```[ \t]*json[ \t]*\n?", re.IGNORECASE)
GENERIC_FENCE_RE = re.compile(r"```[a-zA-Z]*[ \t]*\n?(.*?)```", re.DOTALL)

LEADING_FENCE_RE = re.compile(r"^\s*```[a-zA-Z]*[ \t]*\n?")
TRAILING_FENCE_RE = re.compile(r"\n?[ \t]*```\s*$")
TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")
SINGLE_QUOTED_RE = re.compile(r"(?<=[{\[,:])(\s*)'((?:[^'\\]|\\.)*)'(?=\s*[,:}\]])")

BRACKETS = {"{": "}", "[": "]"}
CONTROL_ESCAPES = {"\n": "\\n", "\r": "\\r", "\t": "\\t"}

# Upper bound on how many trailing elements truncation repair may drop
MAX_TRUNCATION_BACKOFF = 50


class ParseError(Exception):
    """No JSON payload could be recovered from model output.

    Attributes:
        attempted: Repair heuristics tried before giving up, in order.
    """

    def __init__(self, message: str, attempted: Optional[list[str]] = None):
        super().__init__(message)
        self.attempted = list(attempted or [])


@dataclass(frozen=True)
class JsonBlock:
    """A JSON payload located inside model output."""

    text: str
    start: int
    end: int
    source: str


@dataclass(frozen=True)
class RepairResult:
    """Parsed value plus the repair heuristics that changed the text."""

    value: Any
    text: str
    repairs: tuple[str, ...] = ()
    alternatives: tuple[str, ...] = ()

    @property
    def was_repaired(self) -> bool:
        return bool(self.repairs)

    def alternative_values(self) -> Iterator[Any]:
        """Parse the fallback candidates of the repair that succeeded, in order.

        Truncation repair keeps everything first and then offers candidates
        that cut back to earlier element boundaries. Callers whose payload
        fails validation can walk these to recover the complete elements.
        """
        for candidate in self.alternatives:
            try:
                yield json.loads(candidate)
            except ValueError:
                continue


# =============================================================================
# Extraction
# =============================================================================

def _parses(text: str) -> bool:
    try:
        json.loads(text)
    except ValueError:
        return False
    return True


def _scan_spans(text: str) -> tuple[list[tuple[int, int]], Optional[int]]:
    """Find top-level balanced {...} / [...] spans.

    Quotes are tracked only inside a candidate span, so apostrophes and
    quotation marks in surrounding prose do not confuse the scan.

    Returns:
        (balanced spans as (start, end), start of an unclosed trailing span or None)
    """
    spans: list[tuple[int, int]] = []
    stack: list[str] = []
    start = 0
    in_string = False
    escape_next = False

    for i, char in enumerate(text):
        if in_string:
            if escape_next:
                escape_next = False
            elif char == "\\":
                escape_next = True
            elif char == '"':
                in_string = False
            continue

        if char in BRACKETS:
            if not stack:
                start = i
            stack.append(char)
        elif char in ("}", "]"):
            if not stack:
                continue
            if BRACKETS[stack[-1]] != char:
                # Mismatched bracket: prose, not JSON. Start over.
                stack.clear()
                continue
            stack.pop()
            if not stack:
                spans.append((start, i + 1))
        elif char == '"' and stack:
            in_string = True

    return spans, (start if stack else None)


def extract_json_block(text: str) -> Optional[JsonBlock]:
    """Locate the JSON payload in free text.

    Search order:
    1. A fenced ```json block (a fence left open by truncation runs to the end)
    2. Any other fenced block whose content starts with { or [
    3. The first top-level balanced object/array span, preferring objects
       and spans that parse; a trailing unclosed span is the last resort

    Args:
        text: Raw model output.

    Returns:
        JsonBlock, or None when the text holds nothing JSON-like.
    """
    if not text:
        return None

    match = FENCED_JSON_RE.search(text)
    if match:
        return JsonBlock(match.group(1).strip(), match.start(), match.end(), "fenced_json")

    match = OPEN_JSON_FENCE_RE.search(text)
    if match:
        body = text[match.end():].strip()
        if body:
            return JsonBlock(body, match.start(), len(text), "fenced_json_unclosed")

    for match in GENERIC_FENCE_RE.finditer(text):
        body = match.group(1).strip()
        if body.startswith(("{", "[")):
            return JsonBlock(body, match.start(), match.end(), "fenced")

    spans, open_start = _scan_spans(text)
    candidates = [JsonBlock(text[s:e], s, e, "balanced") for s, e in spans]
    if open_start is not None:
        candidates.append(JsonBlock(text[open_start:].strip(), open_start, len(text), "unbalanced_tail"))

    objects = [c for c in candidates if c.text.startswith("{")]
    pool = objects or candidates
    if not pool:
        return None

    for candidate in pool:
        if _parses(candidate.text):
            return candidate
    return pool[0]


def extract_markdown_content(text: str) -> str:
    """Return the prose that precedes the JSON payload."""
    block = extract_json_block(text)
    if block is None:
        return text.strip()
    return text[:block.start].strip()


# =============================================================================
# Repair heuristics
# =============================================================================

def _strip_fences(text: str) -> list[str]:
    stripped = LEADING_FENCE_RE.sub("", text)
    stripped = TRAILING_FENCE_RE.sub("", stripped)
    return [stripped.strip()]


def _remove_trailing_commas(text: str) -> list[str]:
    return [TRAILING_COMMA_RE.sub(r"\1", text)]


def _escape_control_chars(text: str) -> list[str]:
    """Escape raw newlines, tabs and other control characters inside strings."""
    out: list[str] = []
    in_string = False
    escape_next = False

    for char in text:
        if in_string:
            if escape_next:
                escape_next = False
            elif char == "\\":
                escape_next = True
            elif char == '"':
                in_string = False
            elif char in CONTROL_ESCAPES:
                char = CONTROL_ESCAPES[char]
            elif ord(char) < 0x20:
                char = f"\\u{ord(char):04x}"
        elif char == '"':
            in_string = True
        out.append(char)

    return ["".join(out)]


def _insert_missing_commas(text: str) -> list[str]:
    """Add the comma between adjacent objects or arrays, as in `} {`."""
    out: list[str] = []
    last_significant = ""
    in_string = False
    escape_next = False

    for char in text:
        if in_string:
            if escape_next:
                escape_next = False
            elif char == "\\":
                escape_next = True
            elif char == '"':
                in_string = False
            out.append(char)
            continue

        if char in BRACKETS and last_significant in ("}", "]"):
            # Keep the whitespace between the two elements after the comma
            gap: list[str] = []
            while out and out[-1].isspace():
                gap.append(out.pop())
            out.append(",")
            out.extend(reversed(gap or [" "]))
        if char == '"':
            in_string = True
        if not char.isspace():
            last_significant = char
        out.append(char)

    return ["".join(out)]


def _truncation_state(text: str) -> tuple[list[str], bool, list[int]]:
    """Scan JSON text for open brackets, an open string and comma positions."""
    stack: list[str] = []
    commas: list[int] = []
    in_string = False
    escape_next = False

    for i, char in enumerate(text):
        if in_string:
            if escape_next:
                escape_next = False
            elif char == "\\":
                escape_next = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char in BRACKETS:
            stack.append(char)
        elif char in ("}", "]"):
            if stack and BRACKETS[stack[-1]] == char:
                stack.pop()
        elif char == ",":
            commas.append(i)

    return stack, in_string, commas


def _close_open_structures(text: str) -> str:
    stack, in_string, _ = _truncation_state(text)
    closed = text
    if in_string:
        if closed.endswith("\\"):
            closed = closed[:-1]
        closed += '"'

    closed = closed.rstrip()
    if closed.endswith(","):
        closed = closed[:-1]
    elif closed.endswith(":"):
        closed += " null"

    return closed + "".join(BRACKETS[opener] for opener in reversed(stack))


def _close_truncation(text: str) -> list[str]:
    """Close an unterminated string and open brackets left by truncation.

    The first candidate keeps everything; later candidates drop the
    trailing partial element by cutting back to earlier commas.
    """
    stack, in_string, commas = _truncation_state(text)
    if not stack and not in_string:
        return [text]

    candidates = [_close_open_structures(text)]
    for position in reversed(commas[-MAX_TRUNCATION_BACKOFF:]):
        candidates.append(_close_open_structures(text[:position]))
    return candidates


def _normalize_quotes(text: str) -> list[str]:
    def _requote(match: re.Match) -> str:
        inner = match.group(2).replace("\\'", "'").replace('"', '\\"')
        return f'{match.group(1)}"{inner}"'

    return [SINGLE_QUOTED_RE.sub(_requote, text)]


REPAIR_HEURISTICS: list[tuple[str, Callable[[str], list[str]]]] = [
    ("strip_fences", _strip_fences),
    ("remove_trailing_commas", _remove_trailing_commas),
    ("escape_control_chars", _escape_control_chars),
    ("insert_missing_commas", _insert_missing_commas),
    ("close_truncation", _close_truncation),
    ("normalize_quotes", _normalize_quotes),
]


def repair_json(text: str, enabled: bool = True) -> RepairResult:
    """Parse JSON text, applying repair heuristics until it parses.

    Heuristics run in order and are cumulative; a parse is attempted after
    each one and the chain stops at the first success.

    Args:
        text: Candidate JSON text (usually JsonBlock.text).
        enabled: If False, only a direct parse is attempted.

    Returns:
        RepairResult with the parsed value and the repairs applied. When
        truncation repair succeeded, alternatives holds its remaining
        cut-back candidates.

    Raises:
        ParseError: If no heuristic produced valid JSON.
    """
    current = text.strip().strip("\ufeff\u200b\u200c\u200d")
    if not current:
        raise ParseError("Empty JSON payload")

    try:
        return RepairResult(value=json.loads(current), text=current)
    except ValueError as e:
        last_error = str(e)
        logger.debug("direct_parse_failed", error=last_error)

    if not enabled:
        raise ParseError(f"Invalid JSON and repair disabled: {last_error}")

    attempted: list[str] = []
    applied: list[str] = []

    for name, heuristic in REPAIR_HEURISTICS:
        attempted.append(name)
        candidates = heuristic(current)
        if candidates[0] != current:
            applied.append(name)

        for position, candidate in enumerate(candidates):
            try:
                value = json.loads(candidate)
            except ValueError as e:
                last_error = str(e)
                continue
            logger.debug("json_repaired", repairs=applied)
            return RepairResult(
                value=value,
                text=candidate,
                repairs=tuple(applied),
                alternatives=tuple(candidates[position + 1:]),
            )

        current = candidates[0]

    logger.warning("json_repair_exhausted", attempted=attempted, error=last_error)
    raise ParseError(
        f"Could not repair JSON after {', '.join(attempted)}: {last_error}",
        attempted=attempted,
    )
