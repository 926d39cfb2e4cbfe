"""Structured-output extraction and validation for model responses.

Every generation feature (blueprint, quiz, flashcards, chat) funnels raw
model text through :func:`parse_single_json_object` and then through its
own ``validate_*_payload`` function.

Extraction is deliberately strict: the response must contain exactly one
top-level JSON object.  Commentary around it is ignored, but a response
carrying two objects (or none) is rejected rather than guessed at.

Validators never fail fast.  They walk the whole payload and collect
every problem as a human-readable string (``questions[2].answer must
match one choice.``), so one bad response reports all of its defects.
"""

from __future__ import annotations

import json
import re
from typing import Any

from coursemind.models.generation import (
    Blueprint,
    ChatCitation,
    ChatResponse,
    FlashcardSet,
    Quiz,
)
from coursemind.utils.errors import (
    JsonObjectNotFoundError,
    MultipleJsonObjectsError,
    StructuredOutputError,
)

MIN_QUIZ_QUESTIONS = 1
MAX_QUIZ_QUESTIONS = 20
QUIZ_CHOICE_COUNT = 4
MIN_FLASHCARDS = 1
MAX_FLASHCARDS = 30
MIN_FLASHCARD_BACK_WORDS = 3

BLUEPRINT_SOURCE_LABEL = "Blueprint Context"

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")
_WHITESPACE_RE = re.compile(r"\s+")
_SOURCE_PREFIX_RE = re.compile(r"^source:\s*", re.IGNORECASE)
# A context header line: everything before the first "|" on a line.
_CONTEXT_LABEL_RE = re.compile(r"(?:^|\n)([^|\n]+)\s*\|")


# ---------------------------------------------------------------------------
# JSON object discovery
# ---------------------------------------------------------------------------

def find_balanced_object_spans(raw: str) -> list[tuple[int, int]]:
    """Return ``(start, end)`` spans of every top-level ``{...}`` in *raw*.

    ``end`` is exclusive.  Braces inside string literals (including
    escaped quotes) are ignored; stray closing braces at depth zero are
    skipped.  Spans are not parsed here.
    """
    spans: list[tuple[int, int]] = []
    start = -1
    depth = 0
    in_string = False
    escaping = False

    for index, char in enumerate(raw):
        if in_string:
            if escaping:
                escaping = False
            elif char == "\\":
                escaping = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char == "{":
            if depth == 0:
                start = index
            depth += 1
        elif char == "}" and depth > 0:
            depth -= 1
            if depth == 0 and start >= 0:
                spans.append((start, index + 1))
                start = -1

    return spans


def extract_single_json_object(
    raw: str,
    not_found_message: str | None = None,
    multiple_message: str | None = None,
) -> str:
    """Return the verbatim text of the single JSON object embedded in *raw*.

    Only spans that parse to a JSON object (not an array or scalar) count
    as candidates.

    Raises
    ------
    JsonObjectNotFoundError
        If no candidate parses to an object.
    MultipleJsonObjectsError
        If more than one candidate parses to an object.
    """
    candidates: list[str] = []
    for start, end in find_balanced_object_spans(raw):
        text = raw[start:end]
        try:
            parsed = json.loads(text)
        except ValueError:
            continue
        if isinstance(parsed, dict):
            candidates.append(text)

    if not candidates:
        if not_found_message:
            raise JsonObjectNotFoundError(not_found_message)
        raise JsonObjectNotFoundError()
    if len(candidates) > 1:
        if multiple_message:
            raise MultipleJsonObjectsError(multiple_message)
        raise MultipleJsonObjectsError()
    return candidates[0]


def parse_single_json_object(raw: str, **messages: str | None) -> dict[str, Any]:
    """Extract the single JSON object from *raw* and return it parsed."""
    return json.loads(extract_single_json_object(raw, **messages))


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

def _is_non_empty_string(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _is_number(value: Any) -> bool:
    # bool is an int subclass; JSON true/false is not a sequence number.
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _raise_if_invalid(feature: str, errors: list[str]) -> None:
    if errors:
        raise StructuredOutputError(
            message=f"Invalid {feature} JSON: {'; '.join(errors)}",
            errors=errors,
        )


def normalize_front(value: str) -> str:
    """Normalise a flashcard front for duplicate detection."""
    return _WHITESPACE_RE.sub(" ", _NON_ALNUM_RE.sub(" ", value.lower())).strip()


def _word_count(value: str) -> int:
    return len(value.split())


def _optional_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


# ---------------------------------------------------------------------------
# Blueprint
# ---------------------------------------------------------------------------

def validate_blueprint_payload(payload: Any) -> list[str]:
    """Return every problem with a blueprint payload (empty list = valid)."""
    if not isinstance(payload, dict):
        return ["Payload must be an object."]

    errors: list[str] = []
    if not _is_non_empty_string(payload.get("summary")):
        errors.append("summary is required.")

    topics = payload.get("topics")
    if not isinstance(topics, list) or not topics:
        errors.append("topics must be a non-empty array.")
        return errors

    keys: set[str] = set()
    for index, topic in enumerate(topics):
        if not isinstance(topic, dict):
            errors.append(f"topics[{index}] must be an object.")
            continue
        key = topic.get("key")
        if not _is_non_empty_string(key):
            errors.append(f"topics[{index}].key is required.")
        elif key.strip() in keys:
            errors.append(f"topics[{index}].key is duplicated.")
        else:
            keys.add(key.strip())

        if not _is_non_empty_string(topic.get("title")):
            errors.append(f"topics[{index}].title is required.")
        if not _is_number(topic.get("sequence")):
            errors.append(f"topics[{index}].sequence must be a number.")

        objectives = topic.get("objectives")
        if not isinstance(objectives, list) or not objectives:
            errors.append(f"topics[{index}].objectives must be non-empty.")
        else:
            for objective_index, objective in enumerate(objectives):
                statement = objective.get("statement") if isinstance(objective, dict) else None
                if not _is_non_empty_string(statement):
                    errors.append(
                        f"topics[{index}].objectives[{objective_index}].statement is required."
                    )

        prerequisites = topic.get("prerequisites")
        if prerequisites is not None and not isinstance(prerequisites, list):
            errors.append(f"topics[{index}].prerequisites must be an array.")

    # Second pass: every prerequisite must name another topic's key.
    for index, topic in enumerate(topics):
        if not isinstance(topic, dict) or not isinstance(topic.get("prerequisites"), list):
            continue
        own_key = topic.get("key").strip() if _is_non_empty_string(topic.get("key")) else None
        for prereq in topic["prerequisites"]:
            label = prereq.strip() if isinstance(prereq, str) else prereq
            if not isinstance(label, str) or label not in keys:
                errors.append(
                    f"topics[{index}].prerequisites references unknown topic {prereq!r}."
                )
            elif label == own_key:
                errors.append(f"topics[{index}].prerequisites cannot reference itself.")

    return errors


def parse_blueprint(raw: str) -> Blueprint:
    """Extract and validate a blueprint from raw model output."""
    payload = parse_single_json_object(raw)
    _raise_if_invalid("blueprint", validate_blueprint_payload(payload))
    return Blueprint.model_validate(
        {
            "summary": payload["summary"].strip(),
            "topics": [
                {
                    "key": topic["key"].strip(),
                    "title": topic["title"].strip(),
                    "description": _optional_str(topic.get("description")),
                    "sequence": topic["sequence"],
                    "objectives": [
                        {
                            "statement": objective["statement"].strip(),
                            "level": _optional_str(objective.get("level")),
                        }
                        for objective in topic["objectives"]
                    ],
                    "prerequisites": [p.strip() for p in topic.get("prerequisites") or []],
                }
                for topic in payload["topics"]
            ],
        }
    )


# ---------------------------------------------------------------------------
# Quiz
# ---------------------------------------------------------------------------

def validate_quiz_payload(payload: Any) -> list[str]:
    """Return every problem with a quiz payload (empty list = valid).

    ``answer`` must be byte-identical to one of the question's own
    choices; whitespace or case differences are rejected.
    """
    if not isinstance(payload, dict):
        return ["Payload must be an object."]

    errors: list[str] = []
    questions = payload.get("questions")
    if not isinstance(questions, list) or len(questions) < MIN_QUIZ_QUESTIONS:
        return ["questions must be a non-empty array."]
    if len(questions) > MAX_QUIZ_QUESTIONS:
        return [f"questions cannot exceed {MAX_QUIZ_QUESTIONS}."]

    for index, question in enumerate(questions):
        if not isinstance(question, dict):
            errors.append(f"questions[{index}] must be an object.")
            continue
        if not _is_non_empty_string(question.get("question")):
            errors.append(f"questions[{index}].question is required.")

        choices = question.get("choices")
        valid_choices = isinstance(choices, list) and len(choices) == QUIZ_CHOICE_COUNT
        if not valid_choices:
            errors.append(
                f"questions[{index}].choices must contain exactly {QUIZ_CHOICE_COUNT} options."
            )
        else:
            trimmed = [c.strip() if isinstance(c, str) else "" for c in choices]
            if any(not c for c in trimmed):
                errors.append(f"questions[{index}].choices cannot be empty.")
            if len(set(trimmed)) != len(trimmed):
                errors.append(f"questions[{index}].choices must be unique.")

        answer = question.get("answer")
        if not _is_non_empty_string(answer):
            errors.append(f"questions[{index}].answer is required.")
        elif valid_choices and answer not in choices:
            errors.append(f"questions[{index}].answer must match one choice.")

        if not _is_non_empty_string(question.get("explanation")):
            errors.append(f"questions[{index}].explanation is required.")

    return errors


def parse_quiz(raw: str) -> Quiz:
    """Extract and validate a quiz from raw model output."""
    payload = parse_single_json_object(raw)
    _raise_if_invalid("quiz", validate_quiz_payload(payload))
    return Quiz.model_validate(
        {
            "questions": [
                {
                    "question": q["question"].strip(),
                    "choices": list(q["choices"]),
                    "answer": q["answer"],
                    "explanation": q["explanation"].strip(),
                }
                for q in payload["questions"]
            ]
        }
    )


# ---------------------------------------------------------------------------
# Flashcards
# ---------------------------------------------------------------------------

def validate_flashcards_payload(payload: Any) -> list[str]:
    """Return every problem with a flashcards payload (empty list = valid)."""
    if not isinstance(payload, dict):
        return ["Payload must be an object."]

    cards = payload.get("cards")
    if not isinstance(cards, list) or len(cards) < MIN_FLASHCARDS:
        return ["cards must be a non-empty array."]
    if len(cards) > MAX_FLASHCARDS:
        return [f"cards cannot exceed {MAX_FLASHCARDS}."]

    errors: list[str] = []
    fronts: set[str] = set()
    for index, card in enumerate(cards):
        if not isinstance(card, dict):
            errors.append(f"cards[{index}] must be an object.")
            continue
        front = card.get("front")
        if not _is_non_empty_string(front):
            errors.append(f"cards[{index}].front is required.")
        else:
            normalized = normalize_front(front)
            if normalized in fronts:
                errors.append(f"cards[{index}].front duplicates an earlier front.")
            fronts.add(normalized)

        back = card.get("back")
        if not _is_non_empty_string(back):
            errors.append(f"cards[{index}].back is required.")
        elif _word_count(back) < MIN_FLASHCARD_BACK_WORDS:
            errors.append(
                f"cards[{index}].back must be at least {MIN_FLASHCARD_BACK_WORDS} words."
            )

    return errors


def parse_flashcards(raw: str) -> FlashcardSet:
    """Extract and validate a flashcard set from raw model output."""
    payload = parse_single_json_object(raw)
    _raise_if_invalid("flashcards", validate_flashcards_payload(payload))
    return FlashcardSet.model_validate(
        {
            "cards": [
                {"front": card["front"].strip(), "back": card["back"].strip()}
                for card in payload["cards"]
            ]
        }
    )


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------

def validate_chat_payload(payload: Any) -> list[str]:
    """Return every problem with a chat response payload (empty list = valid)."""
    if not isinstance(payload, dict):
        return ["Payload must be an object."]

    errors: list[str] = []
    if not _is_non_empty_string(payload.get("answer")):
        errors.append("answer is required.")
    if payload.get("safety") not in ("ok", "refusal"):
        errors.append("safety must be 'ok' or 'refusal'.")

    citations = payload.get("citations")
    if not isinstance(citations, list):
        errors.append("citations must be an array.")
    else:
        for index, citation in enumerate(citations):
            if not isinstance(citation, dict):
                errors.append(f"citations[{index}] must be an object.")
                continue
            if not _is_non_empty_string(citation.get("sourceLabel")):
                errors.append(f"citations[{index}].sourceLabel is required.")
            if not _is_non_empty_string(citation.get("rationale")):
                errors.append(f"citations[{index}].rationale is required.")

    return errors


_CHAT_CONFIDENCE_LEVELS = ("low", "medium", "high")


def _chat_confidence(value: Any) -> str | None:
    # Unknown levels are dropped; the answer itself stays valid.
    return value if value in _CHAT_CONFIDENCE_LEVELS else None


def parse_chat_response(raw: str) -> ChatResponse:
    """Extract and validate a chat answer from raw model output.

    Citation labels are returned as the model wrote them (trimmed); use
    :func:`normalize_citations` to map them onto known context labels.
    """
    payload = parse_single_json_object(raw)
    _raise_if_invalid("chat", validate_chat_payload(payload))
    return ChatResponse(
        answer=payload["answer"].strip(),
        safety=payload["safety"],
        confidence=_chat_confidence(payload.get("confidence")),
        citations=[
            ChatCitation(
                source_label=c["sourceLabel"].strip(),
                rationale=c["rationale"].strip(),
            )
            for c in payload["citations"]
        ],
    )


# ---------------------------------------------------------------------------
# Citation normalisation
# ---------------------------------------------------------------------------

def normalize_source_label_key(value: str) -> str:
    """Lookup key for a label: no ``source:`` prefix, lowercase, single spaces."""
    return _WHITESPACE_RE.sub(" ", _SOURCE_PREFIX_RE.sub("", value.strip()).lower())


def collect_source_labels(*contexts: str) -> dict[str, str]:
    """Map normalised keys to the canonical labels present in *contexts*.

    A label is the text before the first ``|`` on any line, e.g.
    ``Source 3`` from ``Source 3 | Week 2 slides | slide 4``.
    ``Blueprint Context`` is always known.
    """
    labels = {normalize_source_label_key(BLUEPRINT_SOURCE_LABEL): BLUEPRINT_SOURCE_LABEL}
    content = "\n".join(contexts)
    for match in _CONTEXT_LABEL_RE.finditer(content):
        label = match.group(1).strip()
        if label:
            labels[normalize_source_label_key(label)] = label
    return labels


def normalize_citations(
    citations: list[ChatCitation],
    known_labels: dict[str, str],
) -> list[ChatCitation]:
    """Rewrite citation labels to their canonical form and drop duplicates.

    Unknown labels are kept (trimmed).  Duplicates are judged on the
    ``(label, rationale)`` pair after rewriting; first occurrence wins.
    """
    seen: set[tuple[str, str]] = set()
    result: list[ChatCitation] = []
    for citation in citations:
        label = known_labels.get(
            normalize_source_label_key(citation.source_label),
            citation.source_label.strip(),
        )
        pair = (label, citation.rationale)
        if pair in seen:
            continue
        seen.add(pair)
        result.append(ChatCitation(source_label=label, rationale=citation.rationale))
    return result
