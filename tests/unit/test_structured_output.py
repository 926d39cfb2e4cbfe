"""Unit tests for JSON object discovery, payload validators and citation normalisation."""

from __future__ import annotations

import json

import pytest

from coursemind.models.generation import ChatCitation
from coursemind.services.structured_output import (
    collect_source_labels,
    extract_single_json_object,
    find_balanced_object_spans,
    normalize_citations,
    normalize_front,
    parse_blueprint,
    parse_chat_response,
    parse_flashcards,
    parse_quiz,
    validate_blueprint_payload,
    validate_chat_payload,
    validate_flashcards_payload,
    validate_quiz_payload,
)
from coursemind.utils.errors import (
    JsonObjectNotFoundError,
    MultipleJsonObjectsError,
    StructuredOutputError,
)


def _question(**overrides: object) -> dict[str, object]:
    question: dict[str, object] = {
        "question": "What is the SI unit of force?",
        "choices": ["Newton", "Joule", "Watt", "Pascal"],
        "answer": "Newton",
        "explanation": "Force is measured in newtons (kg m/s^2).",
    }
    question.update(overrides)
    return question


def _topic(key: str, sequence: float = 1, prerequisites: list[str] | None = None) -> dict:
    return {
        "key": key,
        "title": key.replace("-", " ").title(),
        "description": "",
        "sequence": sequence,
        "objectives": [{"statement": f"Explain {key}", "level": "understand"}],
        "prerequisites": prerequisites or [],
    }


# ---------------------------------------------------------------------------
# Object discovery
# ---------------------------------------------------------------------------


class TestFindBalancedObjectSpans:
    def test_nested_objects_form_one_span(self) -> None:
        raw = 'prefix {"a": {"b": 1}} suffix'
        spans = find_balanced_object_spans(raw)
        assert spans == [(7, 22)]
        assert raw[7:22] == '{"a": {"b": 1}}'

    def test_braces_inside_strings_are_ignored(self) -> None:
        raw = '{"text": "a } and { inside", "q": "say \\"}\\""}'
        assert find_balanced_object_spans(raw) == [(0, len(raw))]

    def test_objects_inside_arrays_are_top_level_spans(self) -> None:
        raw = '[{"a": 1}, {"b": 2}]'
        assert len(find_balanced_object_spans(raw)) == 2

    def test_stray_closing_brace_is_skipped(self) -> None:
        raw = '} {"a": 1}'
        assert find_balanced_object_spans(raw) == [(2, 10)]

    def test_unterminated_object_yields_no_span(self) -> None:
        assert find_balanced_object_spans('{"a": 1') == []


class TestExtractSingleJsonObject:
    def test_recovers_object_verbatim_from_prose(self) -> None:
        body = '{"answer": "Use F = ma", "citations": []}'
        raw = f"Sure! Here is the JSON you asked for:\n{body}\nHope that helps."
        assert extract_single_json_object(raw) == body

    def test_code_fenced_object(self) -> None:
        raw = '```json\n{"cards": [{"front": "F", "back": "a b c"}]}\n```'
        parsed = json.loads(extract_single_json_object(raw))
        assert parsed["cards"][0]["front"] == "F"

    def test_no_object_raises_not_found(self) -> None:
        with pytest.raises(JsonObjectNotFoundError, match="No JSON object found"):
            extract_single_json_object("I could not produce an answer.")

    def test_unparseable_braces_count_as_not_found(self) -> None:
        with pytest.raises(JsonObjectNotFoundError):
            extract_single_json_object("use {curly} braces for sets {1, 2}")

    def test_two_objects_raise_multiple(self) -> None:
        with pytest.raises(MultipleJsonObjectsError, match="Multiple JSON objects"):
            extract_single_json_object('{"a": 1}\n{"b": 2}')

    def test_custom_messages(self) -> None:
        with pytest.raises(JsonObjectNotFoundError, match="No JSON object found in quiz response."):
            extract_single_json_object(
                "nothing", not_found_message="No JSON object found in quiz response."
            )

    def test_array_only_response_is_not_found(self) -> None:
        with pytest.raises(JsonObjectNotFoundError):
            extract_single_json_object("[1, 2, 3]")


# ---------------------------------------------------------------------------
# Blueprint
# ---------------------------------------------------------------------------


class TestBlueprintValidation:
    def test_valid_blueprint_parses(self) -> None:
        payload = {
            "summary": "Introductory mechanics.",
            "topics": [_topic("kinematics", 1), _topic("dynamics", 2, ["kinematics"])],
        }
        blueprint = parse_blueprint(json.dumps(payload))
        assert [t.key for t in blueprint.topics] == ["kinematics", "dynamics"]
        assert blueprint.topics[1].prerequisites == ["kinematics"]
        assert blueprint.topics[0].description is None

    def test_errors_are_aggregated(self) -> None:
        payload = {
            "summary": "",
            "topics": [
                {"key": "a", "title": "", "sequence": "1", "objectives": []},
                {"key": "a", "title": "B", "sequence": 2, "objectives": [{"statement": ""}]},
            ],
        }
        errors = validate_blueprint_payload(payload)
        assert "summary is required." in errors
        assert "topics[0].title is required." in errors
        assert "topics[0].sequence must be a number." in errors
        assert "topics[0].objectives must be non-empty." in errors
        assert "topics[1].key is duplicated." in errors
        assert "topics[1].objectives[0].statement is required." in errors

    def test_unknown_prerequisite_rejected(self) -> None:
        payload = {"summary": "s", "topics": [_topic("a", 1, ["missing"])]}
        errors = validate_blueprint_payload(payload)
        assert errors == ["topics[0].prerequisites references unknown topic 'missing'."]

    def test_self_prerequisite_rejected(self) -> None:
        payload = {"summary": "s", "topics": [_topic("a", 1, ["a"])]}
        assert validate_blueprint_payload(payload) == [
            "topics[0].prerequisites cannot reference itself."
        ]

    def test_boolean_sequence_is_not_a_number(self) -> None:
        topic = _topic("a")
        topic["sequence"] = True
        errors = validate_blueprint_payload({"summary": "s", "topics": [topic]})
        assert "topics[0].sequence must be a number." in errors

    def test_parse_error_message_joins_problems(self) -> None:
        with pytest.raises(StructuredOutputError) as exc_info:
            parse_blueprint('{"summary": "", "topics": []}')
        assert str(exc_info.value) == (
            "Invalid blueprint JSON: summary is required.; topics must be a non-empty array."
        )
        assert len(exc_info.value.errors) == 2


# ---------------------------------------------------------------------------
# Quiz
# ---------------------------------------------------------------------------


class TestQuizValidation:
    def test_valid_quiz(self) -> None:
        quiz = parse_quiz(json.dumps({"questions": [_question()]}))
        assert quiz.questions[0].answer == "Newton"

    def test_answer_must_be_byte_identical_to_a_choice(self) -> None:
        for answer in ("newton", "Newton ", " Newton"):
            errors = validate_quiz_payload({"questions": [_question(answer=answer)]})
            assert errors == ["questions[0].answer must match one choice."]

    def test_exactly_four_choices(self) -> None:
        three = _question(choices=["Newton", "Joule", "Watt"])
        five = _question(choices=["Newton", "Joule", "Watt", "Pascal", "Volt"])
        for question in (three, five):
            errors = validate_quiz_payload({"questions": [question]})
            assert errors == ["questions[0].choices must contain exactly 4 options."]

    def test_duplicate_and_empty_choices(self) -> None:
        errors = validate_quiz_payload(
            {"questions": [_question(choices=["Newton", "Newton", " ", "Watt"])]}
        )
        assert "questions[0].choices cannot be empty." in errors
        assert "questions[0].choices must be unique." in errors

    def test_question_count_bounds(self) -> None:
        assert validate_quiz_payload({"questions": []}) == ["questions must be a non-empty array."]
        assert validate_quiz_payload({"questions": [_question()] * 21}) == [
            "questions cannot exceed 20."
        ]

    def test_missing_fields_reported_together(self) -> None:
        errors = validate_quiz_payload(
            {"questions": [_question(question="", explanation="", answer="")]}
        )
        assert errors == [
            "questions[0].question is required.",
            "questions[0].answer is required.",
            "questions[0].explanation is required.",
        ]

    def test_parse_quiz_raises_with_prefix(self) -> None:
        with pytest.raises(StructuredOutputError, match="^Invalid quiz JSON: "):
            parse_quiz(json.dumps({"questions": [_question(answer="Ohm")]}))


# ---------------------------------------------------------------------------
# Flashcards
# ---------------------------------------------------------------------------


class TestFlashcardsValidation:
    def test_normalize_front(self) -> None:
        assert normalize_front("  What is  F=ma? ") == "what is f ma"

    def test_duplicate_fronts_after_normalisation(self) -> None:
        payload = {
            "cards": [
                {"front": "Newton's 2nd law", "back": "Force equals mass times acceleration."},
                {"front": "newton s 2nd LAW!", "back": "Net force is mass times acceleration."},
            ]
        }
        assert validate_flashcards_payload(payload) == [
            "cards[1].front duplicates an earlier front."
        ]

    def test_back_needs_three_words(self) -> None:
        payload = {"cards": [{"front": "Unit of force", "back": "Newton"}]}
        assert validate_flashcards_payload(payload) == ["cards[0].back must be at least 3 words."]

    def test_card_count_bounds(self) -> None:
        card = {"front": "x", "back": "one two three"}
        assert validate_flashcards_payload({"cards": []}) == ["cards must be a non-empty array."]
        assert validate_flashcards_payload({"cards": [card] * 31}) == ["cards cannot exceed 30."]

    def test_parse_flashcards_trims(self) -> None:
        raw = '{"cards": [{"front": " Momentum ", "back": " mass times velocity "}]}'
        cards = parse_flashcards(raw)
        assert cards.cards[0].front == "Momentum"
        assert cards.cards[0].back == "mass times velocity"


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


class TestChatValidation:
    def test_valid_chat_response(self) -> None:
        raw = json.dumps(
            {
                "safety": "ok",
                "answer": "Acceleration is proportional to net force.",
                "confidence": "high",
                "citations": [{"sourceLabel": "Source 1", "rationale": "Defines F = ma."}],
            }
        )
        response = parse_chat_response(raw)
        assert response.confidence == "high"
        assert response.citations[0].source_label == "Source 1"

    def test_errors_aggregated(self) -> None:
        errors = validate_chat_payload(
            {
                "answer": "",
                "safety": "maybe",
                "confidence": "certain",
                "citations": [{"sourceLabel": "", "rationale": ""}, "bad"],
            }
        )
        assert errors == [
            "answer is required.",
            "safety must be 'ok' or 'refusal'.",
            "citations[0].sourceLabel is required.",
            "citations[0].rationale is required.",
            "citations[1] must be an object.",
        ]

    @pytest.mark.parametrize("confidence", ["Medium", "certain", 3, ""])
    def test_unknown_confidence_is_dropped(self, confidence: object) -> None:
        raw = json.dumps(
            {
                "safety": "ok",
                "answer": "Light drives the reaction.",
                "confidence": confidence,
                "citations": [],
            }
        )
        response = parse_chat_response(raw)
        assert response.answer == "Light drives the reaction."
        assert response.confidence is None

    def test_parse_chat_raises_with_prefix(self) -> None:
        with pytest.raises(StructuredOutputError, match="^Invalid chat JSON: "):
            parse_chat_response('{"answer": "x", "safety": "ok"}')


class TestCitationNormalisation:
    def test_collect_labels_always_includes_blueprint(self) -> None:
        labels = collect_source_labels("", "")
        assert labels == {"blueprint context": "Blueprint Context"}

    def test_labels_harvested_from_context_headers(self) -> None:
        material = "Source 1 | Week 1 | page 2\nText\n\n---\n\nSource 2 | Week 2 | slide 3\nMore"
        labels = collect_source_labels("Blueprint Context | Published blueprint context", material)
        assert labels["source 1"] == "Source 1"
        assert labels["source 2"] == "Source 2"

    def test_citations_mapped_and_deduplicated(self) -> None:
        labels = collect_source_labels("", "Source 1 | Notes | page 1\ntext")
        citations = [
            ChatCitation(source_label="source: SOURCE   1", rationale="Defines force."),
            ChatCitation(source_label="Source 1", rationale="Defines force."),
            ChatCitation(source_label="blueprint context", rationale="Topic order."),
            ChatCitation(source_label=" Lecture video ", rationale="Unknown label."),
        ]
        normalized = normalize_citations(citations, labels)
        assert [(c.source_label, c.rationale) for c in normalized] == [
            ("Source 1", "Defines force."),
            ("Blueprint Context", "Topic order."),
            ("Lecture video", "Unknown label."),
        ]
