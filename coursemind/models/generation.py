"""Validated payloads produced by the generation use-cases.

These models are built only after the structured-output validators in
:mod:`coursemind.services.structured_output` have accepted the raw model
JSON, so they carry no validation of their own beyond types.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class BlueprintObjective(BaseModel):
    model_config = ConfigDict(frozen=True)

    statement: str
    level: str | None = None


class BlueprintTopic(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    title: str
    description: str | None = None
    sequence: float
    objectives: list[BlueprintObjective]
    prerequisites: list[str] = Field(default_factory=list)


class Blueprint(BaseModel):
    """A course outline: ordered topics with objectives and prerequisites."""

    model_config = ConfigDict(frozen=True)

    summary: str
    topics: list[BlueprintTopic]


class QuizQuestion(BaseModel):
    model_config = ConfigDict(frozen=True)

    question: str
    choices: list[str]
    answer: str
    explanation: str


class Quiz(BaseModel):
    model_config = ConfigDict(frozen=True)

    questions: list[QuizQuestion]


class Flashcard(BaseModel):
    model_config = ConfigDict(frozen=True)

    front: str
    back: str


class FlashcardSet(BaseModel):
    model_config = ConfigDict(frozen=True)

    cards: list[Flashcard]


class ChatCitation(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    source_label: str = Field(alias="sourceLabel")
    rationale: str


class ChatResponse(BaseModel):
    """A grounded chat answer with citations into the supplied context."""

    model_config = ConfigDict(frozen=True)

    answer: str
    citations: list[ChatCitation] = Field(default_factory=list)
    confidence: Literal["low", "medium", "high"] | None = None
    safety: Literal["ok", "refusal"] = "ok"


class ChatTurn(BaseModel):
    """One earlier message in a chat transcript."""

    model_config = ConfigDict(frozen=True)

    role: Literal["student", "assistant"]
    message: str
