"""Flashcard set generation grounded in class materials."""

from __future__ import annotations

from coursemind.models.generation import FlashcardSet
from coursemind.services.generation.base import (
    NO_BLUEPRINT_CONTEXT,
    NO_MATERIAL_CONTEXT,
    GenerationService,
)
from coursemind.services.structured_output import MAX_FLASHCARDS, MIN_FLASHCARDS, parse_flashcards

_SYSTEM_PROMPT = " ".join(
    [
        "You are an expert STEM learning designer.",
        "Generate only valid JSON with deterministic structure.",
        "Use only the provided blueprint/material context for content.",
        "Each flashcard must have a concise front and a clear, grounded back.",
    ]
)

_RESPONSE_SHAPE = """\
{
  "cards": [
    {
      "front": "string",
      "back": "string"
    }
  ]
}"""


def build_flashcards_prompt(
    topic: str,
    card_count: int,
    blueprint_context: str,
    material_context: str,
) -> tuple[str, str]:
    user = "\n".join(
        [
            f"Topic: {topic}",
            f"Card count: {card_count}",
            "",
            "Published blueprint context:",
            blueprint_context or NO_BLUEPRINT_CONTEXT,
            "",
            "Retrieved class material context:",
            material_context or NO_MATERIAL_CONTEXT,
            "",
            "Generation objectives:",
            "1) Keep fronts short and prompt-like.",
            "2) Keep backs precise and grounded in class context.",
            "3) Avoid duplicates or near-duplicates.",
            "",
            "Return JSON using this exact shape:",
            _RESPONSE_SHAPE,
            "",
            "Rules:",
            "- No markdown.",
            "- No additional top-level keys.",
        ]
    )
    return _SYSTEM_PROMPT, user


class FlashcardGenerator(GenerationService):
    feature = "flashcards_generation"

    async def generate_flashcards(
        self,
        class_id: str,
        topic: str,
        card_count: int,
        blueprint_context: str = "",
    ) -> FlashcardSet:
        if not MIN_FLASHCARDS <= card_count <= MAX_FLASHCARDS:
            raise ValueError(f"card_count must be between {MIN_FLASHCARDS} and {MAX_FLASHCARDS}.")

        material_context = await self._retrieval.retrieve_context(class_id, topic)
        system, user = build_flashcards_prompt(
            topic, card_count, blueprint_context, material_context
        )

        result = await self._complete(class_id, system, user)
        cards = parse_flashcards(result.content)
        self._logger.info(
            "flashcards_generated",
            class_id=class_id,
            requested=card_count,
            cards=len(cards.cards),
            provider=result.provider,
        )
        return cards
