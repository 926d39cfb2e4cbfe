"""Multiple-choice quiz generation grounded in class materials."""

from __future__ import annotations

from coursemind.models.generation import Quiz
from coursemind.services.generation.base import (
    NO_BLUEPRINT_CONTEXT,
    NO_MATERIAL_CONTEXT,
    GenerationService,
)
from coursemind.services.structured_output import (
    MAX_QUIZ_QUESTIONS,
    MIN_QUIZ_QUESTIONS,
    parse_quiz,
)

_SYSTEM_PROMPT = " ".join(
    [
        "You are an expert STEM assessment designer.",
        "Generate only valid JSON with deterministic structure.",
        "Use only the provided blueprint/material context for content and explanations.",
        "Questions must be multiple choice with exactly 4 choices and exactly one correct answer.",
        "Distractors must be plausible and non-trivial.",
    ]
)

_RESPONSE_SHAPE = """\
{
  "questions": [
    {
      "question": "string",
      "choices": ["string", "string", "string", "string"],
      "answer": "string",
      "explanation": "string"
    }
  ]
}"""


def build_quiz_prompt(
    topic: str,
    question_count: int,
    blueprint_context: str,
    material_context: str,
) -> tuple[str, str]:
    user = "\n".join(
        [
            f"Topic: {topic}",
            f"Question count: {question_count}",
            "",
            "Published blueprint context:",
            blueprint_context or NO_BLUEPRINT_CONTEXT,
            "",
            "Retrieved class material context:",
            material_context or NO_MATERIAL_CONTEXT,
            "",
            "Generation objectives:",
            "1) Cover multiple blueprint topics/objectives when possible.",
            "2) Mix recall, understanding, application and analysis questions.",
            "3) Avoid duplicate or near-duplicate question stems.",
            "4) Explanations must justify the correct answer using class context.",
            "",
            "Return JSON using this exact shape:",
            _RESPONSE_SHAPE,
            "",
            "Rules:",
            "- No markdown.",
            "- No additional top-level keys.",
            "- `answer` must exactly match one item in `choices`.",
            "- Avoid weak distractors such as 'all of the above' or 'none of the above'.",
        ]
    )
    return _SYSTEM_PROMPT, user


class QuizGenerator(GenerationService):
    """Generates a validated multiple-choice quiz on one topic."""

    feature = "quiz_generation"

    async def generate_quiz(
        self,
        class_id: str,
        topic: str,
        question_count: int,
        blueprint_context: str = "",
    ) -> Quiz:
        """Generate *question_count* questions about *topic*.

        Raises
        ------
        ValueError
            If *question_count* is outside 1-20.
        coursemind.utils.errors.StructuredOutputError
            If the model output is not a single valid quiz object.
        """
        if not MIN_QUIZ_QUESTIONS <= question_count <= MAX_QUIZ_QUESTIONS:
            raise ValueError(
                f"question_count must be between {MIN_QUIZ_QUESTIONS} and {MAX_QUIZ_QUESTIONS}."
            )

        material_context = await self._retrieval.retrieve_context(class_id, topic)
        system, user = build_quiz_prompt(topic, question_count, blueprint_context, material_context)

        result = await self._complete(class_id, system, user)
        quiz = parse_quiz(result.content)
        self._logger.info(
            "quiz_generated",
            class_id=class_id,
            requested=question_count,
            questions=len(quiz.questions),
            provider=result.provider,
        )
        return quiz
