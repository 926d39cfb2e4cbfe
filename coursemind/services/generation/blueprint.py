"""Course blueprint generation and rendering.

:func:`build_blueprint_context` turns a validated :class:`Blueprint` into
the ``Blueprint Context | ...`` block that quiz, flashcard and chat
prompts embed.  Its first line carries the ``Blueprint Context`` label, so
chat citations of the blueprint normalise onto it.
"""

from __future__ import annotations

from coursemind.models.generation import Blueprint
from coursemind.services.generation.base import NO_MATERIAL_CONTEXT, GenerationService
from coursemind.services.structured_output import BLUEPRINT_SOURCE_LABEL, parse_blueprint

_SYSTEM_PROMPT = " ".join(
    [
        "You are an expert curriculum designer for high school and college STEM courses.",
        "Generate a course blueprint strictly as JSON. No markdown, no commentary.",
        "Use Bloom-style objective levels (remember, understand, apply, analyze, evaluate, create).",
        "Every topic must include objectives and a stable `key` that other topics can reference.",
        "Prerequisites may only list keys of other topics in the same blueprint.",
    ]
)

_RESPONSE_SHAPE = """\
{
  "summary": string,
  "topics": [
    {
      "key": string,
      "title": string,
      "description": string,
      "sequence": number,
      "prerequisites": string[],
      "objectives": [ { "statement": string, "level": string } ]
    }
  ]
}"""


def build_blueprint_prompt(
    class_title: str,
    material_context: str,
    subject: str | None = None,
    level: str | None = None,
) -> tuple[str, str]:
    user = "\n".join(
        [
            f"Class: {class_title}",
            f"Subject: {subject or 'STEM'}",
            f"Level: {level or 'Mixed high school/college'}",
            "",
            "Produce JSON with this structure:",
            _RESPONSE_SHAPE,
            "",
            "Materials:",
            material_context or NO_MATERIAL_CONTEXT,
        ]
    )
    return _SYSTEM_PROMPT, user


def build_blueprint_context(blueprint: Blueprint) -> str:
    """Render *blueprint* as a labelled prompt block, topics in sequence order."""
    topic_blocks: list[str] = []
    ordered = sorted(blueprint.topics, key=lambda t: t.sequence)
    for number, topic in enumerate(ordered, start=1):
        lines = [f"Topic {number}: {topic.title}"]
        if topic.description:
            lines.append(f"Description: {topic.description}")
        if topic.prerequisites:
            lines.append(f"Prerequisites: {', '.join(topic.prerequisites)}")
        objectives = [
            f"  - {o.statement} ({o.level})" if o.level else f"  - {o.statement}"
            for o in topic.objectives
        ]
        if objectives:
            lines.append("Objectives:\n" + "\n".join(objectives))
        topic_blocks.append("\n".join(lines))

    return "\n\n".join(
        [
            f"{BLUEPRINT_SOURCE_LABEL} | Published blueprint context",
            f"Summary: {blueprint.summary}",
            *topic_blocks,
        ]
    )


class BlueprintGenerator(GenerationService):
    """Drafts a course blueprint from a class's ingested materials."""

    feature = "blueprint_generation"

    async def generate_blueprint(
        self,
        class_id: str,
        class_title: str,
        subject: str | None = None,
        level: str | None = None,
    ) -> Blueprint:
        query = f"{class_title}: course overview, key topics and learning objectives"
        material_context = await self._retrieval.retrieve_context(class_id, query)
        system, user = build_blueprint_prompt(class_title, material_context, subject, level)

        result = await self._complete(class_id, system, user)
        blueprint = parse_blueprint(result.content)
        self._logger.info(
            "blueprint_generated",
            class_id=class_id,
            topics=len(blueprint.topics),
            provider=result.provider,
        )
        return blueprint
