"""Generation use-cases: blueprint, quiz, flashcards and grounded chat."""

from coursemind.services.generation.blueprint import BlueprintGenerator, build_blueprint_context
from coursemind.services.generation.chat import ChatService
from coursemind.services.generation.flashcards import FlashcardGenerator
from coursemind.services.generation.quiz import QuizGenerator

__all__ = [
    "BlueprintGenerator",
    "ChatService",
    "FlashcardGenerator",
    "QuizGenerator",
    "build_blueprint_context",
]
