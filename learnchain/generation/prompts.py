"""
Prompt text and response schema for quiz generation.
"""

from __future__ import annotations

from learnchain.concepts.models import Concept

# Longest concept text sent to the model
MAX_CONTEXT_CHARS = 6000

SYSTEM_PROMPT = """You are a precise curriculum planner that helps the student learn about coding concepts.
You write one multiple-choice question that teaches the concept shown in the provided context.
The context is an excerpt of the student's own session with an AI coding assistant: what they asked,
what the assistant answered, and the code changes that followed. Diff lines starting with + or -
are the changes that were made; base the question on those when they are present.
Ask about the underlying language feature, library or technique rather than trivia about the session.
Exactly one option must be correct. Keep options similar in length and plausibility.
Return only JSON that matches the provided schema."""

QUIZ_SCHEMA: dict = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "question": {
            "type": "string",
            "description": "a question about the concept that will test the student",
        },
        "choices": {
            "type": "array",
            "description": "the multiple-choice answer options",
            "items": {"type": "string"},
        },
        "correct_index": {
            "type": "integer",
            "description": "zero-based index of the single correct option in choices",
        },
        "explanation": {
            "type": "string",
            "description": "one or two sentences explaining why the correct option is right",
        },
    },
    "required": ["question", "choices", "correct_index", "explanation"],
}

SCHEMA_NAME = "concept_quiz"


def build_prompt(concept: Concept, choice_count: int = 4) -> str:
    """User message for one concept."""
    context = concept.text
    if len(context) > MAX_CONTEXT_CHARS:
        context = context[:MAX_CONTEXT_CHARS] + "\n[truncated]"

    files = ", ".join(concept.edited_paths) or "none"
    return (
        f"Write one question with exactly {choice_count} options.\n"
        f"Concept: {concept.title}\n"
        f"Difficulty: {concept.difficulty_hint.value}\n"
        f"Files changed: {files}\n\n"
        f"Session excerpt:\n```\n{context}\n```"
    )
