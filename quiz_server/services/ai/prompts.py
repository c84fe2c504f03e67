import os

from quiz_server.utils.env import env_float

DIFFICULTY_TIERS = {
    1: "very basic (fundamental knowledge)",
    2: "basic (key concepts)",
    3: "intermediate (applying concepts)",
    4: "advanced (analysis and comparison)",
    5: "expert (complex cases and fine details)",
}

DEFAULT_TEMPERATURE = 0.7
VALIDATION_TEMPERATURE = 0.3

SYSTEM_ROLE = "You are an expert trivia writer who produces accurate, well-balanced quiz questions."

DEFAULT_TEMPLATE = """Generate EXACTLY 1 multiple-choice question about {topic} at difficulty level {difficulty} of 5 ({difficulty_desc}).

Rules:
1. Reply with ONLY a valid JSON object, no markdown and no commentary.
2. Exact structure: {{"statement": "...", "options": [{{"text": "...", "is_correct": true}}], "explanation_correct": "...", "explanation_incorrect": "...", "source_ref": "..."}}
3. Provide exactly 4 options with distinct texts.
4. Exactly one option has "is_correct": true.
5. The statement is clear and concise (100-300 characters).
6. Options are balanced; none is obviously wrong.
7. explanation_correct reinforces the concept for a player who answered correctly (50-100 words).
8. explanation_incorrect explains why the correct option is right, for a player who missed it (50-100 words).
9. source_ref names a reference work or reputable source for the fact.
"""

VALIDATION_TEMPLATE = """You are grading a quiz answer.
Question: {question}
Player answer: {answer}

Decide whether the answer is correct. Reply with ONLY a JSON object, no markdown:
{{"isCorrect": true, "explanation": "at most 100 characters"}}
"""


def difficulty_description(difficulty: int) -> str:
    return DIFFICULTY_TIERS.get(int(difficulty), DIFFICULTY_TIERS[3])


def build_generation_prompt(topic: str, difficulty: int) -> str:
    template = os.getenv("AI_PROMPT_TEMPLATE") or DEFAULT_TEMPLATE
    # str.replace so custom templates don't need brace escaping
    return (
        template.replace("{topic}", topic)
        .replace("{difficulty_desc}", difficulty_description(difficulty))
        .replace("{difficulty}", str(int(difficulty)))
        .replace("{{", "{")
        .replace("}}", "}")
    )


def build_validation_prompt(question: str, answer: str) -> str:
    return VALIDATION_TEMPLATE.replace("{question}", question).replace("{answer}", answer).replace(
        "{{", "{").replace("}}", "}")


def generation_temperature() -> float:
    return env_float("AI_TEMPERATURE", DEFAULT_TEMPERATURE)
