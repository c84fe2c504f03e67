"""Turn free-form model replies into validated question records."""

from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional
import json
import re

from quiz_server.errors import MalformedResponse

REQUIRED_OPTIONS = 4

_FENCED_RE = re.compile(r"```(?:json)?\s*\n(.*?)\n\s*```", re.DOTALL | re.IGNORECASE)

_TRUE_WORDS = ("true", "yes", "1")
_FALSE_WORDS = ("false", "no", "0")


@dataclass
class GeneratedOption:
    text: str
    is_correct: bool


@dataclass
class GeneratedQuestion:
    statement: str
    options: List[GeneratedOption]
    correct_index: int
    explanation_correct: str = ""
    explanation_incorrect: str = ""
    source_ref: Optional[str] = None
    provider: Optional[str] = None

    def options_payload(self) -> List[Dict[str, Any]]:
        return [{"text": o.text, "is_correct": o.is_correct} for o in self.options]


@dataclass
class AnswerValidation:
    is_correct: bool
    explanation: str
    provider: Optional[str] = field(default=None)


def _try_json(text: str) -> Optional[Any]:
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        return None


def coerce_flag(value: Any, field_name: str = "is_correct") -> bool:
    """Read a model-supplied boolean. Accepts bools, 0/1 and true/false words."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    raise MalformedResponse(f"'{field_name}' must be a boolean, got {value!r}")


def extract_json_object(text: str) -> Dict[str, Any]:
    """Pull the first JSON object out of a reply that may carry fences or prose.

    Tries a fenced ```json block first, then everything between the first '{'
    and the last '}'.
    """
    if not isinstance(text, str) or not text.strip():
        raise MalformedResponse("empty response from AI provider")

    m = _FENCED_RE.search(text)
    if m:
        data = _try_json(m.group(1).strip())
        if isinstance(data, dict):
            return data

    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        data = _try_json(text[start:end + 1])
        if isinstance(data, dict):
            return data

    raise MalformedResponse("no JSON object found in AI response")


def parse_generated_question(text: str, require_dual_explanations: bool = True,
                             provider: Optional[str] = None) -> GeneratedQuestion:
    raw = extract_json_object(text)

    statement = raw.get("statement")
    if not isinstance(statement, str) or not statement.strip():
        raise MalformedResponse("'statement' must be a non-empty string")

    options = raw.get("options")
    if not isinstance(options, list) or len(options) != REQUIRED_OPTIONS:
        raise MalformedResponse(f"'options' must be a list of exactly {REQUIRED_OPTIONS} items")

    parsed: List[GeneratedOption] = []
    correct_index = -1
    correct_count = 0
    for idx, opt in enumerate(options):
        if not isinstance(opt, dict) or "text" not in opt or "is_correct" not in opt:
            raise MalformedResponse("each option needs 'text' and 'is_correct'")
        opt_text = str(opt["text"]).strip()
        if not opt_text:
            raise MalformedResponse("option text cannot be empty")
        is_correct = coerce_flag(opt["is_correct"])
        if is_correct:
            correct_count += 1
            correct_index = idx
        parsed.append(GeneratedOption(text=opt_text, is_correct=is_correct))

    if correct_count != 1:
        raise MalformedResponse(f"expected exactly 1 correct option, got {correct_count}")

    explanation_correct = str(raw.get("explanation_correct") or "").strip()
    explanation_incorrect = str(raw.get("explanation_incorrect") or "").strip()
    if require_dual_explanations and (not explanation_correct or not explanation_incorrect):
        raise MalformedResponse("both 'explanation_correct' and 'explanation_incorrect' are required")
    if not explanation_correct:
        # single-explanation replies
        explanation_correct = str(raw.get("explanation") or "").strip()

    source_ref = raw.get("source_ref")
    return GeneratedQuestion(
        statement=statement.strip(),
        options=parsed,
        correct_index=correct_index,
        explanation_correct=explanation_correct,
        explanation_incorrect=explanation_incorrect,
        source_ref=str(source_ref).strip() if source_ref else provider,
        provider=provider,
    )


def parse_answer_validation(text: str, provider: Optional[str] = None) -> AnswerValidation:
    raw = extract_json_object(text)
    flag = raw.get("isCorrect", raw.get("is_correct"))
    explanation = raw.get("explanation")
    if flag is None or explanation is None:
        raise MalformedResponse("validation reply needs 'isCorrect' and 'explanation'")
    return AnswerValidation(is_correct=coerce_flag(flag, "isCorrect"), explanation=str(explanation).strip(),
                            provider=provider)
