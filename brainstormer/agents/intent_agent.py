"""Route free-chat messages to a generator role."""
from __future__ import annotations

import logging
from typing import Any, Dict

from brainstormer.agents.errors import GeneratorError
from brainstormer.agents.generator import Generator, GeneratorRole
from brainstormer.tools.response_parser import extract_balanced, strip_noise, unwrap_encoded

logger = logging.getLogger(__name__)

INTENT_TYPE_ROLES: Dict[str, GeneratorRole] = {
    "think": GeneratorRole.STEP_EXECUTOR,
    "chat": GeneratorRole.FREE_CHAT,
    "multimodal": GeneratorRole.FREE_CHAT,
}


class UnknownIntentType(ValueError):
    """The classifier answered with a type outside ``INTENT_TYPE_ROLES``."""


def parse_intent(raw: Any) -> Dict[str, str]:
    data = raw
    if isinstance(raw, str):
        text = strip_noise(raw)
        candidate = extract_balanced(text) or text
        try:
            data = unwrap_encoded(candidate)
        except ValueError as exc:
            raise UnknownIntentType(f"Unparseable intent: {raw!r}") from exc
    if not isinstance(data, dict):
        raise UnknownIntentType(f"Unparseable intent: {raw!r}")
    intent_type = str(data.get("type") or "").strip().lower()
    if intent_type not in INTENT_TYPE_ROLES:
        raise UnknownIntentType(f"Unknown intent type: {intent_type or '<missing>'}")
    return {"intent": str(data.get("intent") or "unknown"), "type": intent_type}


def classify_intent(generator: Generator, text: str) -> GeneratorRole:
    """Pick the role for a chat message; anything unexpected goes to the step executor."""
    try:
        raw = generator.invoke(GeneratorRole.INTENT_CLASSIFIER, text)
        intent = parse_intent(raw)
    except UnknownIntentType as exc:
        logger.warning("Unknown intent type, defaulting to step executor", extra={"error": str(exc)})
        return GeneratorRole.STEP_EXECUTOR
    except GeneratorError as exc:
        logger.warning("Intent classifier failed, defaulting to step executor", extra={"error": str(exc)})
        return GeneratorRole.STEP_EXECUTOR
    return INTENT_TYPE_ROLES[intent["type"]]
