"""Element and session models."""
from brainstormer.models.elements import Connector, Element, Shape, TextElement, normalize_label
from brainstormer.models.session import BoardSession, ChatMessage, SessionState

__all__ = [
    "BoardSession",
    "ChatMessage",
    "Connector",
    "Element",
    "SessionState",
    "Shape",
    "TextElement",
    "normalize_label",
]
