"""Deterministic keyword-driven diagram builder for steps the generator left empty."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from brainstormer.models.elements import Element, Shape
from brainstormer.tools.board_index import BoardIndex, SynthesisResult
from brainstormer.tools.element_factory import make_connector, make_labeled_shape

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KeywordRule:
    pattern: str
    label: str
    kind: str = "rectangle"

    @property
    def regex(self) -> re.Pattern[str]:
        return re.compile(r"\b" + r"\s+".join(map(re.escape, self.pattern.split())) + r"\b", re.IGNORECASE)


# Longest literal match wins, so row order only breaks ties.
KEYWORD_RULES: Tuple[KeywordRule, ...] = (
    KeywordRule("load balancer", "Load Balancer", "diamond"),
    KeywordRule("decision", "Decision", "diamond"),
    KeywordRule("api gateway", "API Gateway"),
    KeywordRule("gateway", "API Gateway"),
    KeywordRule("backend server", "Backend Server"),
    KeywordRule("application server", "Backend Server"),
    KeywordRule("app server", "Backend Server"),
    KeywordRule("web server", "Web Server"),
    KeywordRule("server", "Backend Server"),
    KeywordRule("blob storage", "Blob Storage"),
    KeywordRule("object storage", "Blob Storage"),
    KeywordRule("file storage", "Blob Storage"),
    KeywordRule("storage", "Blob Storage"),
    KeywordRule("database", "Database"),
    KeywordRule("db", "Database"),
    KeywordRule("cache", "Cache"),
    KeywordRule("message queue", "Message Queue"),
    KeywordRule("queue", "Message Queue"),
    KeywordRule("cdn", "CDN"),
    KeywordRule("upload service", "Upload Service"),
    KeywordRule("upload", "Upload Service"),
    KeywordRule("download service", "Download Service"),
    KeywordRule("download", "Download Service"),
    KeywordRule("sync service", "Sync Service"),
    KeywordRule("metadata service", "Metadata Service"),
    KeywordRule("notification service", "Notification Service"),
    KeywordRule("auth service", "Auth Service"),
    KeywordRule("authentication", "Auth Service"),
    KeywordRule("login", "Login Service"),
    KeywordRule("dropbox", "Dropbox"),
    KeywordRule("users", "User"),
    KeywordRule("user", "User"),
    KeywordRule("client", "Client"),
)

_CONNECT_RE = re.compile(r"\b(?:connect\w*|arrows?|link\w*|wire)\b|->|→", re.IGNORECASE)
_FROM_TO_RE = re.compile(r"\bfrom\s+(.+?)\s+to\s+(.+?)\s*(?:[.,;!]|$)", re.IGNORECASE)
_PAIR_RE = re.compile(r"\b(?:connect|link)\w*\s+(.+?)\s+(?:to|with|and)\s+(.+?)\s*(?:[.,;!]|$)", re.IGNORECASE)
_ARROW_PAIR_RE = re.compile(r"(.+?)\s*(?:->|→)\s*(.+?)\s*(?:[.,;!]|$)")
_ARTICLE_RE = re.compile(r"^(?:the|a|an)\s+", re.IGNORECASE)


@dataclass(frozen=True)
class KeywordMatch:
    start: int
    end: int
    rule: KeywordRule

    @property
    def length(self) -> int:
        return self.end - self.start


def find_keywords(text: str, rules: Iterable[KeywordRule] = KEYWORD_RULES) -> List[KeywordMatch]:
    """Non-overlapping keyword matches in text order; overlaps keep the longest literal."""
    found = [
        KeywordMatch(match.start(), match.end(), rule)
        for rule in rules
        for match in rule.regex.finditer(text or "")
    ]
    found.sort(key=lambda item: (-item.length, item.start))
    accepted: List[KeywordMatch] = []
    for candidate in found:
        if all(candidate.end <= kept.start or candidate.start >= kept.end for kept in accepted):
            accepted.append(candidate)
    return sorted(accepted, key=lambda item: item.start)


def classify_step(text: str) -> Optional[KeywordRule]:
    matches = find_keywords(text)
    if not matches:
        return None
    best = max(matches, key=lambda item: (item.length, -item.start))
    distinct = {match.rule.label for match in matches}
    if len(distinct) > 1:
        logger.warning(
            "Ambiguous step matched several roles",
            extra={"step": text, "labels": sorted(distinct), "chosen": best.rule.label},
        )
    return best.rule


def is_connection_step(text: str) -> bool:
    return bool(_CONNECT_RE.search(text or "") or _FROM_TO_RE.search(text or ""))


def _clean_phrase(phrase: str) -> str:
    return _ARTICLE_RE.sub("", phrase.strip()).strip()


def endpoint_phrases(text: str) -> Optional[Tuple[str, str]]:
    for pattern in (_FROM_TO_RE, _PAIR_RE, _ARROW_PAIR_RE):
        match = pattern.search(text)
        if match:
            return _clean_phrase(match.group(1)), _clean_phrase(match.group(2))
    return None


class FallbackBuilder:
    """Builds one recognizable shape (or one connector) from a step description."""

    def resolve_phrase(self, phrase: str, index: BoardIndex) -> Optional[Shape]:
        matches = find_keywords(phrase)
        if matches:
            best = max(matches, key=lambda item: (item.length, -item.start))
            shape = index.by_label(best.rule.label)
            if shape is not None:
                return shape
        return index.by_label(phrase)

    def _endpoints(self, text: str, index: BoardIndex) -> Optional[Tuple[Shape, Shape]]:
        phrases = endpoint_phrases(text)
        if phrases:
            start = self.resolve_phrase(phrases[0], index)
            end = self.resolve_phrase(phrases[1], index)
            if start is not None and end is not None:
                return start, end
        labels: List[str] = []
        for match in find_keywords(text):
            if match.rule.label not in labels:
                labels.append(match.rule.label)
        if len(labels) >= 2:
            start = index.by_label(labels[0])
            end = index.by_label(labels[1])
            if start is not None and end is not None:
                return start, end
        return None

    def connect(self, text: str, index: BoardIndex) -> SynthesisResult:
        endpoints = self._endpoints(text, index)
        if endpoints is None:
            logger.info("Deferring connection until both endpoints exist", extra={"step": text})
            return SynthesisResult(notes=["endpoints not on board"])
        start, end = endpoints
        if start.id == end.id or index.has_connection(start.id, end.id):
            return SynthesisResult(notes=["already connected"])
        connector = make_connector(start, end)
        index.register_connector(connector)
        return SynthesisResult(elements=[connector])

    def build(self, step: str, existing: Iterable[Element]) -> SynthesisResult:
        index = BoardIndex(existing)
        text = (step or "").strip()
        if not text:
            return SynthesisResult()
        if is_connection_step(text):
            return self.connect(text, index)
        rule = classify_step(text)
        label, kind = (rule.label, rule.kind) if rule else (text, "rectangle")
        if index.by_label(label) is not None:
            return SynthesisResult(notes=[f"{label} already on board"])
        previous = index.last_shape()
        x, y = index.next_slot()
        shape, label_text = make_labeled_shape(kind, x, y, None, None, label)
        index.register_shape(shape)
        elements: List[Element] = [shape, label_text]
        if previous is not None:
            connector = make_connector(previous, shape)
            index.register_connector(connector)
            elements.append(connector)
        return SynthesisResult(elements=elements)
