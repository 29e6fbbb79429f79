"""Session and plan orchestration service.

A session moves Empty -> Planning -> Ready -> Executing -> Ready ... -> Complete.
Generator calls happen before any plan or element mutation, so a failed call
leaves the step cursor where it was and the same step can be retried.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterable, Iterator, List, Optional, Union

from brainstormer.agents.errors import GeneratorProtocolError, GeneratorUnavailable
from brainstormer.agents.generator import Generator, GeneratorRole
from brainstormer.agents.intent_agent import classify_intent
from brainstormer.models.session import BoardSession, ChatMessage, SessionState
from brainstormer.schemas import ChatResult, PlanResult, StepResult
from brainstormer.tools.board_context import board_context, cap_text, cap_user_text
from brainstormer.tools.diagram_synthesizer import synthesize_records, synthesize_step
from brainstormer.tools.plan_extractor import extract_plan_steps
from brainstormer.tools.response_parser import parse_generator_reply
from brainstormer.utils.config import settings

logger = logging.getLogger(__name__)

PLAN_COMPLETE_REPLY = "Plan complete."


class SessionStore:
    """In-memory sessions keyed by connection id; one session per connection."""

    def __init__(self) -> None:
        self._sessions: Dict[str, BoardSession] = {}

    def open(self, connection_id: Optional[str] = None) -> BoardSession:
        session = BoardSession(id=connection_id) if connection_id else BoardSession()
        self._sessions[session.id] = session
        logger.info("Session opened", extra={"session_id": session.id})
        return session

    def get(self, session_id: str) -> Optional[BoardSession]:
        return self._sessions.get(session_id)

    def close(self, session_id: str) -> Optional[BoardSession]:
        session = self._sessions.pop(session_id, None)
        if session is not None:
            logger.info("Session closed", extra={"session_id": session_id})
        return session

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)


@contextmanager
def _transition(session: BoardSession, state: SessionState) -> Iterator[None]:
    previous = session.state
    session.state = state
    try:
        yield
    except BaseException:
        session.state = previous
        raise


def _call_generator(
    generator: Generator,
    role: GeneratorRole,
    user_text: str,
    context: str,
    images: Optional[List[str]] = None,
) -> Any:
    try:
        return generator.invoke(role, user_text, context, images)
    except GeneratorProtocolError as exc:
        logger.warning("Generator reply unusable, continuing with empty output", extra={"role": role.value, "error": str(exc)})
        return ""


def request_plan(session: BoardSession, user_text: str, generator: Generator) -> PlanResult:
    """Run a planning round; a successful round replaces any previous plan."""
    text = cap_user_text(user_text)
    if not text:
        return PlanResult(error="Message is empty.")
    try:
        with _transition(session, SessionState.PLANNING):
            raw = _call_generator(generator, GeneratorRole.STEP_PLANNER, text, board_context(session.elements))
    except GeneratorUnavailable as exc:
        logger.warning("Planning failed", extra={"session_id": session.id, "error": str(exc)})
        return PlanResult(error=f"Planner unavailable: {exc}")
    steps = extract_plan_steps(raw, text)
    session.replace_plan(steps, text)
    session.add_message("user", text)
    session.add_message("bot", "Plan:\n" + "\n".join(f"{i}. {step}" for i, step in enumerate(steps, start=1)))
    logger.info("Plan ready", extra={"session_id": session.id, "step_count": len(steps)})
    return PlanResult(steps=steps)


def _step_reply(parsed_reply: str, index: int, step: str, used_fallback: bool, created: int, notes: List[str]) -> str:
    reply = (parsed_reply or "").strip()
    if reply and not used_fallback:
        return reply
    if created:
        return f"Step {index + 1}: {step}"
    detail = f" ({'; '.join(notes)})" if notes else ""
    return f"Step {index + 1}: nothing new to draw for '{step}'{detail}"


def _busy(session: BoardSession) -> StepResult:
    return StepResult(
        error="A step is already running for this session.",
        step_index=session.current_step,
        next_step_index=session.current_step,
        plan_complete=session.plan_complete,
    )


def execute_next_step(session: BoardSession, generator: Generator) -> StepResult:
    """Execute ``plan_steps[current_step]`` and merge its elements into the board.

    Overlapping calls for one session are refused rather than queued.
    """
    if not session.step_lock.acquire(blocking=False):
        return _busy(session)
    try:
        return _execute_next_step(session, generator)
    finally:
        session.step_lock.release()


def _execute_next_step(session: BoardSession, generator: Generator) -> StepResult:
    if session.state == SessionState.EXECUTING:
        return _busy(session)
    if not session.plan_steps:
        return StepResult(error="No plan yet; send a request first.", next_step_index=0, plan_complete=False)
    if session.plan_complete or session.current_step >= len(session.plan_steps):
        return StepResult(reply=PLAN_COMPLETE_REPLY, next_step_index=session.current_step, plan_complete=True)

    index = session.current_step
    step = session.plan_steps[index]
    try:
        with _transition(session, SessionState.EXECUTING):
            raw = _call_generator(generator, GeneratorRole.STEP_EXECUTOR, cap_user_text(step), board_context(session.elements))
            parsed = parse_generator_reply(raw)
            result = synthesize_step(step, parsed.elements, session.elements)
            session.elements.extend(result.elements)
            session.advance()
    except GeneratorUnavailable as exc:
        logger.warning("Step failed", extra={"session_id": session.id, "step_index": index, "error": str(exc)})
        return StepResult(
            error=f"Step {index + 1} failed: {exc}",
            step_index=index,
            next_step_index=index,
            plan_complete=session.plan_complete,
        )
    reply = _step_reply(parsed.reply, index, step, result.used_fallback, len(result.elements), result.notes)
    session.add_message("bot", reply)
    logger.info(
        "Step executed",
        extra={
            "session_id": session.id,
            "step_index": index,
            "element_count": len(result.elements),
            "used_fallback": result.used_fallback,
        },
    )
    return StepResult(
        reply=reply,
        new_elements=result.elements,
        step_index=index,
        next_step_index=session.current_step,
        plan_complete=session.plan_complete,
    )


HistoryEntry = Union[ChatMessage, Dict[str, Any]]


def _history_block(history: Iterable[HistoryEntry]) -> str:
    lines = []
    for entry in history:
        if isinstance(entry, ChatMessage):
            sender, text = entry.sender, entry.text
        else:
            sender = str(entry.get("sender") or entry.get("role") or "user")
            text = str(entry.get("text") or entry.get("content") or "")
        if text:
            lines.append(f"{sender}: {text}")
    return cap_text("\n".join(lines), settings.user_text_limit)


def free_chat(
    session: BoardSession,
    user_text: str,
    generator: Generator,
    history_tail: Optional[Iterable[HistoryEntry]] = None,
    images: Optional[List[str]] = None,
) -> ChatResult:
    """One-shot chat that may draw, without touching the plan or the step cursor."""
    text = cap_user_text(user_text)
    if not text:
        return ChatResult(error="Message is empty.")
    if history_tail is None:
        history_tail = session.chat_history[-settings.chat_history_tail:] if settings.chat_history_tail > 0 else []
    role = classify_intent(generator, text) if settings.classify_chat_intent else GeneratorRole.FREE_CHAT
    history = _history_block(history_tail)
    prompt = f"Recent conversation:\n{history}\n\nUser: {text}" if history else text
    try:
        raw = _call_generator(generator, role, prompt, board_context(session.elements), images)
    except GeneratorUnavailable as exc:
        logger.warning("Chat failed", extra={"session_id": session.id, "role": role.value, "error": str(exc)})
        return ChatResult(error=f"Assistant unavailable: {exc}")
    parsed = parse_generator_reply(raw)
    result = synthesize_records(parsed.elements, session.elements)
    session.elements.extend(result.elements)
    session.add_message("user", text)
    session.add_message("bot", parsed.reply)
    return ChatResult(reply=parsed.reply, new_elements=result.elements)
