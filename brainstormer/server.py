"""REST and WebSocket transport for board sessions."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool
from fastapi.requests import HTTPConnection

from brainstormer.agents.generator import Generator, build_generator
from brainstormer.models.session import BoardSession
from brainstormer.schemas import (
    ChatResult,
    MessageRequest,
    PlanResult,
    SessionCreateResponse,
    SessionDetailResponse,
    StepResult,
)
from brainstormer.services.session_service import SessionStore, execute_next_step, free_chat, request_plan

logger = logging.getLogger(__name__)

app = FastAPI(title="Brainstormer")
app.state.sessions = SessionStore()
app.state.generator = None


def get_store(connection: HTTPConnection) -> SessionStore:
    return connection.app.state.sessions


def get_generator(connection: HTTPConnection) -> Generator:
    generator = connection.app.state.generator
    if generator is None:
        generator = build_generator()
        connection.app.state.generator = generator
    return generator


def _require_session(store: SessionStore, session_id: str) -> BoardSession:
    session = store.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


def _require_message(payload: MessageRequest) -> str:
    message = (payload.message or "").strip()
    if not message:
        raise HTTPException(status_code=400, detail="Message is required")
    return message


def _detail(session: BoardSession) -> SessionDetailResponse:
    return SessionDetailResponse(
        session_id=session.id,
        state=session.state,
        plan_steps=session.plan_steps,
        current_step=session.current_step,
        plan_complete=session.plan_complete,
        elements=session.elements,
        chat_history=session.chat_history,
    )


@app.post("/api/sessions", response_model=SessionCreateResponse)
def create_session_endpoint(store: SessionStore = Depends(get_store)):
    session = store.open()
    return SessionCreateResponse(session_id=session.id)


@app.get("/api/sessions/{session_id}", response_model=SessionDetailResponse)
def get_session_endpoint(session_id: str, store: SessionStore = Depends(get_store)):
    return _detail(_require_session(store, session_id))


@app.delete("/api/sessions/{session_id}", status_code=204)
def delete_session_endpoint(session_id: str, store: SessionStore = Depends(get_store)):
    if store.close(session_id) is None:
        raise HTTPException(status_code=404, detail="Session not found")


@app.post("/api/sessions/{session_id}/plan", response_model=PlanResult, response_model_exclude_none=True)
def plan_endpoint(
    session_id: str,
    payload: MessageRequest,
    store: SessionStore = Depends(get_store),
    generator: Generator = Depends(get_generator),
):
    session = _require_session(store, session_id)
    return request_plan(session, _require_message(payload), generator)


@app.post("/api/sessions/{session_id}/continue", response_model=StepResult, response_model_exclude_none=True)
def continue_endpoint(
    session_id: str,
    store: SessionStore = Depends(get_store),
    generator: Generator = Depends(get_generator),
):
    return execute_next_step(_require_session(store, session_id), generator)


@app.post("/api/sessions/{session_id}/chat", response_model=ChatResult, response_model_exclude_none=True)
def chat_endpoint(
    session_id: str,
    payload: MessageRequest,
    store: SessionStore = Depends(get_store),
    generator: Generator = Depends(get_generator),
):
    session = _require_session(store, session_id)
    return free_chat(session, _require_message(payload), generator, images=payload.images)


def _wire(result: Any) -> Dict[str, Any]:
    return result.model_dump(by_alias=True, mode="json", exclude_none=True)


async def _dispatch(session: BoardSession, generator: Generator, event: Dict[str, Any]) -> Dict[str, Any]:
    name = event.get("event")
    message = str(event.get("message") or "").strip()
    if name == "user_message":
        if not message:
            return {"event": "plan_generated", "error": "Message is required"}
        result = await run_in_threadpool(request_plan, session, message, generator)
        return {"event": "plan_generated", **_wire(result)}
    if name == "continue_step":
        result = await run_in_threadpool(execute_next_step, session, generator)
        return {"event": "step_done", **_wire(result)}
    if name == "chat_message":
        if not message:
            return {"event": "chat_reply", "error": "Message is required"}
        history: Optional[Any] = event.get("chatHistory")
        result = await run_in_threadpool(free_chat, session, message, generator, history, event.get("images"))
        return {"event": "chat_reply", **_wire(result)}
    return {"event": "error", "error": f"Unknown event: {name}"}


@app.websocket("/ws")
async def board_socket(
    websocket: WebSocket,
    store: SessionStore = Depends(get_store),
    generator: Generator = Depends(get_generator),
):
    await websocket.accept()
    session = store.open()
    await websocket.send_json({"event": "session", "sessionId": session.id})
    try:
        while True:
            try:
                event = await websocket.receive_json()
            except ValueError:
                await websocket.send_json({"event": "error", "error": "Events must be JSON objects"})
                continue
            if not isinstance(event, dict):
                await websocket.send_json({"event": "error", "error": "Events must be JSON objects"})
                continue
            await websocket.send_json(await _dispatch(session, generator, event))
    except WebSocketDisconnect:
        logger.info("Socket disconnected", extra={"session_id": session.id})
    finally:
        store.close(session.id)
