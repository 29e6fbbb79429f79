"""Per-connection board session state."""
from __future__ import annotations

import threading
from enum import Enum
from typing import Any, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, PrivateAttr

from brainstormer.models.elements import Element


class SessionState(str, Enum):
    EMPTY = "empty"
    PLANNING = "planning"
    READY = "ready"
    EXECUTING = "executing"
    COMPLETE = "complete"


class ChatMessage(BaseModel):
    sender: str
    text: str


class BoardSession(BaseModel):
    """Mutable state owned by exactly one connection."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    chat_history: List[ChatMessage] = Field(default_factory=list)
    elements: List[Element] = Field(default_factory=list)
    plan_steps: List[str] = Field(default_factory=list)
    current_step: int = 0
    plan_complete: bool = False
    state: SessionState = SessionState.EMPTY
    original_request: Optional[str] = None

    _step_lock: Any = PrivateAttr(default_factory=threading.Lock)

    @property
    def step_lock(self) -> Any:
        """Held while a step executes; one step in flight per session."""
        return self._step_lock

    def add_message(self, sender: str, text: str) -> None:
        self.chat_history.append(ChatMessage(sender=sender, text=text))

    def replace_plan(self, steps: List[str], request: str) -> None:
        self.plan_steps = list(steps)
        self.current_step = 0
        self.plan_complete = False
        self.original_request = request
        self.state = SessionState.READY if steps else SessionState.EMPTY

    def advance(self) -> None:
        self.current_step = min(self.current_step + 1, len(self.plan_steps))
        self.plan_complete = self.current_step == len(self.plan_steps)
        self.state = SessionState.COMPLETE if self.plan_complete else SessionState.READY

    @property
    def current_step_text(self) -> Optional[str]:
        if self.current_step < len(self.plan_steps):
            return self.plan_steps[self.current_step]
        return None
