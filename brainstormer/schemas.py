"""Pydantic schemas for the core API and the transport adapter."""
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from brainstormer.models.elements import Element
from brainstormer.models.session import ChatMessage, SessionState


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class PlanResult(_WireModel):
    steps: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class StepResult(_WireModel):
    reply: str = ""
    new_elements: List[Element] = Field(default_factory=list, alias="newElements")
    step_index: Optional[int] = Field(None, alias="stepIndex")
    next_step_index: int = Field(0, alias="nextStepIndex")
    plan_complete: bool = Field(False, alias="planComplete")
    error: Optional[str] = None


class ChatResult(_WireModel):
    reply: str = ""
    new_elements: List[Element] = Field(default_factory=list, alias="newElements")
    error: Optional[str] = None


class MessageRequest(BaseModel):
    message: str = ""
    images: Optional[List[str]] = None


class SessionCreateResponse(BaseModel):
    session_id: str


class SessionDetailResponse(_WireModel):
    session_id: str
    state: SessionState
    plan_steps: List[str] = Field(default_factory=list, alias="planSteps")
    current_step: int = Field(0, alias="currentStep")
    plan_complete: bool = Field(False, alias="planComplete")
    elements: List[Element] = Field(default_factory=list)
    chat_history: List[ChatMessage] = Field(default_factory=list, alias="chatHistory")
