"""Generator collaborator: one capability, configured per role.

Each role is a configuration record (model, prompt, response mode) looked up in
``GENERATOR_ROLES``; backends only differ in how the request reaches a model.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Literal, Optional, Protocol, Union

import httpx
import openai

from brainstormer.agents.errors import GeneratorError, GeneratorProtocolError, GeneratorUnavailable
from brainstormer.agents.prompts import CHAT_SYSTEM, EXECUTOR_SYSTEM, INTENT_SYSTEM, PLANNER_SYSTEM
from brainstormer.utils.config import Settings, settings
from brainstormer.utils.http_client import build_httpx_client, build_openai_client

__all__ = [
    "GENERATOR_ROLES",
    "Generator",
    "GeneratorConfig",
    "GeneratorError",
    "GeneratorProtocolError",
    "GeneratorRole",
    "GeneratorUnavailable",
    "OllamaGenerator",
    "OpenAIGenerator",
    "build_generator",
    "compose_user_message",
]

logger = logging.getLogger(__name__)

RawOutput = Union[str, Dict[str, Any], List[Any]]


class GeneratorRole(str, Enum):
    INTENT_CLASSIFIER = "intent-classifier"
    STEP_PLANNER = "step-planner"
    STEP_EXECUTOR = "step-executor"
    FREE_CHAT = "free-chat"


@dataclass(frozen=True)
class GeneratorConfig:
    role_id: GeneratorRole
    prompt_template: str
    response_mode: Literal["json", "text"] = "json"
    model_id: Optional[str] = None
    temperature: float = 0.2
    top_p: float = 0.4
    think: bool = False


GENERATOR_ROLES: Dict[GeneratorRole, GeneratorConfig] = {
    GeneratorRole.INTENT_CLASSIFIER: GeneratorConfig(GeneratorRole.INTENT_CLASSIFIER, INTENT_SYSTEM),
    GeneratorRole.STEP_PLANNER: GeneratorConfig(GeneratorRole.STEP_PLANNER, PLANNER_SYSTEM, temperature=0.3),
    GeneratorRole.STEP_EXECUTOR: GeneratorConfig(
        GeneratorRole.STEP_EXECUTOR, EXECUTOR_SYSTEM, temperature=0.4, think=True
    ),
    GeneratorRole.FREE_CHAT: GeneratorConfig(GeneratorRole.FREE_CHAT, CHAT_SYSTEM),
}


class Generator(Protocol):
    def invoke(
        self,
        role: GeneratorRole,
        user_text: str,
        board_context: str = "",
        images: Optional[List[str]] = None,
    ) -> RawOutput: ...


def compose_user_message(user_text: str, board_context: str = "") -> str:
    if not board_context:
        return user_text
    return f"{user_text}\n\nCurrent board (JSON):\n{board_context}"


def _role_config(role: Union[GeneratorRole, str], roles: Dict[GeneratorRole, GeneratorConfig]) -> GeneratorConfig:
    return roles[GeneratorRole(role)]


class OpenAIGenerator:
    """Hosted OpenAI-compatible chat completions."""

    def __init__(
        self,
        config: Settings = settings,
        client: Optional[openai.OpenAI] = None,
        roles: Optional[Dict[GeneratorRole, GeneratorConfig]] = None,
    ) -> None:
        self._settings = config
        self._client = client
        self._roles = roles or GENERATOR_ROLES

    def _get_client(self) -> openai.OpenAI:
        if self._client is None:
            try:
                self._client = build_openai_client(self._settings)
            except ValueError as exc:
                raise GeneratorUnavailable(str(exc)) from exc
        return self._client

    def _user_content(self, text: str, images: Optional[List[str]]) -> Union[str, List[Dict[str, Any]]]:
        if not images:
            return text
        parts: List[Dict[str, Any]] = [{"type": "text", "text": text}]
        for image in images:
            url = image if image.startswith("data:") else f"data:image/png;base64,{image}"
            parts.append({"type": "image_url", "image_url": {"url": url}})
        return parts

    def invoke(
        self,
        role: GeneratorRole,
        user_text: str,
        board_context: str = "",
        images: Optional[List[str]] = None,
    ) -> RawOutput:
        config = _role_config(role, self._roles)
        client = self._get_client()
        kwargs: Dict[str, Any] = {}
        if config.response_mode == "json":
            kwargs["response_format"] = {"type": "json_object"}
        model = config.model_id or self._settings.openai_model
        try:
            response = client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": config.prompt_template},
                    {"role": "user", "content": self._user_content(compose_user_message(user_text, board_context), images)},
                ],
                temperature=config.temperature,
                top_p=config.top_p,
                **kwargs,
            )
        except openai.APIError as exc:
            logger.warning("Generator call failed", extra={"role": config.role_id.value, "model": model, "error": str(exc)})
            raise GeneratorUnavailable(str(exc)) from exc
        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError) as exc:
            raise GeneratorProtocolError("Completion has no message content") from exc
        if content is None:
            raise GeneratorProtocolError("Completion has no message content")
        return content


class OllamaGenerator:
    """Local model server speaking the Ollama ``/api/chat`` protocol."""

    def __init__(
        self,
        config: Settings = settings,
        client: Optional[httpx.Client] = None,
        roles: Optional[Dict[GeneratorRole, GeneratorConfig]] = None,
    ) -> None:
        self._settings = config
        self._client = client
        self._roles = roles or GENERATOR_ROLES

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = build_httpx_client(self._settings.generator_timeout)
        return self._client

    def build_payload(
        self,
        config: GeneratorConfig,
        user_text: str,
        board_context: str = "",
        images: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        user_message: Dict[str, Any] = {"role": "user", "content": compose_user_message(user_text, board_context)}
        if images:
            user_message["images"] = list(images)
        payload: Dict[str, Any] = {
            "model": config.model_id or self._settings.ollama_model,
            "messages": [{"role": "system", "content": config.prompt_template}, user_message],
            "stream": False,
            "think": config.think,
            "options": {"temperature": config.temperature, "top_p": config.top_p},
        }
        if config.response_mode == "json":
            payload["format"] = "json"
        return payload

    def invoke(
        self,
        role: GeneratorRole,
        user_text: str,
        board_context: str = "",
        images: Optional[List[str]] = None,
    ) -> RawOutput:
        config = _role_config(role, self._roles)
        payload = self.build_payload(config, user_text, board_context, images)
        url = self._settings.ollama_url.rstrip("/") + "/api/chat"
        try:
            response = self._get_client().post(url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Generator call failed", extra={"role": config.role_id.value, "url": url, "error": str(exc)})
            raise GeneratorUnavailable(str(exc)) from exc
        try:
            content = response.json()["message"]["content"]
        except (ValueError, KeyError, TypeError, RecursionError) as exc:
            raise GeneratorProtocolError("Model server reply has no message content") from exc
        if content is None:
            raise GeneratorProtocolError("Model server reply has no message content")
        return content


_BACKENDS: Dict[str, Callable[..., Generator]] = {
    "openai": OpenAIGenerator,
    "ollama": OllamaGenerator,
}


def build_generator(config: Settings = settings, **overrides: Any) -> Generator:
    factory = _BACKENDS.get(config.generator_backend)
    if factory is None:
        raise ValueError(f"Unknown generator backend: {config.generator_backend}")
    return factory(config, **overrides)
