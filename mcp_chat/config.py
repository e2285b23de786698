"""Configuration snapshots passed into every request.

Provider and model settings are owned by the caller's settings store. The core
only ever sees frozen copies of them, taken when a request starts, so edits
made while a request is in flight never leak into it.
"""

import os
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_TEMPERATURE = 0.7
DEFAULT_CONTEXT_LENGTH = 10
UNLIMITED_CONTEXT = -1
MAX_RECURSION_DEPTH = 50
DEFAULT_TIMEOUT = 60.0
DEFAULT_MAX_TOKENS = 2000


class ProviderKind(str, Enum):
    """Wire protocols the core knows how to speak."""

    OPENAI = "openai"
    DEEPSEEK = "deepseek"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    OLLAMA = "ollama"
    CUSTOM = "custom"  # any OpenAI-compatible endpoint


DEFAULT_BASE_URLS: dict[ProviderKind, str] = {
    ProviderKind.OPENAI: "https://api.openai.com/v1",
    ProviderKind.DEEPSEEK: "https://api.deepseek.com",
    ProviderKind.ANTHROPIC: "https://api.anthropic.com",
    ProviderKind.GEMINI: "https://generativelanguage.googleapis.com/v1beta",
    ProviderKind.OLLAMA: "http://localhost:11434/v1",
    ProviderKind.CUSTOM: "",
}

API_KEY_ENV_VARS: dict[ProviderKind, str] = {
    ProviderKind.OPENAI: "OPENAI_API_KEY",
    ProviderKind.DEEPSEEK: "DEEPSEEK_API_KEY",
    ProviderKind.ANTHROPIC: "ANTHROPIC_API_KEY",
    ProviderKind.GEMINI: "GOOGLE_API_KEY",
}


def _resolve_kind(value: Any, provider_id: str) -> ProviderKind:
    if value:
        return ProviderKind(value)
    try:
        return ProviderKind(provider_id)
    except ValueError:
        return ProviderKind.CUSTOM


class ProviderConfig(BaseModel):
    """Immutable provider snapshot.

    ``kind`` defaults to the provider id when it names a known protocol and to
    ``custom`` (OpenAI-compatible) otherwise. ``base_url`` and ``api_key`` fall
    back to the protocol default and its environment variable.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    kind: ProviderKind = ProviderKind.CUSTOM
    base_url: str = ""
    api_key: Optional[str] = None
    enabled: bool = True

    @model_validator(mode="before")
    @classmethod
    def _fill_defaults(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        provider_id = data.get("id", "")
        kind = _resolve_kind(data.get("kind"), provider_id)
        data["kind"] = kind
        data.setdefault("name", provider_id)
        if not data.get("base_url"):
            data["base_url"] = DEFAULT_BASE_URLS[kind]
        if not data.get("api_key") and kind in API_KEY_ENV_VARS:
            data["api_key"] = os.environ.get(API_KEY_ENV_VARS[kind])
        return data

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def requires_api_key(self) -> bool:
        return self.kind in API_KEY_ENV_VARS


class ModelConfig(BaseModel):
    """Immutable model snapshot."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    max_tokens: int = Field(default=DEFAULT_MAX_TOKENS, gt=0)

    @model_validator(mode="before")
    @classmethod
    def _default_name(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("name"):
            data = {**data, "name": data.get("id", "")}
        return data


class SessionContext(BaseModel):
    """Everything one top-level request needs to know about its session.

    ``context_length`` is the number of history turns sent to the model, or
    ``UNLIMITED_CONTEXT`` (-1) to send the whole history.
    """

    model_config = ConfigDict(frozen=True)

    provider: Optional[ProviderConfig] = None
    model: Optional[ModelConfig] = None
    temperature: float = Field(default=DEFAULT_TEMPERATURE, ge=0.0, le=2.0)
    context_length: int = DEFAULT_CONTEXT_LENGTH
    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)

    @field_validator("context_length")
    @classmethod
    def _check_context_length(cls, value: int) -> int:
        if value != UNLIMITED_CONTEXT and value < 1:
            raise ValueError(
                f"context_length must be >= 1 or {UNLIMITED_CONTEXT} (unlimited), got {value}"
            )
        return value

    @property
    def unlimited_context(self) -> bool:
        return self.context_length == UNLIMITED_CONTEXT
