"""Request and response models for the fallback chat gateway."""

from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class Provider(str, Enum):
    """Provider selection requested by the client."""

    AUTO = "auto"
    GROQ = "groq"
    GEMINI = "gemini"


class Preset(str, Enum):
    """Speed/quality trade-off used to pick a model priority list."""

    SPEED = "speed"
    QUALITY = "quality"


class ChatMessage(BaseModel):
    """A single OpenAI-style chat message.

    Both fields are optional so that incomplete entries can be accepted
    and dropped during translation instead of failing the whole request.
    """

    role: Optional[str] = None
    content: Optional[str] = None

    @field_validator("role", "content", mode="before")
    @classmethod
    def _scalar_to_str(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class ChatRequest(BaseModel):
    """Incoming chat request from the client."""

    provider: Provider = Field(
        default=Provider.AUTO, description="auto, groq or gemini"
    )
    preset: Preset = Field(
        default=Preset.SPEED, description="Model priority list to consult"
    )
    model: Optional[str] = Field(
        default=None, description="Explicit model id, used when the provider serves it"
    )
    messages: List[ChatMessage] = Field(default_factory=list)
    temperature: Optional[float] = None
    max_tokens: Optional[int] = Field(default=None, ge=1)
    enable_fallback: bool = Field(
        default=True, description="Allow auto mode to fall back to Gemini"
    )

    @model_validator(mode="before")
    @classmethod
    def _defaults_for_nulls(cls, data: Any) -> Any:
        """Treat explicit nulls as absent and drop non-object messages."""
        if not isinstance(data, dict):
            return data
        data = {k: v for k, v in data.items() if v is not None}
        messages = data.get("messages")
        if isinstance(messages, list):
            data["messages"] = [
                m for m in messages if isinstance(m, (dict, ChatMessage))
            ]
        return data


class ChoiceMessage(BaseModel):
    content: str


class Choice(BaseModel):
    message: ChoiceMessage


class ChatResponse(BaseModel):
    """Normalized response envelope returned for every provider."""

    choices: List[Choice]
    provider: Optional[str] = None
    model: Optional[str] = None

    @classmethod
    def from_text(
        cls, text: str, provider: Optional[str] = None, model: Optional[str] = None
    ) -> "ChatResponse":
        return cls(
            choices=[Choice(message=ChoiceMessage(content=text))],
            provider=provider,
            model=model,
        )


class ErrorResponse(BaseModel):
    """Error envelope: ``{"error": "<tag>:<detail>"}``."""

    error: str


class HealthResponse(BaseModel):
    """Reachability of the key-value store and provider credential status."""

    ok: bool
    kv: bool
    groq_secret: bool
    gemini_secret: bool
    groq_models: Optional[int] = None
    gemini_models: Optional[int] = None
