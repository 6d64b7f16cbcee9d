"""Translation between the common chat shape and each provider's native shape.

Groq speaks the OpenAI chat-completions format, so requests only need
field defaults. Gemini uses turn-based ``contents`` with ``user`` and
``model`` roles and no system role: system messages are merged into a
prefix that is injected once into the next user turn.

Responses come back as one of two native variants and are normalized to
a single non-empty text.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from fallback_gateway.config import GEMINI, GROQ
from fallback_gateway.errors import EmptyResponse
from fallback_gateway.models import ChatMessage, ChatRequest, ChatResponse


@dataclass
class NormalizedResponse:
    """Provider-agnostic answer. ``text`` is never empty."""

    text: str
    provider: str
    model: str
    attempts: int = 1

    def to_envelope(self) -> ChatResponse:
        return ChatResponse.from_text(self.text, self.provider, self.model)


@dataclass
class GroqNativeResponse:
    data: Any


@dataclass
class GeminiNativeResponse:
    data: Any


NativeResponse = Union[GroqNativeResponse, GeminiNativeResponse]


def _usable(messages: List[ChatMessage]) -> List[ChatMessage]:
    """Drop entries that lack a role or content."""
    return [m for m in messages if m.role and m.content]


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


def to_groq_payload(
    request: ChatRequest, model: str, default_temperature: Optional[float] = 0.7
) -> Dict[str, Any]:
    """Build the body for Groq's ``/chat/completions`` endpoint."""
    payload: Dict[str, Any] = {
        "model": model,
        "messages": [
            {"role": m.role, "content": m.content} for m in _usable(request.messages)
        ],
        "stream": False,
    }

    temperature = request.temperature
    if temperature is None:
        temperature = default_temperature
    if _is_number(temperature):
        payload["temperature"] = temperature

    if _is_number(request.max_tokens):
        payload["max_tokens"] = request.max_tokens

    return payload


def to_gemini_contents(messages: List[ChatMessage]) -> List[Dict[str, Any]]:
    """Map OpenAI-style messages to Gemini ``contents`` turns."""
    system_prefix = ""
    contents: List[Dict[str, Any]] = []

    for message in _usable(messages):
        if message.role == "system":
            if system_prefix:
                system_prefix += "\n"
            system_prefix += message.content
            continue

        role = "model" if message.role == "assistant" else "user"
        text = message.content
        if system_prefix and role == "user":
            text = "{}\n\n{}".format(system_prefix, text)
            system_prefix = ""
        contents.append({"role": role, "parts": [{"text": text}]})

    # No user turn followed the system messages.
    if system_prefix:
        contents.append({"role": "user", "parts": [{"text": system_prefix}]})

    return contents


def to_gemini_payload(request: ChatRequest) -> Dict[str, Any]:
    """Build the body for Gemini's ``:generateContent`` endpoint."""
    generation_config: Dict[str, Any] = {}
    if _is_number(request.temperature):
        generation_config["temperature"] = request.temperature
    if _is_number(request.max_tokens):
        generation_config["maxOutputTokens"] = request.max_tokens

    return {
        "contents": to_gemini_contents(request.messages),
        "generationConfig": generation_config,
    }


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


def _first(value: Any) -> Any:
    if isinstance(value, list) and value:
        return value[0]
    return None


def _get(value: Any, key: str) -> Any:
    if isinstance(value, dict):
        return value.get(key)
    return None


def extract_text(native: NativeResponse) -> Optional[str]:
    """Pull the answer text out of a native response, or None."""
    if isinstance(native, GroqNativeResponse):
        choice = _first(_get(native.data, "choices"))
        text = _get(_get(choice, "message"), "content")
        if isinstance(text, str) and text.strip():
            return text
        return None

    candidate = _first(_get(native.data, "candidates"))
    parts = _get(_get(candidate, "content"), "parts")
    if not isinstance(parts, list):
        return None
    texts = [_get(p, "text") for p in parts]
    joined = "\n".join(t for t in texts if isinstance(t, str) and t).strip()
    return joined or None


def normalize(native: NativeResponse, model: str) -> NormalizedResponse:
    """Convert a native response into a NormalizedResponse.

    Raises:
        EmptyResponse: If no non-blank text could be extracted.
    """
    provider = GROQ if isinstance(native, GroqNativeResponse) else GEMINI
    text = extract_text(native)
    if text is None:
        raise EmptyResponse(provider, "no text in response from {}".format(model))
    return NormalizedResponse(text=text, provider=provider, model=model)
