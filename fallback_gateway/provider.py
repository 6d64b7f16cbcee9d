"""Provider clients for Groq and Gemini.

Each client resolves a concrete model against the provider's live catalog,
translates the request into the native shape, performs the HTTP call and
normalizes the answer. When the upstream reports the model as gone, the
client re-resolves (ignoring the failed id) and retries exactly once.
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List
from urllib.parse import quote

import httpx

from fallback_gateway.config import GEMINI, GROQ, ProviderConfig
from fallback_gateway.errors import (
    ConfigError,
    DecommissionedModel,
    EmptyResponse,
    TransportError,
)
from fallback_gateway.models import ChatRequest, Preset
from fallback_gateway.resolver import (
    parse_gemini_catalog,
    parse_groq_catalog,
    resolve_model,
)
from fallback_gateway.translator import (
    GeminiNativeResponse,
    GroqNativeResponse,
    NativeResponse,
    NormalizedResponse,
    normalize,
    to_gemini_payload,
    to_groq_payload,
)

_logger = logging.getLogger("gateway")

_DECOMMISSION_PATTERN = re.compile(
    r"decommission|not[ _-]?found|does not exist|no longer (?:supported|available)",
    re.IGNORECASE,
)


def is_decommissioned(status_code: int, body_text: str) -> bool:
    """Classify an error response as "model no longer served"."""
    if status_code == 404:
        return True
    if status_code == 400 and _DECOMMISSION_PATTERN.search(body_text or ""):
        return True
    return False


class BaseProvider(ABC):
    """Shared resolve, call and retry logic for one upstream."""

    name: str

    def __init__(self, config: ProviderConfig, client: httpx.AsyncClient) -> None:
        self.config = config
        self.client = client

    @property
    def configured(self) -> bool:
        return self.config.api_key is not None

    @abstractmethod
    async def _fetch_catalog(self, api_key: str) -> httpx.Response:
        """Issue the model-listing request."""

    @abstractmethod
    def _parse_catalog(self, data: Any) -> List[str]:
        """Extract model ids from a model-listing body."""

    @abstractmethod
    async def _send(
        self, model: str, request: ChatRequest, api_key: str
    ) -> httpx.Response:
        """Issue the chat-completion request."""

    @abstractmethod
    def _native(self, data: Any) -> NativeResponse:
        """Wrap a parsed body as this provider's native response."""

    async def list_models(self) -> List[str]:
        """Return the live model catalog, or an empty list on any failure."""
        api_key = self.config.api_key
        if not api_key:
            return []
        try:
            resp = await self._fetch_catalog(api_key)
            resp.raise_for_status()
            return self._parse_catalog(resp.json())
        except (httpx.HTTPError, ValueError) as exc:
            _logger.warning("%s model catalog unavailable: %s", self.name, exc)
            return []

    async def _attempt(
        self, model: str, request: ChatRequest, api_key: str
    ) -> NormalizedResponse:
        try:
            resp = await self._send(model, request, api_key)
        except httpx.HTTPError as exc:
            raise TransportError(
                self.name, "{}: {}".format(type(exc).__name__, exc)
            ) from exc

        if not resp.is_success:
            if is_decommissioned(resp.status_code, resp.text):
                raise DecommissionedModel(self.name, model, resp.status_code)
            raise TransportError(
                self.name, "http_{}".format(resp.status_code), resp.status_code
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise EmptyResponse(
                self.name, "unparsable body from {}".format(model)
            ) from exc

        return normalize(self._native(data), model)

    async def call(self, request: ChatRequest, preset: Preset) -> NormalizedResponse:
        """Resolve a model and call it, retrying once on decommission.

        Raises:
            ConfigError: The provider credential is not configured.
            TransportError: The upstream failed or could not be reached.
            EmptyResponse: The upstream answered without usable text.
        """
        api_key = self.config.api_key
        if not api_key:
            raise ConfigError(
                self.name, "{} is not set".format(self.config.api_key_env)
            )

        priority = self.config.priority_for(preset.value)
        model = await resolve_model(
            self.list_models, priority, self.config.default_model, request.model
        )

        try:
            return await self._attempt(model, request, api_key)
        except DecommissionedModel as exc:
            _logger.warning(
                "%s model %s unavailable (HTTP %s); re-resolving",
                self.name,
                model,
                exc.status_code,
            )

        retry_model = await resolve_model(
            self.list_models, priority, self.config.default_model, exclude=[model]
        )
        try:
            result = await self._attempt(retry_model, request, api_key)
        except DecommissionedModel as exc:
            raise TransportError(self.name, exc.detail, exc.status_code) from exc
        result.attempts = 2
        return result


class GroqProvider(BaseProvider):
    """Groq's OpenAI-compatible chat-completions API."""

    name = GROQ

    def _headers(self, api_key: str) -> Dict[str, str]:
        return {
            "Authorization": "Bearer {}".format(api_key),
            "Content-Type": "application/json",
        }

    async def _fetch_catalog(self, api_key: str) -> httpx.Response:
        url = "{}/models".format(self.config.base_url.rstrip("/"))
        return await self.client.get(url, headers=self._headers(api_key))

    def _parse_catalog(self, data: Any) -> List[str]:
        return parse_groq_catalog(data)

    async def _send(
        self, model: str, request: ChatRequest, api_key: str
    ) -> httpx.Response:
        url = "{}/chat/completions".format(self.config.base_url.rstrip("/"))
        payload = to_groq_payload(request, model, self.config.default_temperature)
        return await self.client.post(url, json=payload, headers=self._headers(api_key))

    def _native(self, data: Any) -> NativeResponse:
        return GroqNativeResponse(data)


class GeminiProvider(BaseProvider):
    """Google's Gemini ``generateContent`` API."""

    name = GEMINI

    async def _fetch_catalog(self, api_key: str) -> httpx.Response:
        url = "{}/models".format(self.config.base_url.rstrip("/"))
        return await self.client.get(
            url, params={"key": api_key, "pageSize": 1000}
        )

    def _parse_catalog(self, data: Any) -> List[str]:
        return parse_gemini_catalog(data)

    async def _send(
        self, model: str, request: ChatRequest, api_key: str
    ) -> httpx.Response:
        url = "{}/models/{}:generateContent".format(
            self.config.base_url.rstrip("/"), quote(model, safe="")
        )
        return await self.client.post(
            url,
            json=to_gemini_payload(request),
            params={"key": api_key},
            headers={"Content-Type": "application/json"},
        )

    def _native(self, data: Any) -> NativeResponse:
        return GeminiNativeResponse(data)
