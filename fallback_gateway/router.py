"""Routing: choose which provider answers a chat request.

An explicit provider is called once and its failure is surfaced. In auto
mode Groq is tried first; if it fails and fallback is enabled and Gemini
has a credential, Gemini is tried next.
"""

import logging
from dataclasses import dataclass

from fallback_gateway.errors import ProviderError
from fallback_gateway.models import ChatRequest, Provider
from fallback_gateway.provider import BaseProvider
from fallback_gateway.translator import NormalizedResponse

_logger = logging.getLogger("gateway")


@dataclass
class RouteResult:
    """The answer and how it was obtained."""

    response: NormalizedResponse
    fallback_used: bool = False


class RoutingError(Exception):
    """Raised when no provider produced an answer."""

    def __init__(self, status_code: int, tag: str, detail: str) -> None:
        self.status_code = status_code
        self.tag = tag
        self.detail = detail
        super().__init__("{}:{}".format(tag, detail))


async def _call_explicit(provider: BaseProvider, request: ChatRequest) -> RouteResult:
    try:
        response = await provider.call(request, request.preset)
    except ProviderError as exc:
        raise RoutingError(502, "{}_failed".format(provider.name), str(exc)) from exc
    return RouteResult(response=response)


async def route_chat(
    request: ChatRequest, primary: BaseProvider, secondary: BaseProvider
) -> RouteResult:
    """Route a request to Groq, Gemini, or Groq-then-Gemini.

    Args:
        request: The validated chat request.
        primary: The Groq client (first choice in auto mode).
        secondary: The Gemini client (fallback in auto mode).

    Returns:
        A RouteResult holding the normalized answer.

    Raises:
        RoutingError: With status 502 when a single provider failed, or 500
            when both providers failed.
    """
    if request.provider == Provider.GROQ:
        return await _call_explicit(primary, request)
    if request.provider == Provider.GEMINI:
        return await _call_explicit(secondary, request)

    try:
        return RouteResult(response=await primary.call(request, request.preset))
    except ProviderError as primary_exc:
        if not (request.enable_fallback and secondary.configured):
            raise RoutingError(
                502, "{}_failed_no_fallback".format(primary.name), str(primary_exc)
            ) from primary_exc

        _logger.warning(
            "%s failed (%s); falling back to %s",
            primary.name,
            primary_exc,
            secondary.name,
        )
        try:
            response = await secondary.call(request, request.preset)
        except ProviderError as secondary_exc:
            raise RoutingError(
                500,
                "both_providers_failed",
                "{}={};{}={}".format(
                    primary.name, primary_exc, secondary.name, secondary_exc
                ),
            ) from secondary_exc

    return RouteResult(response=response, fallback_used=True)
