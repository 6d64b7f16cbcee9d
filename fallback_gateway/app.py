"""FastAPI application for the fallback chat gateway.

Provides a /v1/chat endpoint that rate-limits the caller, validates the
request, routes it to Groq and/or Gemini, and returns an OpenAI-style
envelope; and a /health endpoint reporting store and credential status.

Request flow:
1. Rate limit by X-Client-Id BEFORE reading the body
2. Validate the body into a ChatRequest
3. Route: explicit provider, or Groq with Gemini fallback
4. Return the normalized envelope or a tagged JSON error
"""

import os
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional, Tuple

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.types import ASGIApp

from fallback_gateway.config import GatewayConfig, load_config
from fallback_gateway.kv import KeyValueStore, build_store
from fallback_gateway.limiter import ANONYMOUS_CLIENT, RateLimitExceeded, RateLimiter
from fallback_gateway.models import ChatRequest, ErrorResponse, HealthResponse
from fallback_gateway.provider import GeminiProvider, GroqProvider
from fallback_gateway.router import RoutingError, route_chat
from fallback_gateway.telemetry import log_request, logger, setup_logging

CONFIG_PATH = os.getenv("GATEWAY_CONFIG", "config/example.config.json")

_config: Optional[GatewayConfig] = None
_store: Optional[KeyValueStore] = None
_limiter: Optional[RateLimiter] = None
_http_client: Optional[httpx.AsyncClient] = None


def _load_config_or_default(path: str) -> GatewayConfig:
    """Load the config file, or run on defaults when there is none."""
    if Path(path).exists():
        return load_config(path)
    cfg = GatewayConfig()
    cfg.kv_url = os.getenv("GATEWAY_KV_URL") or cfg.kv_url
    return cfg


def get_config() -> GatewayConfig:
    """Return the loaded gateway configuration (lazy-init)."""
    global _config
    if _config is None:
        _config = _load_config_or_default(CONFIG_PATH)
    return _config


def get_store() -> KeyValueStore:
    """Return the key-value store (lazy-init from config)."""
    global _store
    if _store is None:
        _store = build_store(get_config().kv_url)
    return _store


def get_limiter() -> RateLimiter:
    """Return the rate limiter (lazy-init from config)."""
    global _limiter
    if _limiter is None:
        cfg = get_config()
        _limiter = RateLimiter(
            store=get_store(),
            requests_per_window=cfg.rate_limit.requests_per_window,
            window_seconds=cfg.rate_limit.window_seconds,
            ttl_seconds=cfg.rate_limit.ttl_seconds,
        )
    return _limiter


def get_http_client() -> httpx.AsyncClient:
    """Return the shared outbound HTTP client (lazy-init from config)."""
    global _http_client
    if _http_client is None:
        _http_client = httpx.AsyncClient(
            timeout=get_config().upstream_timeout_seconds
        )
    return _http_client


def get_providers() -> Tuple[GroqProvider, GeminiProvider]:
    """Return the Groq and Gemini clients bound to the shared HTTP client."""
    cfg = get_config()
    client = get_http_client()
    return GroqProvider(cfg.groq, client), GeminiProvider(cfg.gemini, client)


@asynccontextmanager
async def lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Initialize config, logging, store and HTTP client; close them on shutdown."""
    global _http_client, _store, _limiter
    cfg = get_config()
    setup_logging(cfg.log_file, cfg.log_level)
    get_limiter()
    get_http_client()
    yield
    if _http_client is not None:
        await _http_client.aclose()
        _http_client = None
    if _store is not None:
        await _store.close()
        _store = None
        _limiter = None


class ConfiguredCORSMiddleware(CORSMiddleware):
    """CORS middleware whose origins come from the gateway configuration.

    Starlette instantiates middleware when the app first handles a
    request, so the configuration is read once, through get_config().
    """

    def __init__(self, app: ASGIApp) -> None:
        super().__init__(
            app,
            allow_origins=get_config().cors_origins,
            allow_methods=["POST", "GET", "OPTIONS"],
            allow_headers=["Content-Type", "X-Client-Id"],
        )


app = FastAPI(title="Fallback Chat Gateway", version="0.1.0", lifespan=lifespan)

app.add_middleware(ConfiguredCORSMiddleware)


def _error_response(status: int, tag: str, detail: Optional[str] = None) -> JSONResponse:
    """Build a consistent ``{"error": "<tag>:<detail>"}`` response."""
    message = tag if detail is None else "{}:{}".format(tag, detail)
    body = ErrorResponse(error=message)
    return JSONResponse(status_code=status, content=body.model_dump())


def _describe_validation_error(exc: ValidationError) -> str:
    return "; ".join(
        "{}: {}".format(".".join(str(p) for p in err["loc"]) or "body", err["msg"])
        for err in exc.errors()
    )


async def _handle_chat(request: Request, client_id: str, request_id: str) -> JSONResponse:
    # --- Rate limiting ---
    try:
        await get_limiter().check(client_id)
    except RateLimitExceeded as exc:
        log_request(
            client_id=client_id,
            requested_provider="unknown",
            provider=None,
            outcome="rate_limited",
            error=exc.detail,
            request_id=request_id,
        )
        return _error_response(429, "rate_limited")

    # --- Body validation ---
    try:
        raw = await request.json()
    except ValueError:
        log_request(
            client_id=client_id,
            requested_provider="unknown",
            provider=None,
            outcome="server_error",
            error="invalid_json",
            request_id=request_id,
        )
        return _error_response(500, "server_error", "invalid_json")

    try:
        chat_request = ChatRequest.model_validate(raw)
    except ValidationError as exc:
        detail = _describe_validation_error(exc)
        log_request(
            client_id=client_id,
            requested_provider="unknown",
            provider=None,
            outcome="invalid_request",
            error=detail,
            request_id=request_id,
        )
        return _error_response(400, "invalid_request", detail)

    # --- Routing ---
    primary, secondary = get_providers()
    try:
        result = await route_chat(chat_request, primary, secondary)
    except RoutingError as exc:
        log_request(
            client_id=client_id,
            requested_provider=chat_request.provider.value,
            provider=None,
            outcome="upstream_error",
            error=str(exc),
            request_id=request_id,
        )
        return _error_response(exc.status_code, exc.tag, exc.detail)

    answer = result.response
    log_request(
        client_id=client_id,
        requested_provider=chat_request.provider.value,
        provider=answer.provider,
        outcome="success",
        model=answer.model,
        attempts=answer.attempts,
        fallback_used=result.fallback_used,
        request_id=request_id,
    )
    return JSONResponse(
        status_code=200,
        content=answer.to_envelope().model_dump(exclude_none=True),
        headers={"X-Gateway-Provider": answer.provider},
    )


@app.post("/v1/chat", response_model=None)
async def chat(request: Request) -> JSONResponse:
    """Handle a chat completion request.

    Every failure is returned as structured JSON: 429 when the client is
    over its budget, 400 for an invalid body, 502 when the chosen provider
    failed, and 500 when both providers failed or anything unexpected
    happened.
    """
    request_id = "gw-{}".format(uuid.uuid4().hex[:12])
    client_id = request.headers.get("X-Client-Id") or ANONYMOUS_CLIENT
    try:
        return await _handle_chat(request, client_id, request_id)
    except Exception:
        logger.exception("Unhandled error in request %s", request_id)
        return _error_response(500, "server_error")


@app.get("/health", response_model=None)
async def health(probe: bool = False) -> JSONResponse:
    """Report store reachability and which provider credentials are set.

    With ``probe=true`` each configured provider's model catalog is also
    fetched and its size reported.
    """
    try:
        kv_ok = await get_store().ping()
    except Exception:
        logger.exception("Key-value store ping failed")
        kv_ok = False

    groq, gemini = get_providers()
    report = HealthResponse(
        ok=kv_ok and (groq.configured or gemini.configured),
        kv=kv_ok,
        groq_secret=groq.configured,
        gemini_secret=gemini.configured,
    )
    if probe:
        if groq.configured:
            report.groq_models = len(await groq.list_models())
        if gemini.configured:
            report.gemini_models = len(await gemini.list_models())

    return JSONResponse(status_code=200, content=report.model_dump(exclude_none=True))
