"""Configuration loader for the fallback chat gateway.

Reads a JSON config file containing the two provider definitions (base URL,
credential variable, model priority lists), rate-limit parameters and the
key-value store URL. API keys are resolved from environment variables.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

GROQ = "groq"
GEMINI = "gemini"
PRESETS = ("speed", "quality")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass
class ProviderConfig:
    """Configuration for a single upstream provider."""

    name: str
    base_url: str
    api_key_env: str
    default_model: str
    priority: Dict[str, List[str]] = field(default_factory=dict)
    default_temperature: Optional[float] = None

    @property
    def api_key(self) -> Optional[str]:
        """Resolve the API key from the environment variable."""
        return os.getenv(self.api_key_env) or None

    def priority_for(self, preset: str) -> List[str]:
        """Return the model priority list for a preset (empty if unknown)."""
        return list(self.priority.get(preset, []))


def _default_groq() -> ProviderConfig:
    return ProviderConfig(
        name=GROQ,
        base_url="https://api.groq.com/openai/v1",
        api_key_env="GROQ_API_KEY",
        default_model="llama-3.3-70b-versatile",
        priority={
            "speed": [
                "llama-3.1-8b-instant",
                "llama3-8b-8192",
                "gemma2-9b-it",
            ],
            "quality": [
                "llama-3.3-70b-versatile",
                "llama-3.1-70b-versatile",
                "llama3-70b-8192",
            ],
        },
        default_temperature=0.7,
    )


def _default_gemini() -> ProviderConfig:
    return ProviderConfig(
        name=GEMINI,
        base_url="https://generativelanguage.googleapis.com/v1beta",
        api_key_env="GEMINI_API_KEY",
        default_model="gemini-2.0-flash",
        priority={
            "speed": [
                "gemini-2.0-flash",
                "gemini-1.5-flash",
                "gemini-1.5-flash-8b",
            ],
            "quality": [
                "gemini-2.5-pro",
                "gemini-1.5-pro",
                "gemini-2.0-flash",
            ],
        },
    )


def _default_providers() -> Dict[str, ProviderConfig]:
    return {GROQ: _default_groq(), GEMINI: _default_gemini()}


@dataclass
class RateLimitConfig:
    """Fixed-window rate-limit parameters (per client id)."""

    requests_per_window: int = 60
    window_seconds: int = 600
    ttl_seconds: int = 660


@dataclass
class GatewayConfig:
    """Top-level gateway configuration."""

    providers: Dict[str, ProviderConfig] = field(default_factory=_default_providers)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    kv_url: str = "redis://localhost:6379/0"
    upstream_timeout_seconds: float = 60.0
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    log_file: str = "logs/gateway.log"
    log_level: str = "INFO"

    @property
    def groq(self) -> ProviderConfig:
        return self.providers[GROQ]

    @property
    def gemini(self) -> ProviderConfig:
        return self.providers[GEMINI]


def _load_provider(
    name: str, raw: Dict[str, Any], base: ProviderConfig
) -> ProviderConfig:
    """Overlay a provider section from the file on top of its defaults."""
    if not isinstance(raw, dict):
        raise ValueError("Provider '{}' must be a JSON object.".format(name))

    priority = dict(base.priority)
    for preset, models in raw.get("priority", {}).items():
        if preset not in PRESETS:
            raise ValueError(
                "Provider '{}' has unknown preset '{}'.".format(name, preset)
            )
        if not isinstance(models, list) or not all(
            isinstance(m, str) for m in models
        ):
            raise ValueError(
                "Priority list '{}.{}' must be a list of model ids.".format(
                    name, preset
                )
            )
        priority[preset] = models

    return ProviderConfig(
        name=name,
        base_url=raw.get("base_url", base.base_url),
        api_key_env=raw.get("api_key_env", base.api_key_env),
        default_model=raw.get("default_model", base.default_model),
        priority=priority,
        default_temperature=raw.get("default_temperature", base.default_temperature),
    )


def load_config(path: Union[str, Path]) -> GatewayConfig:
    """Load gateway configuration from a JSON file.

    Sections missing from the file keep their built-in defaults. The
    ``GATEWAY_KV_URL`` environment variable, when set, overrides ``kv_url``.

    Args:
        path: Path to the JSON config file.

    Returns:
        A fully resolved GatewayConfig instance.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If the config file contains invalid data.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        raw: Dict[str, Any] = json.load(f)

    defaults = _default_providers()
    providers: Dict[str, ProviderConfig] = dict(defaults)
    for name, prov in raw.get("providers", {}).items():
        if name not in defaults:
            raise ValueError(
                "Unknown provider '{}'. Supported providers: {}".format(
                    name, ", ".join(sorted(defaults))
                )
            )
        providers[name] = _load_provider(name, prov, defaults[name])

    rate_limit_raw = raw.get("rate_limit", {})
    rate_limit = RateLimitConfig(
        requests_per_window=rate_limit_raw.get("requests_per_window", 60),
        window_seconds=rate_limit_raw.get("window_seconds", 600),
        ttl_seconds=rate_limit_raw.get("ttl_seconds", 660),
    )
    if rate_limit.ttl_seconds < rate_limit.window_seconds:
        raise ValueError("rate_limit.ttl_seconds must be >= window_seconds.")

    log_level = str(raw.get("log_level", "INFO")).upper()
    if log_level not in LOG_LEVELS:
        raise ValueError(
            "log_level must be one of: {}".format(", ".join(LOG_LEVELS))
        )

    return GatewayConfig(
        providers=providers,
        rate_limit=rate_limit,
        kv_url=os.getenv("GATEWAY_KV_URL") or raw.get("kv_url", "redis://localhost:6379/0"),
        upstream_timeout_seconds=float(raw.get("upstream_timeout_seconds", 60.0)),
        cors_origins=raw.get("cors_origins", ["*"]),
        log_file=raw.get("log_file", "logs/gateway.log"),
        log_level=log_level,
    )
