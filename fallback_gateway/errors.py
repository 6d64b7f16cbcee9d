"""Provider error taxonomy.

Every failure raised by a provider client is tagged with the provider
name and one of a small set of stable tags, so the orchestrator can
decide whether to retry, fall back, or surface the failure.
"""

from typing import Optional


class ProviderError(Exception):
    """Base class for failures of a single provider call."""

    tag = "provider_error"

    def __init__(self, provider: str, detail: str) -> None:
        self.provider = provider
        self.detail = detail
        super().__init__("{}:{}".format(self.tag, detail))


class ConfigError(ProviderError):
    """The provider's credential is not configured."""

    tag = "config_error"


class TransportError(ProviderError):
    """Upstream returned a non-success status or could not be reached."""

    tag = "transport_error"

    def __init__(
        self, provider: str, detail: str, status_code: Optional[int] = None
    ) -> None:
        self.status_code = status_code
        super().__init__(provider, detail)


class DecommissionedModel(TransportError):
    """Upstream no longer serves the requested model."""

    tag = "decommissioned_model"

    def __init__(self, provider: str, model: str, status_code: int) -> None:
        self.model = model
        super().__init__(
            provider, "{} http_{}".format(model, status_code), status_code
        )


class EmptyResponse(ProviderError):
    """Upstream answered, but the answer carried no usable text."""

    tag = "empty_response"
