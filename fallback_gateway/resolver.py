"""Model resolution against a provider's live catalog.

Resolution always terminates with some model id: an explicit request the
catalog confirms, else the first priority entry the catalog offers, else
the first catalog entry, else the provider's hardcoded default.
"""

import logging
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Sequence

_logger = logging.getLogger("gateway")

CatalogFetcher = Callable[[], Awaitable[List[str]]]


def parse_groq_catalog(data: Any) -> List[str]:
    """Extract model ids from Groq's ``GET /models`` body."""
    if not isinstance(data, dict) or not isinstance(data.get("data"), list):
        return []
    return [
        item["id"]
        for item in data["data"]
        if isinstance(item, dict) and isinstance(item.get("id"), str)
    ]


def parse_gemini_catalog(data: Any) -> List[str]:
    """Extract generateContent-capable model ids from Gemini's ``GET /models``.

    Names arrive as ``models/<id>``; the prefix is stripped.
    """
    if not isinstance(data, dict) or not isinstance(data.get("models"), list):
        return []
    ids: List[str] = []
    for item in data["models"]:
        if not isinstance(item, dict) or not isinstance(item.get("name"), str):
            continue
        methods = item.get("supportedGenerationMethods")
        if methods and "generateContent" not in methods:
            continue
        name = item["name"]
        if name.startswith("models/"):
            name = name[len("models/"):]
        ids.append(name)
    return ids


def select_model(
    priority: Sequence[str],
    catalog: Sequence[str],
    default_model: str,
    requested: Optional[str] = None,
) -> str:
    """Pick a model id from a priority list and a live catalog.

    Pure and deterministic: no network access, no side effects.
    """
    available = set(catalog)
    if requested and requested in available:
        return requested
    for model in priority:
        if model in available:
            return model
    if catalog:
        return catalog[0]
    return default_model


async def resolve_model(
    fetch_catalog: CatalogFetcher,
    priority: Sequence[str],
    default_model: str,
    requested: Optional[str] = None,
    exclude: Iterable[str] = (),
) -> str:
    """Fetch the live catalog and select a model.

    Args:
        fetch_catalog: Coroutine function returning the provider's model ids.
            It is expected to degrade to an empty list on failure.
        priority: Preset-specific priority list.
        default_model: Last-resort id when the catalog is empty.
        requested: Explicit model id from the client, if any.
        exclude: Model ids to ignore, e.g. one that was just decommissioned.

    Returns:
        The selected model id.
    """
    catalog = await fetch_catalog()
    excluded = set(exclude)
    if excluded:
        catalog = [m for m in catalog if m not in excluded]
        priority = [m for m in priority if m not in excluded]
    model = select_model(priority, catalog, default_model, requested)
    _logger.info(
        "Resolved model %s (requested=%s, catalog=%d)", model, requested, len(catalog)
    )
    return model
