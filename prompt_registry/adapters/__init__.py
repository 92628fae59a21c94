"""Source adapters.

Public Interface:
    - SourceAdapter: Capability contract every adapter implements
    - resolve_adapter: Build the adapter for a source, dispatched on source.type
    - ADAPTER_TYPES: Source type to adapter class
"""

from __future__ import annotations

from ..errors import ConfigurationError
from ..models import RegistrySource
from .apm import ApmAdapter
from .apm import LocalApmAdapter
from .awesome_copilot import AwesomeCopilotAdapter
from .awesome_copilot import LocalAwesomeCopilotAdapter
from .base import DEFAULT_CACHE_TTL
from .base import SourceAdapter
from .github import GitHubAdapter
from .http import HttpAdapter
from .local import LocalAdapter
from .skills import LocalSkillsAdapter
from .skills import SkillsAdapter

ADAPTER_TYPES: dict[str, type[SourceAdapter]] = {
    adapter.type: adapter
    for adapter in (
        GitHubAdapter,
        HttpAdapter,
        LocalAdapter,
        AwesomeCopilotAdapter,
        LocalAwesomeCopilotAdapter,
        SkillsAdapter,
        LocalSkillsAdapter,
        ApmAdapter,
        LocalApmAdapter,
    )
}


def resolve_adapter(source: RegistrySource, cache_ttl: float = DEFAULT_CACHE_TTL) -> SourceAdapter:
    """Construct the adapter for a source.

    Raises:
        ConfigurationError: Unknown type, or a location the adapter rejects
    """
    adapter_class = ADAPTER_TYPES.get(source.type)
    if adapter_class is None:
        raise ConfigurationError(f"Unsupported source type: {source.type}")
    return adapter_class(source, cache_ttl=cache_ttl)


__all__ = [
    "ADAPTER_TYPES",
    "ApmAdapter",
    "AwesomeCopilotAdapter",
    "GitHubAdapter",
    "HttpAdapter",
    "LocalAdapter",
    "LocalApmAdapter",
    "LocalAwesomeCopilotAdapter",
    "LocalSkillsAdapter",
    "SkillsAdapter",
    "SourceAdapter",
    "resolve_adapter",
]
