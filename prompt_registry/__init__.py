"""Prompt Registry library.

Manages the lifecycle of prompt bundles: discovering them through source
adapters, installing them into mutually exclusive scopes, tracking them in a
repository lockfile, and activating hub profiles.

Public Interface:
    Modules:
    - adapters: Source adapters and resolve_adapter factory
    - services: Lockfile, scope conflicts, registry, hubs, sync history
    - storage: Path resolution and JSON/YAML persistence
    - config: Settings loading
    - models: Shared data structures
"""

__version__ = "1.0.0"

from .errors import ConfigurationError  # noqa: E402
from .errors import NotFoundError  # noqa: E402
from .errors import PromptRegistryError  # noqa: E402

__all__ = [
    "ConfigurationError",
    "NotFoundError",
    "PromptRegistryError",
    "__version__",
]
