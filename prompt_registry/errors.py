"""Exception types raised across prompt_registry.

Conflicts, drift and validation outcomes are returned as result models.
Exceptions are reserved for configuration mistakes, missing entities and
failed fetches.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models.installed import ScopeConflict
    from .models.lockfile import ModifiedFileInfo


class PromptRegistryError(Exception):
    """Base class for all prompt registry errors."""


class ConfigurationError(PromptRegistryError, ValueError):
    """Raised when a source, hub reference or identifier is malformed."""


class NotFoundError(PromptRegistryError, LookupError):
    """Raised when a hub, profile, bundle or source does not exist."""


class AdapterError(PromptRegistryError):
    """Raised when a source adapter cannot reach or read its backing store."""


class HubValidationError(PromptRegistryError):
    """Raised when a hub document fails validation.

    Attributes:
        errors: Individual validation messages
    """

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        self.errors = errors or []
        if self.errors:
            message = f"{message}: {'; '.join(self.errors)}"
        super().__init__(message)


class ProfileNotActiveError(PromptRegistryError):
    """Raised when an operation needs an active profile."""

    def __init__(self, hub_id: str, profile_id: str) -> None:
        self.hub_id = hub_id
        self.profile_id = profile_id
        super().__init__(f"Profile {profile_id} is not active in hub {hub_id}")


class ScopeConflictError(PromptRegistryError):
    """Raised when installing into a scope another scope already holds."""

    def __init__(self, conflict: ScopeConflict) -> None:
        self.conflict = conflict
        super().__init__(
            f"Bundle {conflict.bundle_id} is already installed at {conflict.existing_scope} scope "
            f"(requested {conflict.target_scope}). Migrate it or uninstall it first."
        )


class LocalModificationsError(PromptRegistryError):
    """Raised when an update would overwrite repository files changed since install.

    Attributes:
        modified_files: The drifted files, as reported by the lockfile
    """

    def __init__(self, bundle_id: str, modified_files: list[ModifiedFileInfo]) -> None:
        self.bundle_id = bundle_id
        self.modified_files = modified_files
        paths = ", ".join(
            f"{info.path} (missing)" if info.modification_type == "missing" else info.path for info in modified_files
        )
        super().__init__(
            f"Bundle {bundle_id} has {len(modified_files)} locally modified file(s): {paths}. "
            "Use force to override them."
        )
