"""Hub, profile and activation state models."""

from __future__ import annotations

from typing import Any
from typing import Literal

from pydantic import ConfigDict
from pydantic import Field
from pydantic.alias_generators import to_camel

from .base import CamelCaseModel
from .bundles import RegistrySource

HubReferenceType = Literal["github", "url", "local"]


class HubReference(CamelCaseModel):
    """Where a hub document is loaded from."""

    type: HubReferenceType
    location: str
    ref: str | None = Field(default=None, description="Branch, tag or commit for github hubs")
    auto_sync: bool | None = None


class HubMetadata(CamelCaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    name: str
    description: str
    maintainer: str = ""
    updated_at: str | None = None
    checksum: str | None = None


class ProfileBundle(CamelCaseModel):
    """Reference from a profile to a bundle in one of the hub's sources."""

    id: str
    version: str = "latest"
    source: str
    required: bool = True


class HubProfile(CamelCaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str
    name: str
    description: str = ""
    icon: str | None = None
    active: bool = False
    created_at: str | None = None
    updated_at: str | None = None
    bundles: list[ProfileBundle] = Field(default_factory=list)


class HubConfig(CamelCaseModel):
    """A hub document: sources plus profiles."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    version: str
    metadata: HubMetadata
    sources: list[RegistrySource] = Field(default_factory=list)
    profiles: list[HubProfile] = Field(default_factory=list)
    configuration: dict[str, Any] | None = None


class HubStorageMetadata(CamelCaseModel):
    """Sidecar metadata stored next to each hub document."""

    reference: HubReference
    last_modified: str
    size: int = 0


class HubInfoMetadata(CamelCaseModel):
    name: str
    description: str
    last_modified: str
    size: int = 0


class HubInfo(CamelCaseModel):
    id: str
    config: HubConfig
    reference: HubReference
    metadata: HubInfoMetadata


class HubProfileWithHub(CamelCaseModel):
    hub_id: str
    hub_name: str
    profile: HubProfile


class ProfileActivationState(CamelCaseModel):
    """Bundles synced for one active profile in one hub."""

    hub_id: str
    profile_id: str
    activated_at: str
    synced_bundles: list[str] = Field(default_factory=list)
    synced_bundle_versions: dict[str, str] = Field(default_factory=dict)


class ProfileActivationResult(CamelCaseModel):
    success: bool
    hub_id: str
    profile_id: str
    resolved_bundles: list[ProfileBundle] = Field(default_factory=list)
    failed_bundles: list[str] = Field(default_factory=list)
    error: str | None = None


class ProfileDeactivationResult(CamelCaseModel):
    success: bool
    hub_id: str
    profile_id: str
    removed_bundles: list[str] = Field(default_factory=list)
    error: str | None = None


class HubSummary(CamelCaseModel):
    """One row of HubManager.list_hubs."""

    id: str
    name: str
    description: str = ""
    reference: HubReference


class HubValidationResult(CamelCaseModel):
    valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
