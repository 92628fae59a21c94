"""Bundle and source models shared by adapters and the registry manager."""

from __future__ import annotations

import io
import re
import zipfile
from dataclasses import dataclass
from dataclasses import field
from typing import Any
from typing import Literal
from typing import get_args

from pydantic import ConfigDict
from pydantic import Field
from pydantic import field_validator
from pydantic.alias_generators import to_camel

from .base import CamelCaseModel

SourceType = Literal[
    "github",
    "http",
    "local",
    "awesome-copilot",
    "local-awesome-copilot",
    "skills",
    "local-skills",
    "apm",
    "local-apm",
]

SOURCE_TYPES: tuple[str, ...] = get_args(SourceType)

# A bundle id is a single path segment: no separators, no leading dot
BUNDLE_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def is_valid_bundle_id(bundle_id: str) -> bool:
    return bool(BUNDLE_ID_PATTERN.match(bundle_id))


class RegistrySource(CamelCaseModel):
    """A configured provider of bundles."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str = Field(description="Unique source identifier")
    name: str = Field(default="", description="Display name")
    type: SourceType = Field(description="Provider type")
    url: str = Field(description="Location of the source")
    enabled: bool = Field(default=True, description="Whether the source participates in searches")
    priority: int = Field(default=0, description="Higher priority wins bundle id collisions")
    token: str | None = Field(default=None, description="Access token for private sources")
    config: dict[str, Any] = Field(default_factory=dict, description="Per-type configuration")
    hub_id: str | None = Field(default=None, description="Hub that contributed this source")


class BundleDependency(CamelCaseModel):
    bundle_id: str
    version_range: str = "*"
    optional: bool = False


class Bundle(CamelCaseModel):
    """Catalog view of a bundle as exposed by a source."""

    id: str = Field(description="Stable bundle slug")
    name: str = Field(description="Display name")
    version: str = Field(default="1.0.0", description="Semver version")
    description: str = ""
    author: str = ""
    source_id: str = Field(description="Owning source id")
    environments: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    last_updated: str = ""
    size: str = ""
    dependencies: list[BundleDependency] = Field(default_factory=list)
    license: str = ""
    download_url: str = ""
    manifest_url: str = ""
    repository: str | None = None
    breakdown: dict[str, int] | None = Field(default=None, description="Item counts by content type")
    manifest_file: str | None = Field(
        default=None, description="Adapter-internal pointer to the manifest this bundle was parsed from"
    )

    @field_validator("id")
    @classmethod
    def check_id(cls, v: str) -> str:
        if not is_valid_bundle_id(v):
            raise ValueError(f"Invalid bundle id: {v!r}")
        return v


class SourceMetadata(CamelCaseModel):
    name: str
    description: str = ""
    bundle_count: int = 0
    last_updated: str = ""
    version: str = "1.0.0"


class SourceValidationResult(CamelCaseModel):
    """Structured outcome of validating a source; adapters never raise for this."""

    valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    bundles_found: int = 0


@dataclass
class ArchiveEntry:
    path: str
    content: bytes


@dataclass
class BundleArchive:
    """In-memory bundle archive: ordered entries of relative path and bytes."""

    entries: list[ArchiveEntry] = field(default_factory=list)

    def add(self, path: str, content: bytes | str) -> None:
        if isinstance(content, str):
            content = content.encode("utf-8")
        path = path.replace("\\", "/").lstrip("/")
        if not path or ".." in path.split("/"):
            raise ValueError(f"Invalid archive entry path: {path!r}")
        self.entries.append(ArchiveEntry(path=path, content=content))

    def get(self, path: str) -> bytes | None:
        for entry in self.entries:
            if entry.path == path:
                return entry.content
        return None

    def paths(self) -> list[str]:
        return [entry.path for entry in self.entries]

    def __len__(self) -> int:
        return len(self.entries)

    def to_zip(self) -> bytes:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
            for entry in self.entries:
                zf.writestr(entry.path, entry.content)
        return buffer.getvalue()

    @classmethod
    def from_zip(cls, data: bytes) -> BundleArchive:
        archive = cls()
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            for info in zf.infolist():
                if info.is_dir():
                    continue
                archive.add(info.filename, zf.read(info))
        return archive
