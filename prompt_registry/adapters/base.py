"""Source adapter contract.

Contract:
- Inputs: A RegistrySource record (validated at construction)
- Outputs: Catalog bundles, source metadata, in-memory bundle archives
- Side Effects: Network or filesystem reads; in-memory catalog cache

Every adapter validates its location in __init__ and raises ConfigurationError
when the location does not match the shape its type expects. validate() never
raises; it always returns a SourceValidationResult.
"""

from __future__ import annotations

import logging
import re
import time
import urllib.parse
from abc import ABC
from abc import abstractmethod
from pathlib import Path
from typing import Any
from typing import ClassVar

import yaml

from ..errors import ConfigurationError
from ..models import Bundle
from ..models import BundleArchive
from ..models import RegistrySource
from ..models import SourceMetadata
from ..models import SourceValidationResult

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL = 300.0
DEPLOYMENT_MANIFEST = "deployment-manifest.yml"

ENVIRONMENT_TAGS: dict[str, str] = {
    "azure": "cloud",
    "aws": "cloud",
    "gcp": "cloud",
    "frontend": "web",
    "backend": "server",
    "database": "data",
    "devops": "infrastructure",
    "testing": "testing",
}


class SourceAdapter(ABC):
    """Uniform capability contract over one kind of bundle provider."""

    type: ClassVar[str]

    def __init__(self, source: RegistrySource, cache_ttl: float = DEFAULT_CACHE_TTL) -> None:
        self.source = source
        self.cache_ttl = cache_ttl
        self._cache: dict[str, tuple[float, list[Bundle]]] = {}

    @property
    def config(self) -> dict[str, Any]:
        return self.source.config or {}

    @abstractmethod
    async def fetch_metadata(self) -> SourceMetadata:
        """Summarize the source (name, description, bundle count)."""

    @abstractmethod
    async def fetch_bundles(self) -> list[Bundle]:
        """List every bundle the source exposes."""

    @abstractmethod
    async def validate(self) -> SourceValidationResult:
        """Check the source is reachable and well formed; never raises."""

    @abstractmethod
    def get_download_url(self, bundle_id: str, version: str | None = None) -> str:
        """Deterministic payload URL for a bundle."""

    @abstractmethod
    def get_manifest_url(self, bundle_id: str, version: str | None = None) -> str:
        """Deterministic manifest URL for a bundle."""

    @abstractmethod
    async def download_bundle(self, bundle: Bundle) -> BundleArchive:
        """Resolve a bundle into an in-memory archive with a deployment manifest."""

    # --- Catalog cache ---

    def _cache_key(self) -> str:
        return self.source.url

    def _get_cached(self) -> list[Bundle] | None:
        cached = self._cache.get(self._cache_key())
        if cached is None:
            return None
        stored_at, bundles = cached
        if time.monotonic() - stored_at >= self.cache_ttl:
            del self._cache[self._cache_key()]
            return None
        logger.debug(f"Using cached bundles for source {self.source.id}")
        return list(bundles)

    def _set_cached(self, bundles: list[Bundle]) -> None:
        self._cache[self._cache_key()] = (time.monotonic(), list(bundles))

    def invalidate_cache(self) -> None:
        self._cache.clear()


def resolve_local_path(url: str) -> Path:
    """Turn an absolute path or file:// URL into a Path.

    Raises:
        ConfigurationError: For any other scheme or a relative path
    """
    if url.startswith("file://"):
        path = urllib.parse.unquote(urllib.parse.urlparse(url).path)
        return Path(path)
    if re.match(r"^[a-zA-Z][a-zA-Z0-9+.-]*://", url) or not Path(url).is_absolute():
        raise ConfigurationError(f"Invalid local path: {url}")
    return Path(url)


def to_file_url(path: Path | str) -> str:
    return Path(path).absolute().as_uri()


def infer_environments(tags: list[str]) -> list[str]:
    """Coarse environment tags implied by item tags.

    Example:
        >>> infer_environments(["azure", "testing"])
        ['cloud', 'testing']
    """
    environments: list[str] = []
    for tag in tags:
        environment = ENVIRONMENT_TAGS.get(tag.lower())
        if environment and environment not in environments:
            environments.append(environment)
    return environments or ["general"]


def format_size(num_bytes: int) -> str:
    """Human readable size with two decimals (B, KB, MB, GB)."""
    size = float(num_bytes)
    units = ["B", "KB", "MB", "GB"]
    unit_index = 0
    while size >= 1024 and unit_index < len(units) - 1:
        size /= 1024
        unit_index += 1
    return f"{size:.2f} {units[unit_index]}"


def title_case(value: str) -> str:
    return " ".join(word[:1].upper() + word[1:] for word in value.replace("-", " ").replace("_", " ").split())


def build_deployment_manifest(bundle: Bundle, prompts: list[dict[str, Any]]) -> str:
    """Render deployment-manifest.yml for a bundle archive."""
    manifest = {
        "id": bundle.id,
        "name": bundle.name,
        "version": bundle.version,
        "description": bundle.description,
        "author": bundle.author,
        "repository": bundle.repository or "",
        "license": bundle.license,
        "tags": list(bundle.tags),
        "prompts": prompts,
    }
    return yaml.dump(manifest, default_flow_style=False, sort_keys=False, allow_unicode=True)


def validation_failure(message: str) -> SourceValidationResult:
    return SourceValidationResult(valid=False, errors=[message], warnings=[], bundles_found=0)
