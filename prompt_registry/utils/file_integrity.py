"""File integrity helpers: checksums and existence checks.

Checksums are lowercase sha256 hex digests of raw file bytes.
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterable
from pathlib import Path
from pathlib import PurePosixPath

_CHUNK_SIZE = 64 * 1024


def calculate_file_checksum(file_path: Path | str) -> str:
    """Compute the sha256 hex digest of a file.

    Args:
        file_path: File to hash

    Returns:
        64-character lowercase hex digest

    Raises:
        OSError: If the file cannot be read
    """
    digest = hashlib.sha256()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def calculate_content_checksum(content: bytes | str) -> str:
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()


def calculate_aggregate_checksum(file_checksums: Iterable[tuple[str, str]]) -> str:
    """Combine (path, checksum) pairs into one bundle-level checksum.

    Pairs are sorted by path so the result does not depend on install order.
    """
    digest = hashlib.sha256()
    for path, checksum in sorted(file_checksums):
        digest.update(f"{path}:{checksum}\n".encode())
    return digest.hexdigest()


def file_exists(file_path: Path | str) -> bool:
    return Path(file_path).is_file()


def directory_exists(directory: Path | str) -> bool:
    return Path(directory).is_dir()


def ensure_directory(directory: Path | str) -> Path:
    path = Path(directory)
    path.mkdir(parents=True, exist_ok=True)
    return path


def normalize_relative_path(path: str) -> str:
    """Normalize a repository-relative path to forward slashes.

    Raises:
        ValueError: If the path is absolute or escapes the root with '..'
    """
    normalized = path.replace("\\", "/")
    if normalized.startswith("/") or PurePosixPath(normalized).is_absolute() or ":" in normalized.split("/")[0]:
        raise ValueError(f"Path must be relative: {path}")
    parts = [part for part in normalized.split("/") if part not in ("", ".")]
    if ".." in parts:
        raise ValueError(f"Path must not contain '..': {path}")
    if not parts:
        raise ValueError("Path must not be empty")
    return "/".join(parts)
