"""Atomic JSON and YAML persistence helpers.

Every write goes to a sibling temporary file that is renamed into place, so
readers never observe a truncated or half-written document.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)


def _atomic_write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)

    temp_path = path.with_name(f"{path.name}.tmp")
    try:
        temp_path.write_text(content, encoding="utf-8")
        temp_path.replace(path)
        logger.debug(f"Wrote {path}")
    except Exception as e:
        if temp_path.exists():
            temp_path.unlink()
        raise RuntimeError(f"Failed to write {path}: {e}") from e


def save_json(path: Path, data: Any) -> None:
    """Save data as 2-space indented JSON atomically.

    Args:
        path: Target file path
        data: JSON-serializable data

    Raises:
        RuntimeError: If the file cannot be written
    """
    _atomic_write(path, json.dumps(data, indent=2, default=str, ensure_ascii=False) + "\n")


def load_json(path: Path) -> Any | None:
    """Load JSON file or return None if missing or corrupt.

    Args:
        path: File path to load

    Returns:
        Parsed JSON, or None if the file doesn't exist or can't be parsed
    """
    if not path.exists():
        return None
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Failed to load JSON from {path}: {e}")
        return None


def save_yaml(path: Path, data: Any) -> None:
    """Save data as block-style YAML atomically."""
    _atomic_write(path, yaml.dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True))


def load_yaml(path: Path) -> Any | None:
    """Load YAML file or return None if missing or corrupt."""
    if not path.exists():
        return None
    try:
        with open(path, encoding="utf-8") as f:
            return yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Failed to load YAML from {path}: {e}")
        return None
