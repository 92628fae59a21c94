"""Remote fetch helpers built on fsspec.

Adapters never talk to the network directly; they go through these helpers so
tests can patch a single seam. Blocking fsspec calls run in a worker thread.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import fsspec

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
GITHUB_RAW_URL = "https://raw.githubusercontent.com"


def _cat(url: str, headers: dict[str, str] | None) -> bytes:
    storage_options: dict[str, Any] = {}
    if headers and url.startswith(("http://", "https://")):
        storage_options["headers"] = headers
    fs, path = fsspec.core.url_to_fs(url, **storage_options)
    return fs.cat_file(path)


async def fetch_bytes(url: str, headers: dict[str, str] | None = None) -> bytes:
    """Fetch a URL (http, https or file) and return its raw bytes.

    Raises:
        FileNotFoundError: If the resource does not exist
        OSError: For transport failures
    """
    logger.debug(f"Fetching {url}")
    return await asyncio.to_thread(_cat, url, headers)


async def fetch_text(url: str, headers: dict[str, str] | None = None) -> str:
    return (await fetch_bytes(url, headers)).decode("utf-8")


async def fetch_json(url: str, headers: dict[str, str] | None = None) -> Any:
    return json.loads(await fetch_bytes(url, headers))


def github_headers(token: str | None) -> dict[str, str]:
    headers = {"Accept": "application/vnd.github+json", "User-Agent": "prompt-registry"}
    if token:
        headers["Authorization"] = f"token {token}"
    return headers


def github_api_url(owner: str, repo: str, path: str, ref: str | None = None) -> str:
    """Contents API URL: https://api.github.com/repos/o/r/contents/<path>?ref=<ref>."""
    url = f"{GITHUB_API_URL}/repos/{owner}/{repo}/contents/{path.strip('/')}"
    if ref:
        url += f"?ref={ref}"
    return url


def github_raw_url(owner: str, repo: str, ref: str, path: str) -> str:
    return f"{GITHUB_RAW_URL}/{owner}/{repo}/{ref}/{path.lstrip('/')}"
