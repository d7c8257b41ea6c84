"""
Source fetching for scene loads.
Remote URLs go through requests in a worker thread; anything else is a local path.
"""
from __future__ import annotations

import logging
from pathlib import Path
from urllib.parse import urlparse

import requests
from starlette.concurrency import run_in_threadpool

from config import settings

logger = logging.getLogger(__name__)


class SourceFetchError(Exception):
    """A map source could not be read."""


def _is_remote(source: str) -> bool:
    return urlparse(source).scheme in ("http", "https")


def _fetch_remote(url: str) -> bytes:
    try:
        response = requests.get(url, timeout=settings.FETCH_TIMEOUT_S)
        response.raise_for_status()
    except requests.RequestException as e:
        raise SourceFetchError(f"Failed to fetch {url}: {e}") from e
    return response.content


def _read_local(source: str) -> bytes:
    path = Path(urlparse(source).path if source.startswith("file://") else source)
    try:
        return path.read_bytes()
    except OSError as e:
        raise SourceFetchError(f"Failed to read {path}: {e}") from e


async def fetch_bytes(source: str) -> bytes:
    """Raw payload for a URL or local path."""
    if _is_remote(source):
        logger.info(f"🌐 Fetching {source}")
        return await run_in_threadpool(_fetch_remote, source)
    logger.info(f"📂 Reading {source}")
    return await run_in_threadpool(_read_local, source)
