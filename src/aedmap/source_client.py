"""Dataset and metadata fetching with retry."""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Optional

import requests

from .errors import DecodeError, FetchError, MetadataError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30
DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF = 1.0


def _should_retry(status_code: int) -> bool:
    return status_code == 429 or 500 <= status_code < 600


def _is_remote(source: str) -> bool:
    return source.startswith(("http://", "https://"))


def _request_with_retry(
    session: requests.Session,
    url: str,
    timeout: float,
    max_retries: int,
    backoff_factor: float,
) -> requests.Response:
    for attempt in range(max_retries):
        try:
            resp = session.get(url, timeout=timeout)
        except requests.RequestException as exc:
            if attempt < max_retries - 1:
                time.sleep(backoff_factor * (2**attempt))
                continue
            raise FetchError(f"Request to {url} failed: {exc}") from exc
        if _should_retry(resp.status_code) and attempt < max_retries - 1:
            logger.warning("HTTP %s from %s (attempt %s)", resp.status_code, url, attempt + 1)
            time.sleep(backoff_factor * (2**attempt))
            continue
        if not resp.ok:
            raise FetchError(f"HTTP {resp.status_code} from {url}", status=resp.status_code)
        return resp
    raise FetchError(f"No response from {url}")


def fetch_json(
    source: str,
    *,
    session: Optional[requests.Session] = None,
    timeout: float = DEFAULT_TIMEOUT,
    max_retries: int = DEFAULT_MAX_RETRIES,
    backoff_factor: float = DEFAULT_BACKOFF,
) -> Any:
    """Load a JSON document from an http(s) URL or a local path."""
    if not _is_remote(source):
        path = Path(source)
        try:
            raw = path.read_bytes()
        except OSError as exc:
            raise FetchError(f"Cannot read {path}: {exc}") from exc
        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            raise DecodeError(f"Malformed JSON in {path}: {exc}") from exc

    sess = session or requests.Session()
    resp = _request_with_retry(sess, source, timeout, max(1, max_retries), backoff_factor)
    try:
        return resp.json()
    except ValueError as exc:
        raise DecodeError(f"Malformed JSON from {source}: {exc}") from exc


def extract_last_edit(document: Any, path: Iterable[str]) -> datetime:
    """Read an epoch-millisecond timestamp at a nested path and return it as UTC."""
    node = document
    keys = list(path)
    for key in keys:
        if not isinstance(node, dict) or key not in node:
            raise MetadataError(f"Metadata has no {'.'.join(keys)}")
        node = node[key]
    if isinstance(node, bool) or not isinstance(node, (int, float)):
        raise MetadataError(f"Metadata {'.'.join(keys)} is not numeric: {node!r}")
    return datetime.fromtimestamp(node / 1000, tz=timezone.utc)


def fetch_last_edit(
    url: str,
    path: Iterable[str] = ("editingInfo", "lastEditDate"),
    *,
    session: Optional[requests.Session] = None,
    timeout: float = DEFAULT_TIMEOUT,
    max_retries: int = DEFAULT_MAX_RETRIES,
    backoff_factor: float = DEFAULT_BACKOFF,
) -> datetime:
    if not url:
        raise MetadataError("No metadata URL configured")
    try:
        document = fetch_json(
            url, session=session, timeout=timeout, max_retries=max_retries, backoff_factor=backoff_factor
        )
    except (FetchError, DecodeError) as exc:
        raise MetadataError(str(exc)) from exc
    return extract_last_edit(document, path)
