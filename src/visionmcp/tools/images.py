"""Image reference resolution.

Turns a local path, an http(s) URL or an inline ``data:`` URI into a
self-contained ``data:<mime>;base64,<payload>`` string for the backend.
Nothing is cached: every call reads the file or fetches the URL again.
"""
from __future__ import annotations

import base64
import logging
import os
import re
import urllib.parse
from collections.abc import Callable
from pathlib import Path

import httpx

from .errors import FetchError, FileReadError

log = logging.getLogger(__name__)

DEFAULT_MIME = "image/jpeg"

_EXT_MIME = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
}
MIME_TYPES = frozenset(_EXT_MIME.values())

# 10x10 fully transparent PNG; the backend expects a mask alongside every image.
_TRANSPARENT_PNG = (
    "iVBORw0KGgoAAAANSUhEUgAAAAoAAAAKCAYAAACNMs+9AAAABHNCSVQICAgIfAhkiAAAAAlwSFlz"
    "AAAAdgAAAHYBTnsmCAAAABl0RVh0U29mdHdhcmUAd3d3Lmlua3NjYXBlLm9yZ5vuPBoAAAAQSURB"
    "VBiVY2AYBaNgFIwAAATgAAFPbxqYAAAAAElFTkSuQmCC"
)
TRANSPARENT_MASK = f"data:image/png;base64,{_TRANSPARENT_PNG}"

_URL_RE = re.compile(r"^https?://", re.IGNORECASE)

MimeStrategy = Callable[[], "str | None"]


def is_inline(ref: str) -> bool:
    return ref.startswith("data:")


def is_url(ref: str) -> bool:
    return bool(_URL_RE.match(ref))


def encode_data_uri(mime: str, payload: bytes) -> str:
    b64 = base64.standard_b64encode(payload).decode("ascii")
    return f"data:{mime};base64,{b64}"


def mime_from_extension(path: str) -> str | None:
    return _EXT_MIME.get(os.path.splitext(path)[1].lower())


def mime_from_content_type(header: str | None) -> str | None:
    """Media type from a Content-Type header, only if it is one we can send on."""
    if not header:
        return None
    media = header.split(";", 1)[0].strip().lower()
    return media if media in MIME_TYPES else None


def pick_mime(strategies: list[MimeStrategy]) -> str:
    """Return the first answer from *strategies*, falling back to ``DEFAULT_MIME``."""
    for strategy in strategies:
        mime = strategy()
        if mime:
            return mime
    return DEFAULT_MIME


def read_local_image(path: str) -> str:
    try:
        data = Path(path).read_bytes()
    except OSError as exc:
        raise FileReadError(f"Cannot read image file {path}: {exc}") from exc
    mime = pick_mime([lambda: mime_from_extension(path)])
    return encode_data_uri(mime, data)


async def fetch_remote_image(
    url: str,
    *,
    timeout: float = 30.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> str:
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport, follow_redirects=True) as client:
            response = await client.get(url)
            response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        status = exc.response.status_code
        raise FetchError(f"Image download failed: HTTP {status} for {url}", status_code=status) from exc
    except httpx.HTTPError as exc:
        raise FetchError(f"Image download failed for {url}: {exc}") from exc

    url_path = urllib.parse.urlparse(url).path
    mime = pick_mime([
        lambda: mime_from_content_type(response.headers.get("content-type")),
        lambda: mime_from_extension(url_path),
    ])
    log.debug("Fetched %s (%d bytes, %s)", url, len(response.content), mime)
    return encode_data_uri(mime, response.content)


async def resolve_image(
    ref: str,
    *,
    timeout: float = 30.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> str:
    """Resolve *ref* to a ``data:`` URI (inline refs pass through untouched)."""
    if is_inline(ref):
        return ref
    if is_url(ref):
        return await fetch_remote_image(ref, timeout=timeout, transport=transport)
    return read_local_image(ref)
