from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import httpx

from .errors import DownloadError

log = logging.getLogger(__name__)


def result_files(envelope: Any) -> list[tuple[int, int, str]]:
    """(group index, item index, name) for every downloadable file, in order."""
    data = envelope.get("data") if isinstance(envelope, dict) else None
    if not isinstance(data, list):
        return []
    found: list[tuple[int, int, str]] = []
    for i, group in enumerate(data):
        if not isinstance(group, list):
            continue
        for j, item in enumerate(group):
            if isinstance(item, dict) and item.get("is_file") and item.get("name"):
                found.append((i, j, str(item["name"])))
    return found


def result_filename(group: int, item: int, name: str) -> str:
    # Backend names can be absolute temp paths on either platform.
    basename = os.path.basename(name.replace("\\", "/"))
    return f"result_{group}_{item}_{basename}"


async def _download(client: httpx.AsyncClient, url: str, dest: Path) -> None:
    try:
        async with client.stream("GET", url) as response:
            if response.status_code != 200:
                raise DownloadError(
                    f"Download failed: HTTP {response.status_code} for {url}",
                    status_code=response.status_code,
                )
            with open(dest, "wb") as fh:
                async for chunk in response.aiter_bytes(65536):
                    fh.write(chunk)
    except httpx.HTTPError as exc:
        raise DownloadError(f"Download failed for {url}: {exc}") from exc
    except OSError as exc:
        raise DownloadError(f"Cannot write {dest}: {exc}") from exc


async def extract_results(
    envelope: Any,
    endpoint: str,
    output_dir: str | Path,
    *,
    timeout: float = 120.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[Path]:
    """Download every file named in *envelope* into *output_dir*.

    Stops at the first failed download. Files saved before it are left in
    place and are not reported.
    """
    data = envelope.get("data") if isinstance(envelope, dict) else None
    if not isinstance(data, list):
        return []
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)
    files = result_files(envelope)

    base = endpoint.rstrip("/")
    saved: list[Path] = []
    async with httpx.AsyncClient(timeout=timeout, transport=transport, follow_redirects=True) as client:
        for i, j, name in files:
            dest = out / result_filename(i, j, name)
            await _download(client, f"{base}/file={name}", dest)
            log.debug("saved %s", dest)
            saved.append(dest)
    return saved
