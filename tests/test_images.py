from __future__ import annotations

import base64
import sys
from pathlib import Path

import httpx
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from visionmcp.tools.errors import FetchError, FileReadError
from visionmcp.tools.images import (
    DEFAULT_MIME,
    TRANSPARENT_MASK,
    mime_from_content_type,
    pick_mime,
    resolve_image,
)

_PNG_BYTES = b"\x89PNG\r\n\x1a\nfake"


def _transport(content: bytes = _PNG_BYTES, *, status: int = 200, content_type: str | None = None):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        headers = {"content-type": content_type} if content_type else {}
        return httpx.Response(status, content=content, headers=headers)

    return httpx.MockTransport(handler), seen


def _split(data_uri: str) -> tuple[str, bytes]:
    header, payload = data_uri.split(",", 1)
    assert header.startswith("data:") and header.endswith(";base64")
    return header[len("data:"):-len(";base64")], base64.b64decode(payload)


@pytest.mark.asyncio
async def test_local_png(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    (tmp_path / "shot.PNG").write_bytes(_PNG_BYTES)
    mime, payload = _split(await resolve_image("./shot.PNG"))
    assert mime == "image/png"
    assert payload == _PNG_BYTES


@pytest.mark.asyncio
async def test_local_unknown_extension_defaults_to_jpeg(tmp_path: Path) -> None:
    path = tmp_path / "scan.tiff"
    path.write_bytes(b"II*\x00")
    mime, _ = _split(await resolve_image(str(path)))
    assert mime == DEFAULT_MIME == "image/jpeg"


@pytest.mark.asyncio
async def test_local_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FileReadError):
        await resolve_image(str(tmp_path / "nope.jpg"))


@pytest.mark.asyncio
async def test_inline_data_passes_through() -> None:
    transport, seen = _transport()
    assert await resolve_image(TRANSPARENT_MASK, transport=transport) == TRANSPARENT_MASK
    assert seen == []


@pytest.mark.asyncio
async def test_remote_content_type_wins_over_extension() -> None:
    transport, seen = _transport(b"GIF89a", content_type="image/gif")
    mime, payload = _split(await resolve_image("https://cdn.example.com/photo.png", transport=transport))
    assert mime == "image/gif"
    assert payload == b"GIF89a"
    assert len(seen) == 1 and seen[0].method == "GET"


@pytest.mark.asyncio
async def test_remote_falls_back_to_url_extension() -> None:
    transport, _ = _transport(content_type="application/octet-stream")
    mime, _ = _split(await resolve_image("http://example.com/a/b.webp?size=large", transport=transport))
    assert mime == "image/webp"


@pytest.mark.asyncio
async def test_remote_defaults_to_jpeg() -> None:
    transport, _ = _transport()
    mime, _ = _split(await resolve_image("http://example.com/image", transport=transport))
    assert mime == "image/jpeg"


@pytest.mark.asyncio
async def test_remote_non_2xx_raises_fetch_error() -> None:
    transport, _ = _transport(b"missing", status=404)
    with pytest.raises(FetchError) as exc:
        await resolve_image("http://example.com/cat.jpg", transport=transport)
    assert exc.value.status_code == 404


@pytest.mark.asyncio
async def test_remote_transport_failure_raises_fetch_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(FetchError):
        await resolve_image("http://example.com/cat.jpg", transport=httpx.MockTransport(handler))


def test_content_type_parsing() -> None:
    assert mime_from_content_type("image/png; charset=binary") == "image/png"
    assert mime_from_content_type("IMAGE/JPEG") == "image/jpeg"
    assert mime_from_content_type("image/bmp") is None
    assert mime_from_content_type("text/html") is None
    assert mime_from_content_type(None) is None


def test_pick_mime_order() -> None:
    calls: list[str] = []

    def first() -> None:
        calls.append("first")
        return None

    def second() -> str:
        calls.append("second")
        return "image/gif"

    def third() -> str:
        calls.append("third")
        return "image/png"

    assert pick_mime([first, second, third]) == "image/gif"
    assert calls == ["first", "second"]
    assert pick_mime([]) == DEFAULT_MIME


def test_transparent_mask_is_png() -> None:
    mime, payload = _split(TRANSPARENT_MASK)
    assert mime == "image/png"
    assert payload.startswith(b"\x89PNG")
