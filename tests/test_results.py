from __future__ import annotations

import sys
from pathlib import Path

import httpx
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from visionmcp.tools.errors import DownloadError
from visionmcp.tools.results import extract_results, result_filename, result_files

_ENVELOPE = {
    "data": [
        [{"is_file": True, "name": "a.png"}],
        [{"is_file": True, "name": "b.png"}, {"is_file": False, "name": "c.png"}],
    ]
}


def _file_server(fail: set[str] | None = None):
    fetched: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        fetched.append(path)
        name = path.split("/file=", 1)[1]
        if fail and name in fail:
            return httpx.Response(404, text="not found")
        return httpx.Response(200, content=f"bytes of {name}".encode())

    return httpx.MockTransport(handler), fetched


def test_result_files_skips_non_files() -> None:
    assert result_files(_ENVELOPE) == [(0, 0, "a.png"), (1, 0, "b.png")]


def test_result_files_ignores_malformed_entries() -> None:
    envelope = {"data": ["text output", [None, {"is_file": True}, {"is_file": True, "name": ""}], []]}
    assert result_files(envelope) == []
    assert result_files({"data": "oops"}) == []
    assert result_files(None) == []


def test_result_filename_uses_basename() -> None:
    assert result_filename(2, 1, "/tmp/gradio/abc/mask.png") == "result_2_1_mask.png"
    assert result_filename(0, 0, "C:\\Temp\\gradio\\out.jpg") == "result_0_0_out.jpg"


@pytest.mark.asyncio
async def test_extract_preserves_order(tmp_path: Path) -> None:
    transport, fetched = _file_server()
    out = tmp_path / "output" / "det"
    saved = await extract_results(_ENVELOPE, "http://gpu:7589", out, transport=transport)

    assert saved == [out / "result_0_0_a.png", out / "result_1_0_b.png"]
    assert fetched == ["/file=a.png", "/file=b.png"]
    assert (out / "result_1_0_b.png").read_bytes() == b"bytes of b.png"
    assert not (out / "result_1_1_c.png").exists()


@pytest.mark.asyncio
async def test_missing_data_is_empty_and_creates_nothing(tmp_path: Path) -> None:
    transport, fetched = _file_server()
    out = tmp_path / "never"
    assert await extract_results({"duration": 1.0}, "http://gpu:7589", out, transport=transport) == []
    assert fetched == []
    assert not out.exists()


@pytest.mark.asyncio
async def test_empty_groups_still_create_directory(tmp_path: Path) -> None:
    transport, _ = _file_server()
    out = tmp_path / "nested" / "segmentation"
    assert await extract_results({"data": [[]]}, "http://gpu:7589", out, transport=transport) == []
    assert out.is_dir()


@pytest.mark.asyncio
async def test_download_failure_keeps_earlier_files(tmp_path: Path) -> None:
    transport, fetched = _file_server(fail={"b.png"})
    with pytest.raises(DownloadError) as exc:
        await extract_results(_ENVELOPE, "http://gpu:7589", tmp_path, transport=transport)
    assert exc.value.status_code == 404
    assert (tmp_path / "result_0_0_a.png").exists()
    assert not (tmp_path / "result_1_0_b.png").exists()
    assert fetched == ["/file=a.png", "/file=b.png"]
