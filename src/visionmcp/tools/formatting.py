from __future__ import annotations

import os
from pathlib import Path
from typing import Any


def file_uri(path: str | Path) -> str:
    return "file://" + os.path.abspath(path).replace("\\", "/")


def success(saved: list[str] | list[Path]) -> dict[str, Any]:
    lines = "\n".join(file_uri(p) for p in saved)
    return {"content": [{"type": "text", "text": f"Saved {len(saved)} result(s):\n{lines}"}]}


def failure(message: str) -> dict[str, Any]:
    return {"content": [{"type": "text", "text": message}], "isError": True}
