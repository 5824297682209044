"""
MCP (Model Context Protocol) server for visionmcp.

Exposes Grounded-SAM vision tools (detect with Grounding DINO boxes,
segment with DINO boxes and SAM masks, inpaint with SAM masks and Stable Diffusion)
as MCP tools that any MCP-compatible client (LM Studio, Claude Desktop,
etc.) can use. Result images are downloaded from the backend into
``output/<det|segmentation|inpainting>`` and returned as ``file://`` links.

Protocol: JSON-RPC 2.0 over stdio (one JSON object per line). Logs go to
stderr; stdout carries protocol messages only.

Usage
-----
Run directly:
    python -m visionmcp.mcp_server

Or via the CLI:
    visionmcp mcp

mcp_servers.json entry
----------------------
{
  "mcpServers": {
    "vision": {
      "command": "visionmcp",
      "args": ["mcp"],
      "env": {"VISION_MCP_ENDPOINT": "http://localhost:7589"}
    }
  }
}
"""
from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Any

from .config import AppConfig, app_config
from .prompts import PROMPTS, UnknownPromptError, render_prompt
from .tools import formatting
from .tools.schemas import INPAINT_PROMPT_MAX, TEXT_PROMPT_MAX, ToolKind
from .tools.vision import VisionTools

log = logging.getLogger(__name__)

SERVER_NAME = "visionmcp"
SERVER_VERSION = "1.0.0"

_tools: VisionTools | None = None


def _get_tools() -> VisionTools:
    global _tools
    if _tools is None:
        _tools = VisionTools(app_config())
    return _tools


# ---------------------------------------------------------------------------
# Tool schema registry: one entry per exposed tool
# ---------------------------------------------------------------------------

_ENGLISH_NOTE = (
    "Note: text fields accept English only. For other languages, first convert "
    "the request with the 'vision-tool-system' prompt."
)

_COMMON_PROPERTIES: dict[str, Any] = {
    "endpointUrl": {
        "type": "string",
        "description": "Optional http(s) URL of the Grounded-SAM Gradio app (default http://localhost:7589).",
    },
    "image": {
        "type": "string",
        "description": "Image URL (http/https) or local path (/, ./, ../ or a Windows drive path).",
    },
    "text_prompt": {
        "type": "string",
        "maxLength": TEXT_PROMPT_MAX,
        "pattern": "^[A-Za-z0-9 .-]*$",
        "description": "English target labels; separate multiple labels with ' . ' (e.g. 'cat . dog').",
    },
    "box_threshold": {
        "type": "number",
        "minimum": 0,
        "maximum": 1,
        "description": "DINO box filter threshold, default 0.3.",
    },
    "text_threshold": {
        "type": "number",
        "minimum": 0,
        "maximum": 1,
        "description": "Phrase extraction threshold, default 0.25.",
    },
}

_TOOL_SCHEMAS: list[dict[str, Any]] = [
    {
        "name": ToolKind.DETECT.value,
        "title": "Object detection (Grounding DINO)",
        "description": (
            "Detect objects described by a text prompt and render boxes and labels "
            "(task_type=det). " + _ENGLISH_NOTE
        ),
        "inputSchema": {
            "type": "object",
            "properties": dict(_COMMON_PROPERTIES),
            "required": ["image"],
        },
    },
    {
        "name": ToolKind.SEGMENT.value,
        "title": "Segmentation (Grounding DINO + SAM)",
        "description": (
            "Text-guided segmentation (cut-out): DINO boxes, then SAM masks, then overlay "
            "(task_type=seg). " + _ENGLISH_NOTE
        ),
        "inputSchema": {
            "type": "object",
            "properties": dict(_COMMON_PROPERTIES),
            "required": ["image"],
        },
    },
    {
        "name": ToolKind.INPAINT.value,
        "title": "Text inpainting (Stable Diffusion Inpaint)",
        "description": (
            "SAM masks plus Stable Diffusion inpainting of the objects found by text_prompt "
            "(task_type=inpainting). " + _ENGLISH_NOTE
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                **_COMMON_PROPERTIES,
                "text_prompt": {
                    **_COMMON_PROPERTIES["text_prompt"],
                    "description": "English text locating the object(s) to repaint.",
                },
                "inpaint_prompt": {
                    "type": "string",
                    "minLength": 1,
                    "maxLength": INPAINT_PROMPT_MAX,
                    "description": "English description of what the masked area should become.",
                },
                "inpaint_mode": {
                    "type": "string",
                    "enum": ["merge", "first"],
                    "description": "Merge all masks or use only the first one (default merge).",
                },
            },
            "required": ["image", "inpaint_prompt"],
        },
    },
]

_TOOL_NAMES = {schema["name"] for schema in _TOOL_SCHEMAS}


# ---------------------------------------------------------------------------
# Tool dispatch: returns an MCP tool result envelope
# ---------------------------------------------------------------------------

async def _call_tool(name: str, arguments: dict[str, Any]) -> dict[str, Any]:
    """Dispatch a tool call and return ``{"content": [...], "isError": bool}``."""
    if name not in _TOOL_NAMES:
        return formatting.failure(f"Unknown tool: {name}")
    result = await _get_tools().run(ToolKind(name), arguments)
    result.setdefault("isError", False)
    return result


# ---------------------------------------------------------------------------
# JSON-RPC 2.0 helpers
# ---------------------------------------------------------------------------

def _ok(request_id: Any, result: Any) -> dict:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def _err(request_id: Any, code: int, message: str) -> dict:
    return {"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}}


def _write(obj: dict) -> None:
    sys.stdout.write(json.dumps(obj) + "\n")
    sys.stdout.flush()


# ---------------------------------------------------------------------------
# Main request handler
# ---------------------------------------------------------------------------

async def _dispatch(req_id: Any, method: str, params: dict[str, Any]) -> None:
    if method == "initialize":
        client_ver = params.get("protocolVersion", "2024-11-05")
        agreed_ver = client_ver if client_ver in {"2024-11-05", "2025-03-26", "2025-06-18"} else "2024-11-05"
        _write(_ok(req_id, {
            "protocolVersion": agreed_ver,
            "capabilities": {"tools": {}, "prompts": {}},
            "serverInfo": {
                "name": SERVER_NAME,
                "version": SERVER_VERSION,
            },
        }))

    elif method in {"notifications/initialized", "initialized"}:
        # Notification, no response needed
        pass

    elif method == "tools/list":
        _write(_ok(req_id, {"tools": _TOOL_SCHEMAS}))

    elif method == "tools/call":
        tool_name = params.get("name", "")
        arguments = params.get("arguments") or {}
        if not isinstance(tool_name, str):
            _write(_err(req_id, -32602, "Invalid params: tool name must be a string"))
            return
        if not isinstance(arguments, dict):
            _write(_err(req_id, -32602, "Invalid params: arguments must be an object"))
            return
        _write(_ok(req_id, await _call_tool(tool_name, arguments)))

    elif method == "prompts/list":
        _write(_ok(req_id, {"prompts": PROMPTS}))

    elif method == "prompts/get":
        prompt_name = params.get("name", "")
        arguments = params.get("arguments") or {}
        if not isinstance(prompt_name, str) or not isinstance(arguments, dict):
            _write(_err(req_id, -32602, "Invalid params: name must be a string and arguments an object"))
            return
        try:
            _write(_ok(req_id, render_prompt(prompt_name, arguments)))
        except UnknownPromptError:
            _write(_err(req_id, -32602, f"Unknown prompt: {prompt_name}"))

    elif method == "ping":
        _write(_ok(req_id, {}))

    else:
        if req_id is not None:
            _write(_err(req_id, -32601, f"Method not found: {method}"))


async def _handle(line: str) -> None:
    try:
        req = json.loads(line)
    except json.JSONDecodeError:
        _write(_err(None, -32700, "Parse error"))
        return
    if not isinstance(req, dict):
        _write(_err(None, -32600, "Invalid Request"))
        return

    req_id = req.get("id")
    method = req.get("method", "")
    params = req.get("params") or {}
    if not isinstance(params, dict):
        params = {}

    try:
        await _dispatch(req_id, method, params)
    except Exception as exc:
        log.exception("%s failed", method)
        if req_id is not None:
            _write(_err(req_id, -32603, f"Internal error: {exc}"))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

async def _run() -> None:
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    protocol = asyncio.StreamReaderProtocol(reader)
    await loop.connect_read_pipe(lambda: protocol, sys.stdin)
    await _serve(reader)


async def _serve(reader: asyncio.StreamReader) -> None:
    # One task per request line; responses may be written out of order.
    pending: set[asyncio.Task[None]] = set()
    while True:
        try:
            line_bytes = await reader.readline()
        except (ValueError, ConnectionError) as exc:
            log.error("stdin closed: %s", exc)
            break
        if not line_bytes:
            break
        line = line_bytes.decode(errors="replace").strip()
        if line:
            task = asyncio.create_task(_handle(line))
            pending.add(task)
            task.add_done_callback(pending.discard)
    if pending:
        await asyncio.gather(*pending, return_exceptions=True)


def main(config: AppConfig | None = None) -> None:
    global _tools
    cfg = config or app_config()
    logging.basicConfig(
        level=cfg.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
    _tools = VisionTools(cfg)
    log.info("visionmcp server started (backend %s)", cfg.endpoint_url)
    asyncio.run(_run())


if __name__ == "__main__":
    main()
