from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from .config import app_config
from .mcp_server import main as mcp_main
from .tools.schemas import ToolKind
from .tools.vision import VisionTools


def _add_tool_parser(subparsers: argparse._SubParsersAction, kind: ToolKind, help_text: str) -> argparse.ArgumentParser:
    tool_parser = subparsers.add_parser(kind.value, help=help_text)
    tool_parser.add_argument("--image", required=True, help="Image URL (http/https) or local path (./cat.jpg)")
    tool_parser.add_argument("--text-prompt", default="", help="English labels separated by ' . '")
    tool_parser.add_argument("--box-threshold", type=float, help="DINO box threshold (default 0.3)")
    tool_parser.add_argument("--text-threshold", type=float, help="Phrase threshold (default 0.25)")
    tool_parser.add_argument("--endpoint", help="Gradio backend URL (default from config)")
    if kind is ToolKind.INPAINT:
        tool_parser.add_argument("--inpaint-prompt", required=True, help="English description of the result")
        tool_parser.add_argument("--inpaint-mode", choices=["merge", "first"], default="merge")
    tool_parser.set_defaults(func=tool_command, kind=kind)
    return tool_parser


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="visionmcp",
        description="Grounded-SAM detection, segmentation and inpainting as MCP tools.",
    )
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser(
        "mcp",
        help=(
            "Run the MCP (Model Context Protocol) server over stdio (default). "
            "Hook this up to LM Studio or any MCP client."
        ),
    )
    _add_tool_parser(subparsers, ToolKind.DETECT, "Detect objects once and save the rendered result")
    _add_tool_parser(subparsers, ToolKind.SEGMENT, "Segment objects once and save the masks")
    _add_tool_parser(subparsers, ToolKind.INPAINT, "Inpaint objects once and save the result")

    return parser


def tool_arguments(args: argparse.Namespace) -> dict[str, object]:
    arguments: dict[str, object] = {"image": args.image, "text_prompt": args.text_prompt}
    for key in ("box_threshold", "text_threshold", "inpaint_prompt", "inpaint_mode"):
        value = getattr(args, key, None)
        if value is not None:
            arguments[key] = value
    if args.endpoint:
        arguments["endpointUrl"] = args.endpoint
    return arguments


def tool_command(args: argparse.Namespace) -> int:
    cfg = app_config()
    logging.basicConfig(level=cfg.log_level, format="%(levelname)s %(name)s: %(message)s")
    result = asyncio.run(VisionTools(cfg).run(args.kind, tool_arguments(args)))
    for block in result.get("content", []):
        print(block.get("text", ""))
    return 1 if result.get("isError") else 0


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    if not args.command or args.command == "mcp":
        mcp_main()
        return
    if hasattr(args, "func"):
        sys.exit(args.func(args))
    parser.print_help()
    sys.exit(2)


if __name__ == "__main__":
    main()
