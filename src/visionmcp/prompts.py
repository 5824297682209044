"""Static prompt served to MCP clients.

The vision tools only accept English text. This prompt tells the client's
model how to turn a request in any language into English parameter values
before calling them; no translation happens in the server.
"""
from __future__ import annotations

from typing import Any

SYSTEM_PROMPT_NAME = "vision-tool-system"

_GUIDANCE = (
    "You are a parameter generator for an AI vision MCP tool.\n"
    "Convert the user's request to English-only parameters.\n"
    "- Parameter rules:\n"
    "  - text_prompt: English-only target labels. If multiple, separate using ' . ' (space dot space).\n"
    "  - inpaint_prompt: English-only description of the desired result.\n"
    "  - image: keep original URL/path.\n"
    "- Do not include explanations. Output concise English.\n"
)

PROMPTS: list[dict[str, Any]] = [
    {
        "name": SYSTEM_PROMPT_NAME,
        "title": "Vision tool system prompt",
        "description": (
            "Turn a user request (possibly not in English) into English-only tool "
            "parameters, with text_prompt labels separated by ' . '."
        ),
        "arguments": [
            {
                "name": "request",
                "description": "The user's natural-language request, in any language.",
                "required": True,
            },
        ],
    },
]


class UnknownPromptError(KeyError):
    pass


def render_prompt(name: str, arguments: dict[str, Any] | None = None) -> dict[str, Any]:
    """Build the ``prompts/get`` result for *name*."""
    if name != SYSTEM_PROMPT_NAME:
        raise UnknownPromptError(name)
    request = str((arguments or {}).get("request", ""))
    return {
        "description": PROMPTS[0]["description"],
        "messages": [
            {"role": "assistant", "content": {"type": "text", "text": _GUIDANCE}},
            {
                "role": "user",
                "content": {
                    "type": "text",
                    "text": (
                        f"User request:\n{request}\n\n"
                        "Return final English-only values for: image, text_prompt "
                        "(labels separated by ' . '), inpaint_prompt (if needed)."
                    ),
                },
            },
        ],
    }
