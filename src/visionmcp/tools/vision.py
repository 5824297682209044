from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import httpx

from ..config import AppConfig
from . import formatting
from .backend import GradioBackend
from .errors import VisionToolError
from .results import extract_results
from .schemas import ToolKind, validate_request

log = logging.getLogger(__name__)


class VisionTools:
    """Runs one detect/segment/inpaint call end to end.

    Every call returns an MCP result envelope; errors never escape.
    Nothing is shared between calls apart from the config.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or AppConfig()
        self.transport = transport

    def output_dir(self, kind: ToolKind) -> Path:
        return Path(self.config.output_root) / kind.output_subdir

    def backend(self, endpoint: str) -> GradioBackend:
        return GradioBackend(
            endpoint,
            fn_index=self.config.fn_index,
            predict_path=self.config.predict_path,
            timeout=self.config.request_timeout,
            transport=self.transport,
        )

    async def run(self, kind: ToolKind, arguments: Any) -> dict[str, Any]:
        try:
            request = validate_request(arguments, kind)
            endpoint = request.endpoint_url or self.config.endpoint_url
            envelope = await self.backend(endpoint).predict(request, kind)
            saved = await extract_results(
                envelope,
                endpoint,
                self.output_dir(kind),
                timeout=self.config.request_timeout,
                transport=self.transport,
            )
        except VisionToolError as exc:
            log.warning("%s failed: %s", kind.value, exc)
            return formatting.failure(str(exc))
        except Exception as exc:
            log.exception("%s failed unexpectedly", kind.value)
            return formatting.failure(f"Error: {exc}")
        log.info("%s saved %d result(s) from %s", kind.value, len(saved), endpoint)
        return formatting.success(saved)

    async def detect(self, arguments: Any) -> dict[str, Any]:
        return await self.run(ToolKind.DETECT, arguments)

    async def segment(self, arguments: Any) -> dict[str, Any]:
        return await self.run(ToolKind.SEGMENT, arguments)

    async def inpaint(self, arguments: Any) -> dict[str, Any]:
        return await self.run(ToolKind.INPAINT, arguments)
