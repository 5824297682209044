"""Client for the Grounded-SAM Gradio app.

The app exposes one predict function taking ten positional inputs and
returning a list of galleries. Field names never cross the wire, so the
order lives in exactly one place: :meth:`BackendPayload.to_args`.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from .errors import BackendInvocationError
from .images import TRANSPARENT_MASK, is_inline, resolve_image
from .schemas import ToolKind, VisionRequest

log = logging.getLogger(__name__)

DEFAULT_BOX_THRESHOLD = 0.3
DEFAULT_TEXT_THRESHOLD = 0.25
DEFAULT_IOU_THRESHOLD = 0.5


@dataclass(frozen=True)
class BackendPayload:
    image: str
    text_prompt: str
    task_type: str
    mask: str = TRANSPARENT_MASK
    inpaint_prompt: str = ""
    box_threshold: float = DEFAULT_BOX_THRESHOLD
    text_threshold: float = DEFAULT_TEXT_THRESHOLD
    iou_threshold: float = DEFAULT_IOU_THRESHOLD
    inpaint_mode: str = "merge"
    scribble_mode: str = "split"
    auth_key: str = ""

    @classmethod
    def from_request(cls, request: VisionRequest, kind: ToolKind, image_data: str) -> "BackendPayload":
        options: dict[str, Any] = {}
        if request.box_threshold is not None:
            options["box_threshold"] = request.box_threshold
        if request.text_threshold is not None:
            options["text_threshold"] = request.text_threshold
        if kind is ToolKind.INPAINT:
            options["inpaint_prompt"] = getattr(request, "inpaint_prompt", "")
            options["inpaint_mode"] = getattr(request, "inpaint_mode", "merge")
        return cls(
            image=image_data,
            text_prompt=request.text_prompt or "",
            task_type=kind.task_type,
            **options,
        )

    def to_args(self) -> list[Any]:
        return [
            {"image": self.image, "mask": self.mask},
            self.text_prompt,
            self.task_type,
            self.inpaint_prompt,
            self.box_threshold,
            self.text_threshold,
            self.iou_threshold,
            self.inpaint_mode,
            self.scribble_mode,
            self.auth_key,
        ]


class GradioBackend:
    """One predict call per :meth:`predict`; no connection outlives the call.

    Parameters
    ----------
    endpoint:
        Root URL of the Gradio app, e.g. ``http://localhost:7589``.
    fn_index:
        Index of the predict function in the app's dependency list.
    transport:
        Optional httpx transport, shared with image fetching.
    """

    def __init__(
        self,
        endpoint: str,
        *,
        fn_index: int = 0,
        predict_path: str = "/api/predict/",
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.endpoint = endpoint.rstrip("/")
        self.fn_index = fn_index
        self.predict_path = "/" + predict_path.lstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def predict(self, request: VisionRequest, kind: ToolKind) -> dict[str, Any]:
        if is_inline(request.image):
            image_data = request.image
        else:
            image_data = await resolve_image(request.image, timeout=self.timeout, transport=self.transport)
        payload = BackendPayload.from_request(request, kind, image_data)
        return await self.call(payload)

    async def call(self, payload: BackendPayload) -> dict[str, Any]:
        url = f"{self.endpoint}{self.predict_path}"
        body = {"fn_index": self.fn_index, "data": payload.to_args()}
        log.info("predict %s task=%s prompt=%r", url, payload.task_type, payload.text_prompt)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(url, json=body)
        except httpx.HTTPError as exc:
            raise BackendInvocationError(f"Backend request to {url} failed: {exc}") from exc

        if response.is_error:
            raise BackendInvocationError(
                f"Backend returned HTTP {response.status_code}: {response.text}",
                status_code=response.status_code,
            )
        try:
            envelope = response.json()
        except ValueError as exc:
            raise BackendInvocationError(f"Backend returned a non-JSON response: {response.text[:200]}") from exc
        if not isinstance(envelope, dict):
            raise BackendInvocationError(f"Backend returned an unexpected response: {envelope!r}")
        if envelope.get("error"):
            raise BackendInvocationError(str(envelope["error"]))
        return envelope
