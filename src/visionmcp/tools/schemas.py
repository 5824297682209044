"""Tool-call argument validation.

The Grounded-SAM backend only understands English label lists and ASCII
prompts, so anything else is rejected here before an image is read or a
request is sent.
"""
from __future__ import annotations

import math
import re
import urllib.parse
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError

TEXT_PROMPT_MAX = 200
INPAINT_PROMPT_MAX = 300

_LABELS_RE = re.compile(r"[A-Za-z0-9 .-]*")
_PRINTABLE_ASCII_RE = re.compile(r"[\x20-\x7E]+")
_URL_RE = re.compile(r"^https?://", re.IGNORECASE)
_WINDOWS_PATH_RE = re.compile(r"^[A-Za-z]:[\\/]")


class ToolKind(str, Enum):
    DETECT = "detect"
    SEGMENT = "segment"
    INPAINT = "inpaint"

    @property
    def task_type(self) -> str:
        """Discriminator the backend uses to pick the pipeline."""
        return _TASK_TYPES[self]

    @property
    def output_subdir(self) -> str:
        return _OUTPUT_SUBDIRS[self]


_TASK_TYPES = {
    ToolKind.DETECT: "det",
    ToolKind.SEGMENT: "seg",
    ToolKind.INPAINT: "inpainting",
}
_OUTPUT_SUBDIRS = {
    ToolKind.DETECT: "det",
    ToolKind.SEGMENT: "segmentation",
    ToolKind.INPAINT: "inpainting",
}


def looks_like_image_ref(value: str) -> bool:
    return bool(
        _URL_RE.match(value)
        or _WINDOWS_PATH_RE.match(value)
        or value.startswith(("./", "../", "/"))
    )


def is_http_url(value: str) -> bool:
    parsed = urllib.parse.urlparse(value)
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def _coerce_number(value: Any, name: str) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"{name} must be a number")
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            raise ValueError(f"{name} must be a number") from None
    if not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be a number")
    try:
        number = float(value)
    except OverflowError:
        raise ValueError(f"{name} must be at most 1") from None
    if math.isnan(number):
        raise ValueError(f"{name} must be a number")
    if number < 0:
        raise ValueError(f"{name} must be at least 0")
    if number > 1:
        raise ValueError(f"{name} must be at most 1")
    return number


class VisionRequest(BaseModel):
    """Arguments shared by every vision tool."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    image: str
    text_prompt: str = Field(default="", validate_default=True)
    box_threshold: float | None = None
    text_threshold: float | None = None
    endpoint_url: str | None = Field(default=None, alias="endpointUrl")

    @field_validator("image", mode="before")
    @classmethod
    def _check_image(cls, value: Any) -> str:
        if not isinstance(value, str) or not value:
            raise ValueError("image must not be empty")
        if not looks_like_image_ref(value):
            raise ValueError("image must be an http(s) URL or a local path (/, ./, ../ or C:\\)")
        return value

    @field_validator("text_prompt", mode="before")
    @classmethod
    def _check_text_prompt(cls, value: Any) -> str:
        if value is None:
            return ""
        if not isinstance(value, str):
            raise ValueError("text_prompt must be a string")
        if len(value) > TEXT_PROMPT_MAX:
            raise ValueError(f"text_prompt is too long (max {TEXT_PROMPT_MAX} characters)")
        if not _LABELS_RE.fullmatch(value):
            raise ValueError(
                "text_prompt only accepts English letters, digits, spaces, '.' and '-' "
                "(separate labels with ' . ')"
            )
        return value

    @field_validator("box_threshold", "text_threshold", mode="before")
    @classmethod
    def _check_threshold(cls, value: Any, info: ValidationInfo) -> float | None:
        return _coerce_number(value, info.field_name)

    @field_validator("endpoint_url", mode="before")
    @classmethod
    def _check_endpoint(cls, value: Any) -> str | None:
        if value is None:
            return None
        if not isinstance(value, str) or not is_http_url(value):
            raise ValueError("endpointUrl must be a valid http(s) URL")
        return value


class DetectRequest(VisionRequest):
    pass


class SegmentRequest(VisionRequest):
    pass


class InpaintRequest(VisionRequest):
    inpaint_prompt: str = Field(default="", validate_default=True)
    inpaint_mode: Literal["merge", "first"] = "merge"

    @field_validator("inpaint_prompt", mode="before")
    @classmethod
    def _check_inpaint_prompt(cls, value: Any) -> str:
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValueError("inpaint_prompt is required")
        if not isinstance(value, str):
            raise ValueError("inpaint_prompt must be a string")
        if len(value) > INPAINT_PROMPT_MAX:
            raise ValueError(f"inpaint_prompt is too long (max {INPAINT_PROMPT_MAX} characters)")
        if not _PRINTABLE_ASCII_RE.fullmatch(value):
            raise ValueError("inpaint_prompt only accepts printable English ASCII characters")
        return value

    @field_validator("inpaint_mode", mode="before")
    @classmethod
    def _default_mode(cls, value: Any) -> Any:
        return "merge" if value is None else value


_MODELS: dict[ToolKind, type[VisionRequest]] = {
    ToolKind.DETECT: DetectRequest,
    ToolKind.SEGMENT: SegmentRequest,
    ToolKind.INPAINT: InpaintRequest,
}


def _first_error(exc: PydanticValidationError) -> str:
    err = exc.errors()[0]
    if err["type"] == "value_error":
        return str(err["ctx"]["error"])
    field = ".".join(str(part) for part in err["loc"]) or "arguments"
    return f"{field}: {err['msg']}"


def validate_request(arguments: Any, kind: ToolKind) -> VisionRequest:
    """Validate raw tool-call *arguments* for *kind*.

    Raises :class:`ValidationError` describing the first rule that failed.
    """
    if arguments is None:
        arguments = {}
    if not isinstance(arguments, dict):
        raise ValidationError("arguments must be an object")
    try:
        return _MODELS[kind].model_validate(arguments)
    except PydanticValidationError as exc:
        raise ValidationError(_first_error(exc)) from exc
