from __future__ import annotations


class VisionToolError(RuntimeError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ValidationError(VisionToolError):
    """Tool arguments failed a type, format or range rule. No I/O was attempted."""


class FileReadError(VisionToolError):
    pass


class FetchError(VisionToolError):
    pass


class BackendInvocationError(VisionToolError):
    """The predict call failed; the message carries the backend's raw text."""


class DownloadError(VisionToolError):
    """A result file could not be retrieved. Earlier files stay on disk."""
