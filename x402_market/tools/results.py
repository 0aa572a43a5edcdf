"""Normalized tool results returned by executors."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class ResultKind(str, Enum):
    """Shape of a tool result body."""
    DATA = "data"
    BINARY = "binary"
    TEXT = "text"


class FailureKind(str, Enum):
    """Why a tool call failed."""
    INVALID_ARGUMENTS = "invalid_arguments"
    UPSTREAM_UNREACHABLE = "upstream_unreachable"
    UPSTREAM_STATUS = "upstream_status"
    TIMEOUT = "timeout"
    INTERNAL = "internal"


@dataclass
class ToolResult:
    """
    Outcome of a tool execution.

    Attributes:
        kind: Body shape (structured data, binary stream, or plain text)
        success: Whether the capability produced a result
        status_code: HTTP status to answer with
        message: Human-readable summary ("result" on the wire)
        data: Structured payload for DATA results
        content: Raw bytes for BINARY results
        mime_type: Content type for BINARY results
        error: Error payload for failed results
        failure: Failure classification for failed results
    """
    kind: ResultKind
    success: bool
    status_code: int = 200
    message: str = ""
    data: Any = None
    content: bytes = b""
    mime_type: str = ""
    error: Any = None
    failure: Optional[FailureKind] = None

    @classmethod
    def ok(cls, message: str, data: Any = None) -> "ToolResult":
        return cls(kind=ResultKind.DATA, success=True, message=message, data=data)

    @classmethod
    def miss(cls, message: str) -> "ToolResult":
        """A successful call that found nothing (not an error)."""
        return cls(kind=ResultKind.DATA, success=False, message=message)

    @classmethod
    def binary(cls, content: bytes, mime_type: str) -> "ToolResult":
        return cls(kind=ResultKind.BINARY, success=True, content=content, mime_type=mime_type)

    @classmethod
    def text(cls, text: str) -> "ToolResult":
        return cls(kind=ResultKind.TEXT, success=True, message=text)

    @classmethod
    def failed(
        cls,
        failure: FailureKind,
        status_code: int,
        message: str,
        error: Any = None,
    ) -> "ToolResult":
        return cls(
            kind=ResultKind.DATA,
            success=False,
            status_code=status_code,
            message=message,
            error=error,
            failure=failure,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON body sent to the caller."""
        body: dict[str, Any] = {"success": self.success, "result": self.message}
        if self.data is not None:
            body["data"] = self.data
        if self.error is not None:
            body["error"] = self.error
        return body
