"""
Error types for the marine console.

This module defines all exception types raised by the console core:
- ConsoleError: Base exception
- TransportError: Network or connection failure
- FormatError: Response shape violates the record/page contract
- ValidationError: Local, pre-network validation failure
- ServerRejection: Non-2xx response with a server-supplied reason

Invariants:
    - All errors inherit from ConsoleError
    - ServerRejection.reason is the server's text, never reworded
    - Nothing here is process-fatal; callers catch at their boundary
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class ConsoleError(Exception):
    """Base exception for all console errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "CONSOLE_ERROR"
        self.details = details or {}


class TransportError(ConsoleError):
    """Failed to reach the server.

    Raised when:
    - Server is unreachable
    - Connection drops mid-request
    - Request times out

    Never retried automatically; the next explicit trigger retries.
    """

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="TRANSPORT_ERROR",
            details={"url": url},
        )
        self.url = url


class FormatError(ConsoleError):
    """Response does not match the expected shape.

    Raised when:
    - Body is not valid JSON
    - Paged result is neither an envelope nor a list
    - Record is not a mapping
    """

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="FORMAT_ERROR",
            details={"url": url},
        )
        self.url = url


class ValidationError(ConsoleError):
    """Local validation failed before any network call.

    Raised when:
    - Required field is empty
    - Numeric value is out of range
    - Enum value is not a member of its set
    """

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        errors: Optional[List[str]] = None,
    ) -> None:
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"field": field_name, "errors": errors or [message]},
        )
        self.field_name = field_name
        self.errors = errors or [message]


class ServerRejection(ConsoleError):
    """Server answered with a non-2xx status.

    Attributes:
        status: HTTP status code
        reason: Server-supplied reason, verbatim
    """

    def __init__(
        self,
        reason: str,
        status: int,
        body: Any = None,
    ) -> None:
        super().__init__(
            reason,
            code="SERVER_REJECTION",
            details={"status": status, "body": body},
        )
        self.reason = reason
        self.status = status
