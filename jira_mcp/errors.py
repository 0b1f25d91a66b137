# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Classified error values for the Jira integration core.

Every failure that crosses a core boundary is reduced to one of four kinds.
Callers branch on the kind and never need to inspect raw HTTP responses.

Tool result schema produced by ``ClassifiedError.to_tool_result()``:
```json
{
  "error": {
    "code": "NOT_FOUND",
    "message": "Resource not found: /issue/PRJ-999",
    "details": {"identifier": "/issue/PRJ-999"},
    "suggestion": "Verify the issue key or resource ID exists and is visible to this account"
  }
}
```
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Closed set of error kinds."""

    AUTHENTICATION = "AUTHENTICATION"
    NOT_FOUND = "NOT_FOUND"
    API_ERROR = "API_ERROR"
    UNCLASSIFIED = "UNCLASSIFIED"


class ErrorOrigin(str, Enum):
    """Where an unclassified failure came from."""

    # The request never produced an HTTP response
    TRANSPORT = "TRANSPORT"
    # A 2xx response body could not be parsed
    DECODE = "DECODE"
    # The remote broke its own contract (e.g. missing continuation token)
    PROTOCOL = "PROTOCOL"
    # Caller input rejected before any remote call
    INPUT = "INPUT"


ERROR_KIND_SUGGESTIONS: dict[ErrorKind, str] = {
    ErrorKind.AUTHENTICATION: (
        "Check JIRA_EMAIL and JIRA_API_TOKEN; create a new token at "
        "https://id.atlassian.com/manage-profile/security/api-tokens"
    ),
    ErrorKind.NOT_FOUND: "Verify the issue key or resource ID exists and is visible to this account",
    ErrorKind.API_ERROR: "Jira rejected the request; review the message and adjust the parameters",
    ErrorKind.UNCLASSIFIED: "Retry the request; if persistent, check connectivity to the Jira site",
}

ERROR_ORIGIN_SUGGESTIONS: dict[ErrorOrigin, str] = {
    ErrorOrigin.TRANSPORT: "Jira could not be reached; check JIRA_BASE_URL and network access, then retry",
    ErrorOrigin.DECODE: "Jira returned a response that is not JSON; check JIRA_BASE_URL points to a Jira Cloud site",
    ErrorOrigin.PROTOCOL: "Jira returned an inconsistent page; restart the search from the first page",
    ErrorOrigin.INPUT: "Verify required parameters are provided and non-empty",
}

# Remote statuses worth another attempt
TRANSIENT_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


@dataclass(frozen=True)
class ClassifiedError:
    """A failure reduced to the core error taxonomy.

    Attributes:
        kind: One of the four error kinds.
        message: Human readable message. Never contains credentials.
        status_code: Remote HTTP status (API_ERROR, AUTHENTICATION).
        raw_body: Raw remote response body (API_ERROR).
        identifier: Requested resource (NOT_FOUND).
        origin: Source of an UNCLASSIFIED failure.
        cause: Underlying exception, kept for debugging only.
    """

    kind: ErrorKind
    message: str
    status_code: int | None = None
    raw_body: str | None = None
    identifier: str | None = None
    origin: ErrorOrigin | None = None
    cause: BaseException | None = field(default=None, compare=False, repr=False)

    @classmethod
    def authentication(cls, message: str, status_code: int | None = None) -> "ClassifiedError":
        return cls(ErrorKind.AUTHENTICATION, message, status_code=status_code)

    @classmethod
    def not_found(cls, identifier: str, resource: str = "Resource") -> "ClassifiedError":
        return cls(
            ErrorKind.NOT_FOUND,
            f"{resource} not found: {identifier}",
            status_code=404,
            identifier=identifier,
        )

    @classmethod
    def api_error(cls, message: str, status_code: int, raw_body: str | None = None) -> "ClassifiedError":
        return cls(ErrorKind.API_ERROR, message, status_code=status_code, raw_body=raw_body)

    @classmethod
    def unclassified(
        cls,
        message: str,
        origin: ErrorOrigin,
        cause: BaseException | None = None,
    ) -> "ClassifiedError":
        return cls(ErrorKind.UNCLASSIFIED, message, origin=origin, cause=cause)

    @classmethod
    def invalid_input(cls, message: str) -> "ClassifiedError":
        return cls.unclassified(message, ErrorOrigin.INPUT)

    @property
    def is_remote(self) -> bool:
        """True when the remote system reported the failure."""
        return self.kind is not ErrorKind.UNCLASSIFIED

    @property
    def is_transient(self) -> bool:
        """True when repeating the same request may succeed."""
        if self.kind is ErrorKind.UNCLASSIFIED:
            return self.origin is ErrorOrigin.TRANSPORT
        if self.kind is ErrorKind.API_ERROR:
            return self.status_code in TRANSIENT_STATUS_CODES
        return False

    @property
    def suggestion(self) -> str:
        if self.origin is not None:
            return ERROR_ORIGIN_SUGGESTIONS[self.origin]
        return ERROR_KIND_SUGGESTIONS[self.kind]

    def with_context(self, context: str) -> "ClassifiedError":
        """Return a copy whose message is prefixed with ``context``."""
        return ClassifiedError(
            kind=self.kind,
            message=f"{context}: {self.message}",
            status_code=self.status_code,
            raw_body=self.raw_body,
            identifier=self.identifier,
            origin=self.origin,
            cause=self.cause,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the error response dict."""
        details: dict[str, Any] = {}
        if self.status_code is not None:
            details["status_code"] = self.status_code
        if self.identifier is not None:
            details["identifier"] = self.identifier
        if self.origin is not None:
            details["origin"] = self.origin.value
        if self.raw_body:
            details["response"] = self.raw_body

        return {
            "error": {
                "code": self.kind.value,
                "message": self.message,
                "details": details or None,
                "suggestion": self.suggestion,
            }
        }

    def to_tool_result(self) -> dict[str, Any]:
        """Convert to an MCP tool result payload."""
        return {
            "success": False,
            "error": self.kind.value,
            "message": self.message,
            "suggestion": self.suggestion,
            **({"status_code": self.status_code} if self.status_code is not None else {}),
        }


class JiraError(Exception):
    """Exception carrying a ClassifiedError.

    Core operations return errors as values. This exception only exists for
    callers that opt into raising, e.g. ``Result.unwrap()`` or ``with_retry``.
    """

    def __init__(self, error: ClassifiedError) -> None:
        super().__init__(error.message)
        self.error = error

    @property
    def kind(self) -> ErrorKind:
        return self.error.kind

    def __repr__(self) -> str:
        return f"JiraError({self.error.kind.value}, {self.error.message!r})"
