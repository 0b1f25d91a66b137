# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Authenticated request executor for the Jira Cloud REST API.

Every call is reduced to a Result: 2xx responses become Ok (None for an
empty body), everything else becomes a ClassifiedError. The executor never
retries on its own; compose it with ``jira_mcp.retry`` for that.
"""

import json
from typing import Any

import httpx
import structlog

from ..credentials import Credentials
from ..errors import ClassifiedError, ErrorOrigin
from ..result import Err, Ok, Result

logger = structlog.get_logger(__name__)

DEFAULT_API_PREFIX = "/rest/api/3"
DEFAULT_TIMEOUT_SECONDS = 30.0


def extract_error_message(response: httpx.Response) -> str:
    """Pick the most useful message out of a Jira error body.

    Jira reports failures as ``errorMessages`` (list), ``message`` (string)
    or ``errors`` (field -> message map). Falls back to the status line.
    """
    message = f"HTTP {response.status_code}: {response.reason_phrase}"
    try:
        data = response.json()
    except ValueError:
        return message
    if not isinstance(data, dict):
        return message

    error_messages = data.get("errorMessages")
    if isinstance(error_messages, list) and error_messages:
        return ", ".join(str(m) for m in error_messages)
    if data.get("message"):
        return str(data["message"])
    errors = data.get("errors")
    if isinstance(errors, dict) and errors:
        return "; ".join(f"{field}: {msg}" for field, msg in errors.items())
    return message


def classify_response(response: httpx.Response, path: str) -> ClassifiedError:
    """Map a non-2xx response to the error taxonomy."""
    status = response.status_code
    if status == 401:
        return ClassifiedError.authentication(
            f"Authentication failed: {extract_error_message(response)}",
            status_code=status,
        )
    if status == 404:
        return ClassifiedError.not_found(path)
    return ClassifiedError.api_error(
        extract_error_message(response),
        status_code=status,
        raw_body=response.text,
    )


class RequestExecutor:
    """Issues authenticated JSON requests against a Jira site.

    Pass a shared ``httpx.AsyncClient`` to pool connections across calls; its
    lifecycle then belongs to the caller. Without one, each call opens and
    closes its own client.
    """

    def __init__(
        self,
        api_prefix: str = DEFAULT_API_PREFIX,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_prefix = api_prefix.rstrip("/")
        self.timeout = timeout
        self._http_client = http_client

    def build_url(self, credentials: Credentials, path: str) -> str:
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{credentials.origin}{self.api_prefix}{path}"

    async def execute(
        self,
        credentials: Credentials,
        path: str,
        *,
        method: str = "GET",
        body: Any = None,
        headers: dict[str, str] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Result[Any]:
        """Perform one request and classify the outcome.

        Args:
            credentials: Resolved Jira credentials.
            path: Endpoint path below the API prefix (e.g. "/issue/PRJ-1").
            method: HTTP method.
            body: JSON-serializable payload, sent when not None.
            headers: Extra headers; they override the defaults.
            params: Query parameters (None values are dropped).

        Returns:
            Ok(parsed JSON or None) or Err(ClassifiedError).
        """
        request_headers = {
            "Authorization": credentials.authorization_header,
            "Accept": "application/json",
            "Content-Type": "application/json",
            **(headers or {}),
        }
        content = None
        if body is not None:
            try:
                content = json.dumps(body)
            except (TypeError, ValueError) as e:
                logger.warning("jira_request_body_invalid", path=path, error=str(e))
                return Err(ClassifiedError.invalid_input(f"Request body is not JSON serializable: {e}"))
        return await self._send(
            credentials,
            path,
            method=method.upper(),
            headers=request_headers,
            params=params,
            content=content,
        )

    async def upload(
        self,
        credentials: Credentials,
        path: str,
        files: list[tuple[str, bytes, str]],
    ) -> Result[Any]:
        """POST files as multipart/form-data.

        Args:
            credentials: Resolved Jira credentials.
            path: Endpoint path below the API prefix.
            files: (filename, content, content_type) triples.
        """
        request_headers = {
            "Authorization": credentials.authorization_header,
            "Accept": "application/json",
            "X-Atlassian-Token": "no-check",
        }
        multipart = [("file", (name, content, content_type)) for name, content, content_type in files]
        return await self._send(
            credentials,
            path,
            method="POST",
            headers=request_headers,
            files=multipart,
        )

    async def _send(
        self,
        credentials: Credentials,
        path: str,
        *,
        method: str,
        headers: dict[str, str],
        params: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> Result[Any]:
        url = self.build_url(credentials, path)
        query = {k: v for k, v in (params or {}).items() if v is not None} or None

        try:
            if self._http_client is not None:
                response = await self._http_client.request(
                    method, url, headers=headers, params=query, timeout=self.timeout, **kwargs
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.request(method, url, headers=headers, params=query, **kwargs)
        except httpx.RequestError as e:
            logger.error("jira_transport_error", method=method, path=path, error=type(e).__name__)
            return Err(
                ClassifiedError.unclassified(
                    f"Request to Jira failed: {type(e).__name__}: {e}",
                    ErrorOrigin.TRANSPORT,
                    cause=e,
                )
            )

        if not response.is_success:
            error = classify_response(response, path)
            logger.warning(
                "jira_request_failed",
                method=method,
                path=path,
                status_code=response.status_code,
                kind=error.kind.value,
            )
            return Err(error)

        if not response.content.strip():
            return Ok(None)

        try:
            return Ok(response.json())
        except ValueError as e:
            logger.error(
                "jira_response_decode_error",
                method=method,
                path=path,
                status_code=response.status_code,
            )
            return Err(
                ClassifiedError.unclassified(
                    f"Invalid JSON in Jira response for {path}: {e}",
                    ErrorOrigin.DECODE,
                    cause=e,
                )
            )
