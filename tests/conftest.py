# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Pytest configuration and shared fixtures."""

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from jira_mcp.clients import RequestExecutor
from jira_mcp.config import clear_settings_cache
from jira_mcp.credentials import Credentials
from jira_mcp.services import JiraService

JIRA_ORIGIN = "https://example.atlassian.net"


@pytest.fixture(autouse=True)
def reset_settings():
    """Reset settings cache before each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(identity="dev@example.com", secret="s3cr3t-token", origin=JIRA_ORIGIN)


def json_response(status_code: int, payload: Any = None, **kwargs: Any) -> httpx.Response:
    """Build an httpx response with a JSON body (or an empty one for None)."""
    content = b"" if payload is None else json.dumps(payload).encode()
    return httpx.Response(status_code, content=content, **kwargs)


class RecordingTransport:
    """httpx.MockTransport handler that records requests and replays responses.

    ``routes`` maps "METHOD /path" (path below the API prefix) to a response
    or to a list of responses consumed in order.
    """

    def __init__(self, routes: dict[str, httpx.Response | list[httpx.Response]] | None = None) -> None:
        self.routes = routes or {}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/rest/api/3")
        key = f"{request.method} {path}"
        response = self.routes.get(key)
        if response is None:
            return json_response(404, {"errorMessages": [f"No route for {key}"]})
        if isinstance(response, list):
            return response.pop(0)
        return response

    def last_json(self) -> Any:
        return json.loads(self.requests[-1].content)


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def http_client(transport: RecordingTransport):
    return httpx.AsyncClient(transport=httpx.MockTransport(transport))


@pytest.fixture
def executor(http_client: httpx.AsyncClient) -> RequestExecutor:
    return RequestExecutor(http_client=http_client)


@pytest.fixture
def make_service(credentials: Credentials, executor: RequestExecutor) -> Callable[..., JiraService]:
    def factory(**kwargs: Any) -> JiraService:
        return JiraService(credentials, executor=executor, **kwargs)

    return factory
