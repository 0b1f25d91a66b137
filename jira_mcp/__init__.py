# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Jira Cloud REST integration core for MCP tool servers."""

__version__ = "0.1.0"

from .errors import ClassifiedError, ErrorKind, ErrorOrigin, JiraError  # noqa: E402
from .result import Err, Ok, Result  # noqa: E402
from .credentials import Credentials, resolve_credentials  # noqa: E402
from .services import JiraService  # noqa: E402

__all__ = [
    "__version__",
    "ClassifiedError",
    "ErrorKind",
    "ErrorOrigin",
    "JiraError",
    "Ok",
    "Err",
    "Result",
    "Credentials",
    "resolve_credentials",
    "JiraService",
]
