# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Credential resolution for Jira Cloud Basic authentication."""

import base64
from dataclasses import dataclass, field

import structlog

from .config import Settings, get_settings
from .errors import ClassifiedError
from .result import Err, Ok, Result

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Credentials:
    """Identity, secret and origin used for every remote call.

    The secret is excluded from repr and never logged.
    """

    identity: str
    secret: str = field(repr=False)
    origin: str

    @property
    def authorization_header(self) -> str:
        """Return the HTTP Basic authorization header value."""
        token = base64.b64encode(f"{self.identity}:{self.secret}".encode()).decode()
        return f"Basic {token}"

    @property
    def masked_secret(self) -> str:
        if len(self.secret) <= 4:
            return "****"
        return f"****{self.secret[-4:]}"

    @property
    def cache_scope(self) -> str:
        """Key prefix isolating cached data per site and account."""
        return f"{self.origin}|{self.identity}"


def resolve_credentials(settings: Settings | None = None) -> Result[Credentials]:
    """Read the Jira credentials from configuration.

    The three values are checked in a fixed order (token, email, base URL)
    and the first missing one is reported. A trailing slash on the base URL
    is removed.

    Args:
        settings: Settings to read from (defaults to the cached settings).

    Returns:
        Ok(Credentials) or Err(AUTHENTICATION) naming the missing value.
    """
    settings = settings or get_settings()

    secret = settings.jira_api_token.strip()
    identity = settings.jira_email.strip()
    origin = settings.jira_base_url.strip().rstrip("/")

    if not secret:
        return _missing("JIRA_API_TOKEN environment variable is required")
    if not identity:
        return _missing("JIRA_EMAIL environment variable is required")
    if not origin:
        return _missing(
            "JIRA_BASE_URL environment variable is required "
            "(e.g., https://yourcompany.atlassian.net)"
        )

    credentials = Credentials(identity=identity, secret=secret, origin=origin)
    logger.debug("jira_credentials_resolved", origin=credentials.origin, identity=identity)
    return Ok(credentials)


def _missing(message: str) -> Err:
    logger.warning("jira_credentials_missing", reason=message)
    return Err(ClassifiedError.authentication(message))
