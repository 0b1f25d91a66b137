# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Pagination over the two Jira page contracts.

Jira exposes two unrelated paging schemes and each operation uses exactly
one of them:

- offset: ``startAt`` / ``maxResults`` / ``total`` (legacy endpoints,
  comments, locally sliced catalogs)
- token: ``nextPageToken`` / ``isLast`` (``/search/jql``), no total

The token is opaque and echoed verbatim. The only notion both share is
``has_more``.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import structlog

from .errors import ClassifiedError, ErrorOrigin
from .result import Err, Ok, Result

logger = structlog.get_logger(__name__)

DEFAULT_PAGE_SIZE = 50

OffsetFetch = Callable[[int, int], Awaitable[Result[Any]]]
TokenFetch = Callable[[str | None, int], Awaitable[Result[Any]]]


@dataclass(frozen=True)
class OffsetPage:
    """Position inside an offset-paged collection."""

    start_at: int
    max_results: int
    total: int

    @classmethod
    def from_response(cls, data: dict[str, Any], default_max_results: int = DEFAULT_PAGE_SIZE) -> "OffsetPage":
        """Read the page position from an offset-paged response body."""
        start_at = int(data.get("startAt") or 0)
        max_results = int(data.get("maxResults") or default_max_results)
        total = int(data.get("total") or 0)
        return cls(start_at=start_at, max_results=max_results, total=total)

    @property
    def has_more(self) -> bool:
        return self.start_at + self.max_results < self.total

    @property
    def next_start_at(self) -> int | None:
        if not self.has_more:
            return None
        return self.start_at + self.max_results

    def to_dict(self) -> dict[str, Any]:
        page: dict[str, Any] = {
            "startAt": self.start_at,
            "maxResults": self.max_results,
            "total": self.total,
            "hasMore": self.has_more,
        }
        if self.next_start_at is not None:
            page["nextStartAt"] = self.next_start_at
        return page


@dataclass(frozen=True)
class TokenPage:
    """Position inside a token-paged collection. There is no total."""

    max_results: int
    is_last: bool
    next_page_token: str | None = None

    @classmethod
    def from_response(cls, data: dict[str, Any], requested_max_results: int) -> Result["TokenPage"]:
        """Read the page position from a token-paged response body.

        A response that says more pages exist but carries no token is a
        protocol error. When ``isLast`` is absent it is inferred from the
        token's absence. A last page never carries a token.
        """
        token = data.get("nextPageToken") or None
        is_last = data.get("isLast")
        if is_last is None:
            is_last = token is None
        if not is_last and token is None:
            logger.warning("token_page_missing_token", max_results=requested_max_results)
            return Err(
                ClassifiedError.unclassified(
                    "Jira reported more results (isLast=false) without a nextPageToken",
                    ErrorOrigin.PROTOCOL,
                )
            )
        if is_last:
            token = None
        max_results = int(data.get("maxResults") or requested_max_results)
        return Ok(cls(max_results=max_results, is_last=bool(is_last), next_page_token=token))

    @property
    def has_more(self) -> bool:
        return not self.is_last

    def to_dict(self) -> dict[str, Any]:
        page: dict[str, Any] = {
            "maxResults": self.max_results,
            "isLast": self.is_last,
            "hasMore": self.has_more,
        }
        if self.next_page_token is not None:
            page["nextPageToken"] = self.next_page_token
        return page


def paginate_locally(items: list[Any], start_at: int = 0, max_results: int = DEFAULT_PAGE_SIZE) -> tuple[list[Any], OffsetPage]:
    """Slice a fully fetched list into an offset page."""
    start_at = max(start_at, 0)
    page = OffsetPage(start_at=start_at, max_results=max_results, total=len(items))
    return items[start_at:start_at + max_results], page


async def paginate_offset(
    fetch_page: OffsetFetch,
    *,
    items_key: str,
    max_results: int = DEFAULT_PAGE_SIZE,
    start_at: int = 0,
    max_items: int | None = None,
) -> Result[list[Any]]:
    """Collect items across offset pages.

    The page size stays fixed across iterations. Iteration stops when the
    remote reports no more pages, returns an empty page, or ``max_items``
    is reached. The first failed page is returned unchanged.

    Args:
        fetch_page: ``(start_at, max_results) -> Result[response body]``.
        items_key: Key holding the page items in the response body.
        max_results: Page size.
        start_at: Initial offset.
        max_items: Optional cap on collected items.
    """
    collected: list[Any] = []
    while True:
        result = await fetch_page(start_at, max_results)
        if isinstance(result, Err):
            return result
        data = result.value or {}
        items = data.get(items_key) or []
        collected.extend(items)

        if max_items is not None and len(collected) >= max_items:
            return Ok(collected[:max_items])

        page = OffsetPage.from_response(data, default_max_results=max_results)
        # Some endpoints report a stale total; an empty page always ends iteration
        if not items or page.next_start_at is None:
            return Ok(collected)
        start_at = page.next_start_at


async def paginate_token(
    fetch_page: TokenFetch,
    *,
    items_key: str = "issues",
    max_results: int = DEFAULT_PAGE_SIZE,
    max_items: int | None = None,
) -> Result[list[Any]]:
    """Collect items across token pages.

    Args:
        fetch_page: ``(next_page_token, max_results) -> Result[response body]``.
            The first call receives None.
        items_key: Key holding the page items in the response body.
        max_results: Page size.
        max_items: Optional cap on collected items.
    """
    collected: list[Any] = []
    token: str | None = None
    while True:
        result = await fetch_page(token, max_results)
        if isinstance(result, Err):
            return result
        data = result.value or {}
        collected.extend(data.get(items_key) or [])

        if max_items is not None and len(collected) >= max_items:
            return Ok(collected[:max_items])

        page_result = TokenPage.from_response(data, max_results)
        if isinstance(page_result, Err):
            return page_result
        page = page_result.value
        if not page.has_more:
            return Ok(collected)
        token = page.next_page_token
