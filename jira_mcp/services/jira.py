# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Jira domain operations.

Each method issues one or more requests through the RequestExecutor and
returns a Result. Issue records are normalized before they are returned;
plain-text input destined for rich-text fields is wrapped as ADF.
"""

from collections.abc import Awaitable, Callable
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from ..attachments import FileData, create_attachment_summary, validate_file_for_upload
from ..cache import TTLCache
from ..clients import RequestExecutor
from ..config import Settings, get_settings
from ..credentials import Credentials, resolve_credentials
from ..errors import ClassifiedError
from ..jql import DEFAULT_ORDER_BY, SearchFilter, SortSpec, build_filtered_jql, build_jql_query
from ..pagination import DEFAULT_PAGE_SIZE, TokenPage, paginate_locally, paginate_offset, paginate_token
from ..result import Err, Ok, Result
from ..retry import RetryPolicy, with_result_retry
from ..transformer import from_plain_text, normalize_issue, rename_field_keys, to_plain_text

logger = structlog.get_logger(__name__)

SEARCH_USERS_MAX_RESULTS = 50
SEARCH_ISSUES_MAX_RESULTS = 20
DEFAULT_SEARCH_FIELDS = ("summary", "status", "assignee", "priority", "created", "updated")
DEFAULT_ISSUE_EXPAND = ("names", "schema", "operations", "editmeta", "changelog", "transitions")


def _segment(value: str) -> str:
    """Encode one path segment (issue keys, project keys, ids)."""
    return quote(value.strip(), safe="")


def _require(**values: Any) -> ClassifiedError | None:
    for name, value in values.items():
        if value is None or (isinstance(value, str) and not value.strip()):
            return ClassifiedError.invalid_input(f"{name} is required")
    return None


class JiraService:
    """Jira Cloud operations for one set of credentials."""

    def __init__(
        self,
        credentials: Credentials,
        executor: RequestExecutor | None = None,
        cache: TTLCache | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.credentials = credentials
        self.executor = executor or RequestExecutor()
        self.cache = cache
        self.retry_policy = retry_policy

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
        cache: TTLCache | None = None,
    ) -> Result["JiraService"]:
        """Build a service from configuration.

        Returns Err(AUTHENTICATION) when credentials are missing.
        """
        settings = settings or get_settings()
        credentials = resolve_credentials(settings)
        if isinstance(credentials, Err):
            return credentials
        executor = RequestExecutor(
            api_prefix=settings.jira_api_prefix,
            timeout=settings.jira_timeout_seconds,
            http_client=http_client,
        )
        return Ok(
            cls(
                credentials.value,
                executor=executor,
                cache=cache,
                retry_policy=settings.retry_policy(),
            )
        )

    async def _call(self, path: str, **kwargs: Any) -> Result[Any]:
        async def attempt() -> Result[Any]:
            return await self.executor.execute(self.credentials, path, **kwargs)

        if self.retry_policy is None:
            return await attempt()
        return await with_result_retry(attempt, self.retry_policy)

    async def _cached(self, name: str, load: Callable[[], Awaitable[Result[Any]]]) -> Result[Any]:
        if self.cache is None:
            return await load()
        key = f"{self.credentials.cache_scope}|{name}"
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("jira_cache_hit", key=name)
            return Ok(cached)
        result = await load()
        if isinstance(result, Ok) and result.value is not None:
            self.cache.set(key, result.value)
        return result

    # =========================================================================
    # CONNECTION
    # =========================================================================

    async def get_connection_info(self) -> Result[dict[str, Any]]:
        """Check connectivity and return server and account details."""
        server_info = await self._call("/serverInfo")
        if isinstance(server_info, Err):
            return server_info
        myself = await self._call("/myself")
        if isinstance(myself, Err):
            return myself
        return Ok(
            {
                "serverInfo": server_info.value,
                "currentUser": myself.value,
                "baseUrl": self.credentials.origin,
                "connected": True,
            }
        )

    # =========================================================================
    # PROJECTS & METADATA
    # =========================================================================

    async def get_projects(self) -> Result[list[dict[str, Any]]]:
        """List projects visible to the account."""
        return await self._cached("projects", lambda: self._call("/project"))

    async def get_project(self, project_key: str) -> Result[dict[str, Any]]:
        if error := _require(project_key=project_key):
            return Err(error)
        return await self._call(f"/project/{_segment(project_key)}")

    async def get_project_versions(self, project_key: str) -> Result[list[dict[str, Any]]]:
        if error := _require(project_key=project_key):
            return Err(error)
        return await self._call(f"/project/{_segment(project_key)}/version")

    async def get_issue_types(self) -> Result[list[dict[str, Any]]]:
        return await self._cached("issue_types", lambda: self._call("/issuetype"))

    async def get_fields(self) -> Result[list[dict[str, Any]]]:
        """Return the full field catalog (system and custom fields)."""
        return await self._cached("fields", lambda: self._call("/field"))

    async def list_field_summaries(
        self,
        max_results: int = DEFAULT_PAGE_SIZE,
        start_at: int = 0,
        field_types: list[str] | None = None,
        search_term: str | None = None,
    ) -> Result[dict[str, Any]]:
        """Return a page of compact field descriptions.

        Jira returns the catalog in one piece, so filtering and paging happen
        locally.

        Args:
            max_results: Page size.
            start_at: Offset into the filtered catalog.
            field_types: Any of "system" and "custom"; None keeps both.
            search_term: Case-insensitive match on field name or id.
        """
        fields = await self.get_fields()
        if isinstance(fields, Err):
            return fields

        wanted = set(field_types or ("system", "custom"))
        term = (search_term or "").strip().lower()
        summaries = []
        for field in fields.value or []:
            kind = "custom" if field.get("custom") else "system"
            if kind not in wanted:
                continue
            if term and term not in str(field.get("name", "")).lower() and term not in str(field.get("id", "")).lower():
                continue
            summaries.append(
                {
                    "id": field.get("id"),
                    "name": field.get("name"),
                    "custom": bool(field.get("custom")),
                    "schema": field.get("schema"),
                }
            )

        page_items, page = paginate_locally(summaries, start_at, max_results)
        return Ok(
            {
                "fields": page_items,
                "startAt": page.start_at,
                "maxResults": page.max_results,
                "total": page.total,
                "pagination": page.to_dict(),
            }
        )

    # =========================================================================
    # USERS
    # =========================================================================

    async def list_users(self, query: str | None = None, max_results: int = 10) -> Result[list[dict[str, Any]]]:
        params = {
            "query": query or None,
            "maxResults": min(max_results, SEARCH_USERS_MAX_RESULTS),
        }
        return await self._call("/user/search", params=params)

    async def search_users_by_email_exact(self, email: str) -> Result[list[dict[str, Any]]]:
        """Find users whose email matches exactly (case-insensitive)."""
        if error := _require(email=email):
            return Err(error)
        result = await self._call("/user/search", params={"query": email})
        if isinstance(result, Err):
            return result
        target = email.strip().lower()
        return Ok([u for u in result.value or [] if (u.get("emailAddress") or "").lower() == target])

    async def get_user(self, account_id: str) -> Result[dict[str, Any]]:
        if error := _require(account_id=account_id):
            return Err(error)
        return await self._call("/user", params={"accountId": account_id})

    # =========================================================================
    # SEARCH
    # =========================================================================

    async def search_issues(
        self,
        project_key: str | None = None,
        assignee: str | None = None,
        reporter: str | None = None,
        status: str | None = None,
        issue_type: str | None = None,
        priority: str | None = None,
        max_results: int = SEARCH_ISSUES_MAX_RESULTS,
        next_page_token: str | None = None,
        fields: list[str] | None = None,
        expand: list[str] | None = None,
    ) -> Result[dict[str, Any]]:
        """Search issues by simple equality filters."""
        jql = build_jql_query(
            {
                "project": project_key,
                "assignee": assignee,
                "reporter": reporter,
                "status": status,
                "issuetype": issue_type,
                "priority": priority,
            }
        )
        return await self.search_issues_using_jql(
            jql or DEFAULT_ORDER_BY,
            max_results=max_results,
            next_page_token=next_page_token,
            fields=fields,
            expand=expand,
        )

    async def search_issues_with_filters(
        self,
        filters: list[SearchFilter] | None = None,
        sort: list[SortSpec] | None = None,
        jql: str | None = None,
        max_results: int = SEARCH_ISSUES_MAX_RESULTS,
        next_page_token: str | None = None,
        fields: list[str] | None = None,
    ) -> Result[dict[str, Any]]:
        """Search with advanced filters and sort terms."""
        query = build_filtered_jql(filters, sort, base_jql=jql)
        return await self.search_issues_using_jql(
            query or DEFAULT_ORDER_BY,
            max_results=max_results,
            next_page_token=next_page_token,
            fields=fields,
        )

    async def _search_page(
        self,
        jql: str,
        max_results: int,
        next_page_token: str | None,
        fields: list[str] | None,
        expand: list[str] | None,
    ) -> Result[Any]:
        params: dict[str, Any] = {
            "jql": jql,
            "maxResults": max_results,
            "nextPageToken": next_page_token,
            "fields": ",".join(fields if fields is not None else DEFAULT_SEARCH_FIELDS) or None,
            "expand": ",".join(expand) if expand else None,
        }
        return await self._call("/search/jql", params=params)

    async def search_issues_using_jql(
        self,
        jql: str,
        max_results: int = SEARCH_ISSUES_MAX_RESULTS,
        next_page_token: str | None = None,
        fields: list[str] | None = None,
        expand: list[str] | None = None,
    ) -> Result[dict[str, Any]]:
        """Fetch one page of a JQL search (token pagination).

        Returns:
            Ok({"issues", "pagination", "isLast", "nextPageToken"?, "jql"}).
        """
        if error := _require(jql=jql):
            return Err(error)
        result = await self._search_page(jql, max_results, next_page_token, fields, expand)
        if isinstance(result, Err):
            return result

        data = result.value or {}
        page = TokenPage.from_response(data, max_results)
        if isinstance(page, Err):
            return page

        response: dict[str, Any] = {
            "issues": [normalize_issue(issue) for issue in data.get("issues") or []],
            "pagination": page.value.to_dict(),
            "isLast": page.value.is_last,
            "jql": jql,
        }
        if page.value.next_page_token:
            response["nextPageToken"] = page.value.next_page_token
        return Ok(response)

    async def search_all_issues(
        self,
        jql: str,
        max_items: int | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        fields: list[str] | None = None,
    ) -> Result[list[dict[str, Any]]]:
        """Follow continuation tokens until the last page or ``max_items``."""
        if error := _require(jql=jql):
            return Err(error)

        async def fetch(token: str | None, size: int) -> Result[Any]:
            return await self._search_page(jql, size, token, fields, None)

        result = await paginate_token(fetch, items_key="issues", max_results=page_size, max_items=max_items)
        return result.map(lambda issues: [normalize_issue(issue) for issue in issues])

    # =========================================================================
    # ISSUES
    # =========================================================================

    async def get_issue(
        self,
        issue_key: str,
        fields: list[str] | None = None,
        expand: list[str] | None = None,
        rename_fields: bool = False,
    ) -> Result[dict[str, Any]]:
        """Fetch one issue with normalized field values.

        Args:
            issue_key: Issue key or id.
            fields: Restrict returned fields (None = all).
            expand: Expansions (defaults include names and transitions).
            rename_fields: Replace field ids with display names using the
                ``names`` expansion.
        """
        if error := _require(issue_key=issue_key):
            return Err(error)
        expansions = list(expand) if expand is not None else list(DEFAULT_ISSUE_EXPAND)
        if rename_fields and "names" not in expansions:
            expansions.append("names")
        params = {
            "fields": ",".join(fields) if fields else None,
            "expand": ",".join(expansions) or None,
        }
        result = await self._call(f"/issue/{_segment(issue_key)}", params=params)
        if isinstance(result, Err):
            return result

        issue = normalize_issue(result.value or {})
        if rename_fields and isinstance(issue.get("fields"), dict):
            issue["fields"] = rename_field_keys(issue["fields"], issue.get("names"))
        return Ok(issue)

    @staticmethod
    def _issue_fields(
        summary: str | None = None,
        description: Any = None,
        priority: str | None = None,
        assignee: str | None = None,
        reporter: str | None = None,
        labels: list[str] | None = None,
        components: list[str] | None = None,
        fix_versions: list[str] | None = None,
        parent_key: str | None = None,
        custom_fields: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        fields: dict[str, Any] = {}
        if summary:
            fields["summary"] = summary
        if description:
            fields["description"] = from_plain_text(description)
        if priority:
            fields["priority"] = {"name": priority}
        if assignee:
            fields["assignee"] = {"accountId": assignee}
        if reporter:
            fields["reporter"] = {"accountId": reporter}
        if labels is not None:
            fields["labels"] = list(labels)
        if components is not None:
            fields["components"] = [{"name": name} for name in components]
        if fix_versions is not None:
            fields["fixVersions"] = [{"name": name} for name in fix_versions]
        if parent_key:
            fields["parent"] = {"key": parent_key}
        if custom_fields:
            fields.update(custom_fields)
        return fields

    async def create_issue(
        self,
        project_key: str,
        issue_type: str,
        summary: str,
        description: Any = None,
        priority: str | None = None,
        assignee: str | None = None,
        reporter: str | None = None,
        labels: list[str] | None = None,
        components: list[str] | None = None,
        fix_versions: list[str] | None = None,
        parent_key: str | None = None,
        custom_fields: dict[str, Any] | None = None,
    ) -> Result[dict[str, Any]]:
        """Create an issue. ``description`` may be plain text or an ADF document."""
        if error := _require(project_key=project_key, issue_type=issue_type, summary=summary):
            return Err(error)
        fields = {
            "project": {"key": project_key},
            "issuetype": {"name": issue_type},
            **self._issue_fields(
                summary=summary,
                description=description,
                priority=priority,
                assignee=assignee,
                reporter=reporter,
                labels=labels or None,
                components=components or None,
                fix_versions=fix_versions or None,
                parent_key=parent_key,
                custom_fields=custom_fields,
            ),
        }
        result = await self._call("/issue", method="POST", body={"fields": fields})
        if isinstance(result, Ok):
            logger.info("jira_issue_created", key=(result.value or {}).get("key"), project=project_key)
        return result

    async def update_issue(
        self,
        issue_key: str,
        summary: str | None = None,
        description: Any = None,
        priority: str | None = None,
        assignee: str | None = None,
        labels: list[str] | None = None,
        components: list[str] | None = None,
        fix_versions: list[str] | None = None,
        custom_fields: dict[str, Any] | None = None,
    ) -> Result[None]:
        """Update issue fields. List arguments replace the current values."""
        if error := _require(issue_key=issue_key):
            return Err(error)
        fields = self._issue_fields(
            summary=summary,
            description=description,
            priority=priority,
            assignee=assignee,
            labels=labels,
            components=components,
            fix_versions=fix_versions,
            custom_fields=custom_fields,
        )
        if not fields:
            return Err(ClassifiedError.invalid_input("At least one field to update is required"))
        return await self._call(f"/issue/{_segment(issue_key)}", method="PUT", body={"fields": fields})

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    async def get_transitions(self, issue_key: str) -> Result[list[dict[str, Any]]]:
        if error := _require(issue_key=issue_key):
            return Err(error)
        result = await self._call(f"/issue/{_segment(issue_key)}/transitions")
        return result.map(lambda data: (data or {}).get("transitions", []))

    async def transition_issue(
        self,
        issue_key: str,
        transition_id: str,
        comment: str | None = None,
        fields: dict[str, Any] | None = None,
    ) -> Result[None]:
        """Move an issue through a workflow transition."""
        if error := _require(issue_key=issue_key, transition_id=transition_id):
            return Err(error)
        body: dict[str, Any] = {"transition": {"id": transition_id}}
        if fields:
            body["fields"] = fields
        if comment:
            body["update"] = {"comment": [{"add": {"body": from_plain_text(comment)}}]}
        return await self._call(f"/issue/{_segment(issue_key)}/transitions", method="POST", body=body)

    # =========================================================================
    # COMMENTS
    # =========================================================================

    async def add_comment(
        self,
        issue_key: str,
        body: Any,
        visibility: dict[str, str] | None = None,
    ) -> Result[dict[str, Any]]:
        """Add a comment. ``visibility`` is ``{"type": "group"|"role", "value": ...}``."""
        if error := _require(issue_key=issue_key, body=body):
            return Err(error)
        payload: dict[str, Any] = {"body": from_plain_text(body)}
        if visibility:
            payload["visibility"] = visibility
        return await self._call(f"/issue/{_segment(issue_key)}/comment", method="POST", body=payload)

    async def get_issue_comments(self, issue_key: str, page_size: int = DEFAULT_PAGE_SIZE) -> Result[list[dict[str, Any]]]:
        """Return every comment as ``{author: {displayName, emailAddress}, body}``.

        Bodies prefer Jira's rendered HTML when available and fall back to
        the ADF body as plain text.
        """
        if error := _require(issue_key=issue_key):
            return Err(error)
        path = f"/issue/{_segment(issue_key)}/comment"

        async def fetch(start_at: int, max_results: int) -> Result[Any]:
            return await self._call(
                path,
                params={"startAt": start_at, "maxResults": max_results, "expand": "renderedBody"},
            )

        result = await paginate_offset(fetch, items_key="comments", max_results=page_size)
        return result.map(lambda comments: [self._transform_comment(c) for c in comments])

    @staticmethod
    def _transform_comment(comment: dict[str, Any]) -> dict[str, Any]:
        author = comment.get("author") or {}
        body = comment.get("renderedBody") or to_plain_text(comment.get("body"))
        return {
            "author": {
                "displayName": author.get("displayName") or "",
                "emailAddress": author.get("emailAddress") or "",
            },
            "body": body,
        }

    # =========================================================================
    # LINKS
    # =========================================================================

    async def get_issue_link_types(self) -> Result[list[dict[str, Any]]]:
        result = await self._call("/issueLinkType")
        return result.map(lambda data: (data or {}).get("issueLinkTypes", []))

    async def create_issue_link(
        self,
        inward_issue_key: str,
        outward_issue_key: str,
        link_type: str,
        comment: str | None = None,
    ) -> Result[None]:
        if error := _require(
            inward_issue_key=inward_issue_key,
            outward_issue_key=outward_issue_key,
            link_type=link_type,
        ):
            return Err(error)
        body: dict[str, Any] = {
            "type": {"name": link_type},
            "inwardIssue": {"key": inward_issue_key},
            "outwardIssue": {"key": outward_issue_key},
        }
        if comment:
            body["comment"] = {"body": from_plain_text(comment)}
        return await self._call("/issueLink", method="POST", body=body)

    async def delete_issue_link(self, link_id: str) -> Result[None]:
        if error := _require(link_id=link_id):
            return Err(error)
        return await self._call(f"/issueLink/{_segment(link_id)}", method="DELETE")

    # =========================================================================
    # ATTACHMENTS
    # =========================================================================

    async def get_issue_attachments(self, issue_key: str) -> Result[list[dict[str, Any]]]:
        if error := _require(issue_key=issue_key):
            return Err(error)
        result = await self._call(f"/issue/{_segment(issue_key)}", params={"fields": "attachment"})
        return result.map(lambda data: ((data or {}).get("fields") or {}).get("attachment") or [])

    async def upload_attachments(self, issue_key: str, files: list[FileData]) -> Result[dict[str, Any]]:
        """Validate and upload files to an issue.

        Returns:
            Ok({"attachments": [...], "summary": str}).
        """
        if error := _require(issue_key=issue_key):
            return Err(error)
        if not files:
            return Err(ClassifiedError.invalid_input("At least one file is required"))
        for file in files:
            validation = validate_file_for_upload(file)
            if isinstance(validation, Err):
                return validation

        result = await self.executor.upload(
            self.credentials,
            f"/issue/{_segment(issue_key)}/attachments",
            [file.as_upload() for file in files],
        )
        if isinstance(result, Err):
            return result
        attachments = result.value or []
        logger.info("jira_attachments_uploaded", issue_key=issue_key, count=len(attachments))
        return Ok({"attachments": attachments, "summary": create_attachment_summary(attachments)})
