# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Tests for JiraService domain operations."""

from unittest.mock import AsyncMock, patch

import pytest

from conftest import json_response
from jira_mcp.attachments import FileData
from jira_mcp.cache import TTLCache
from jira_mcp.config import Settings
from jira_mcp.errors import ErrorKind, ErrorOrigin
from jira_mcp.jql import SearchFilter, SortSpec
from jira_mcp.result import Ok
from jira_mcp.retry import RetryPolicy
from jira_mcp.services import JiraService

ADF = {
    "type": "doc",
    "version": 1,
    "content": [{"type": "paragraph", "content": [{"type": "text", "text": "Body text"}]}],
}


def adf_text(value: str) -> dict:
    return {"type": "doc", "version": 1, "content": [{"type": "paragraph", "content": [{"type": "text", "text": value}]}]}


# =============================================================================
# Construction
# =============================================================================


class TestFromSettings:

    def test_missing_credentials(self):
        result = JiraService.from_settings(Settings(_env_file=None, jira_api_token=""))
        assert result.error.kind is ErrorKind.AUTHENTICATION

    def test_builds_service(self):
        settings = Settings(
            _env_file=None,
            jira_api_token="t",
            jira_email="e@x.com",
            jira_base_url="https://x.atlassian.net/",
            jira_api_prefix="/rest/api/2",
            retry_enabled=True,
        )
        service = JiraService.from_settings(settings).unwrap()
        assert service.credentials.origin == "https://x.atlassian.net"
        assert service.executor.api_prefix == "/rest/api/2"
        assert service.retry_policy == RetryPolicy(max_attempts=3, base_delay=1.0, max_delay=30.0)


# =============================================================================
# Connection & metadata
# =============================================================================


class TestConnection:

    @pytest.mark.asyncio
    async def test_connection_info(self, make_service, transport):
        transport.routes["GET /serverInfo"] = json_response(200, {"version": "1001.0.0"})
        transport.routes["GET /myself"] = json_response(200, {"accountId": "me"})

        result = await make_service().get_connection_info()

        assert result == Ok({
            "serverInfo": {"version": "1001.0.0"},
            "currentUser": {"accountId": "me"},
            "baseUrl": "https://example.atlassian.net",
            "connected": True,
        })

    @pytest.mark.asyncio
    async def test_first_failure_returned(self, make_service, transport):
        transport.routes["GET /serverInfo"] = json_response(401, {"errorMessages": ["nope"]})

        result = await make_service().get_connection_info()

        assert result.error.kind is ErrorKind.AUTHENTICATION
        assert len(transport.requests) == 1


class TestMetadataCache:
    """Metadata reads are cached per site and account."""

    @pytest.mark.asyncio
    async def test_projects_cached(self, make_service, transport):
        transport.routes["GET /project"] = json_response(200, [{"key": "PRJ"}])
        service = make_service(cache=TTLCache())

        first = await service.get_projects()
        second = await service.get_projects()

        assert first == second == Ok([{"key": "PRJ"}])
        assert len(transport.requests) == 1

    @pytest.mark.asyncio
    async def test_errors_not_cached(self, make_service, transport):
        transport.routes["GET /issuetype"] = [
            json_response(503, {"message": "down"}),
            json_response(200, [{"name": "Bug"}]),
        ]
        service = make_service(cache=TTLCache())

        assert not (await service.get_issue_types()).ok
        assert (await service.get_issue_types()).unwrap() == [{"name": "Bug"}]

    @pytest.mark.asyncio
    async def test_no_cache(self, make_service, transport):
        transport.routes["GET /project"] = json_response(200, [])
        service = make_service()
        await service.get_projects()
        await service.get_projects()
        assert len(transport.requests) == 2

    @pytest.mark.asyncio
    async def test_project_paths(self, make_service, transport):
        transport.routes["GET /project/PRJ"] = json_response(200, {"key": "PRJ"})
        transport.routes["GET /project/PRJ/version"] = json_response(200, [{"name": "1.0"}])
        service = make_service()

        assert (await service.get_project("PRJ")).unwrap() == {"key": "PRJ"}
        assert (await service.get_project_versions("PRJ")).unwrap() == [{"name": "1.0"}]

    @pytest.mark.asyncio
    async def test_blank_key_rejected_without_request(self, make_service, transport):
        result = await make_service().get_project("  ")
        assert result.error.origin is ErrorOrigin.INPUT
        assert transport.requests == []


class TestFieldSummaries:

    FIELDS = [
        {"id": "summary", "name": "Summary", "custom": False, "schema": {"type": "string"}},
        {"id": "customfield_10016", "name": "Story Points", "custom": True, "schema": {"type": "number"}},
        {"id": "customfield_10020", "name": "Sprint", "custom": True, "schema": {"type": "array"}},
        {"id": "status", "name": "Status", "custom": False},
    ]

    @pytest.mark.asyncio
    async def test_paging_is_local(self, make_service, transport):
        transport.routes["GET /field"] = json_response(200, self.FIELDS)

        result = (await make_service().list_field_summaries(max_results=2, start_at=0)).unwrap()

        assert [f["id"] for f in result["fields"]] == ["summary", "customfield_10016"]
        assert result["total"] == 4
        assert result["pagination"]["nextStartAt"] == 2

    @pytest.mark.asyncio
    async def test_filters(self, make_service, transport):
        transport.routes["GET /field"] = json_response(200, self.FIELDS)

        result = (await make_service().list_field_summaries(field_types=["custom"], search_term="story")).unwrap()

        assert result["fields"] == [
            {"id": "customfield_10016", "name": "Story Points", "custom": True, "schema": {"type": "number"}}
        ]
        assert result["pagination"]["hasMore"] is False


# =============================================================================
# Users
# =============================================================================


class TestUsers:

    @pytest.mark.asyncio
    async def test_list_users_caps_max_results(self, make_service, transport):
        transport.routes["GET /user/search"] = json_response(200, [])

        await make_service().list_users("ann", max_results=500)

        params = transport.requests[0].url.params
        assert params["maxResults"] == "50"
        assert params["query"] == "ann"

    @pytest.mark.asyncio
    async def test_exact_email_match(self, make_service, transport):
        transport.routes["GET /user/search"] = json_response(200, [
            {"accountId": "1", "emailAddress": "Ann@Example.com"},
            {"accountId": "2", "emailAddress": "ann.other@example.com"},
            {"accountId": "3"},
        ])

        result = await make_service().search_users_by_email_exact("ann@example.com")

        assert [u["accountId"] for u in result.unwrap()] == ["1"]


# =============================================================================
# Search
# =============================================================================


class TestSearch:

    @pytest.mark.asyncio
    async def test_search_page_normalized(self, make_service, transport):
        transport.routes["GET /search/jql"] = json_response(200, {
            "issues": [{"key": "PRJ-1", "fields": {"assignee": {"displayName": "A", "emailAddress": "a@x", "active": True}}}],
            "isLast": False,
            "nextPageToken": "tok-1",
        })

        result = (await make_service().search_issues_using_jql("project = PRJ", max_results=1)).unwrap()

        assert result["issues"][0]["fields"]["assignee"] == {"displayName": "A", "emailAddress": "a@x"}
        assert result["nextPageToken"] == "tok-1"
        assert result["pagination"] == {"maxResults": 1, "isLast": False, "hasMore": True, "nextPageToken": "tok-1"}
        params = transport.requests[0].url.params
        assert params["jql"] == "project = PRJ"
        assert params["fields"] == "summary,status,assignee,priority,created,updated"
        assert "startAt" not in params

    @pytest.mark.asyncio
    async def test_token_forwarded(self, make_service, transport):
        transport.routes["GET /search/jql"] = json_response(200, {"issues": [], "isLast": True})

        await make_service().search_issues_using_jql("x = 1", next_page_token="tok-1", expand=["names"])

        params = transport.requests[0].url.params
        assert params["nextPageToken"] == "tok-1"
        assert params["expand"] == "names"

    @pytest.mark.asyncio
    async def test_protocol_violation(self, make_service, transport):
        transport.routes["GET /search/jql"] = json_response(200, {"issues": [], "isLast": False})

        result = await make_service().search_issues_using_jql("x = 1")

        assert result.error.origin is ErrorOrigin.PROTOCOL

    @pytest.mark.asyncio
    async def test_simple_search_builds_jql(self, make_service, transport):
        transport.routes["GET /search/jql"] = json_response(200, {"issues": [], "isLast": True})

        await make_service().search_issues(project_key="PRJ", status="In Progress", issue_type="Bug")

        assert transport.requests[0].url.params["jql"] == 'project = "PRJ" AND status = "In Progress" AND issuetype = "Bug"'

    @pytest.mark.asyncio
    async def test_simple_search_default_order(self, make_service, transport):
        transport.routes["GET /search/jql"] = json_response(200, {"issues": [], "isLast": True})

        await make_service().search_issues()

        assert transport.requests[0].url.params["jql"] == "order by updated DESC"

    @pytest.mark.asyncio
    async def test_filtered_search(self, make_service, transport):
        transport.routes["GET /search/jql"] = json_response(200, {"issues": [], "isLast": True})

        await make_service().search_issues_with_filters(
            filters=[SearchFilter(field="summary", value="crash", fuzzy=True)],
            sort=[SortSpec(field="created", direction="ASC")],
        )

        assert transport.requests[0].url.params["jql"] == 'summary ~ "crash" ORDER BY created ASC'

    @pytest.mark.asyncio
    async def test_search_all_follows_tokens(self, make_service, transport):
        transport.routes["GET /search/jql"] = [
            json_response(200, {"issues": [{"key": "A-1"}], "isLast": False, "nextPageToken": "t2"}),
            json_response(200, {"issues": [{"key": "A-2"}], "isLast": True}),
        ]

        result = await make_service().search_all_issues("project = A", page_size=1)

        assert [i["key"] for i in result.unwrap()] == ["A-1", "A-2"]
        assert transport.requests[1].url.params["nextPageToken"] == "t2"

    @pytest.mark.asyncio
    async def test_blank_jql_rejected(self, make_service):
        assert (await make_service().search_issues_using_jql("")).error.origin is ErrorOrigin.INPUT


# =============================================================================
# Issues
# =============================================================================


class TestIssues:

    @pytest.mark.asyncio
    async def test_get_issue_normalized(self, make_service, transport):
        transport.routes["GET /issue/PRJ-1"] = json_response(200, {
            "key": "PRJ-1",
            "names": {"customfield_1": "Story Points"},
            "fields": {"description": ADF, "customfield_1": 3, "priority": {"name": "High", "id": "2"}},
        })

        result = (await make_service().get_issue("PRJ-1", rename_fields=True)).unwrap()

        assert result["fields"] == {"description": "Body text", "Story Points": 3, "priority": {"name": "High"}}
        assert transport.requests[0].url.params["expand"] == "names,schema,operations,editmeta,changelog,transitions"

    @pytest.mark.asyncio
    async def test_get_issue_not_found(self, make_service, transport):
        result = await make_service().get_issue("PRJ-404")
        assert result.error.kind is ErrorKind.NOT_FOUND
        assert result.error.identifier == "/issue/PRJ-404"

    @pytest.mark.asyncio
    async def test_create_issue_payload(self, make_service, transport):
        transport.routes["POST /issue"] = json_response(201, {"id": "10001", "key": "PRJ-2"})

        result = await make_service().create_issue(
            project_key="PRJ",
            issue_type="Bug",
            summary="Crash on start",
            description="Steps to reproduce",
            priority="High",
            assignee="acc-1",
            labels=["ui"],
            components=["Frontend"],
            fix_versions=["1.2"],
            parent_key="PRJ-1",
            custom_fields={"customfield_10016": 5},
        )

        assert result.unwrap()["key"] == "PRJ-2"
        assert transport.last_json() == {
            "fields": {
                "project": {"key": "PRJ"},
                "issuetype": {"name": "Bug"},
                "summary": "Crash on start",
                "description": adf_text("Steps to reproduce"),
                "priority": {"name": "High"},
                "assignee": {"accountId": "acc-1"},
                "labels": ["ui"],
                "components": [{"name": "Frontend"}],
                "fixVersions": [{"name": "1.2"}],
                "parent": {"key": "PRJ-1"},
                "customfield_10016": 5,
            }
        }

    @pytest.mark.asyncio
    async def test_create_issue_adf_description_kept(self, make_service, transport):
        transport.routes["POST /issue"] = json_response(201, {"key": "PRJ-3"})

        await make_service().create_issue("PRJ", "Task", "x", description=ADF)

        assert transport.last_json()["fields"]["description"] == ADF

    @pytest.mark.asyncio
    async def test_create_issue_api_error(self, make_service, transport):
        transport.routes["POST /issue"] = json_response(400, {"errorMessages": [], "errors": {"summary": "required"}})

        result = await make_service().create_issue("PRJ", "Task", "x")

        assert result.error.kind is ErrorKind.API_ERROR
        assert result.error.message == "summary: required"

    @pytest.mark.asyncio
    async def test_update_issue(self, make_service, transport):
        transport.routes["PUT /issue/PRJ-1"] = json_response(204)

        result = await make_service().update_issue("PRJ-1", summary="New", labels=[])

        assert result == Ok(None)
        assert transport.last_json() == {"fields": {"summary": "New", "labels": []}}

    @pytest.mark.asyncio
    async def test_update_requires_fields(self, make_service, transport):
        result = await make_service().update_issue("PRJ-1")
        assert result.error.origin is ErrorOrigin.INPUT
        assert transport.requests == []


class TestTransitionsAndComments:

    @pytest.mark.asyncio
    async def test_get_transitions(self, make_service, transport):
        transport.routes["GET /issue/PRJ-1/transitions"] = json_response(200, {"transitions": [{"id": "31", "name": "Done"}]})

        assert (await make_service().get_transitions("PRJ-1")).unwrap() == [{"id": "31", "name": "Done"}]

    @pytest.mark.asyncio
    async def test_transition_with_comment(self, make_service, transport):
        transport.routes["POST /issue/PRJ-1/transitions"] = json_response(204)

        result = await make_service().transition_issue("PRJ-1", "31", comment="Shipped", fields={"resolution": {"name": "Done"}})

        assert result == Ok(None)
        assert transport.last_json() == {
            "transition": {"id": "31"},
            "fields": {"resolution": {"name": "Done"}},
            "update": {"comment": [{"add": {"body": adf_text("Shipped")}}]},
        }

    @pytest.mark.asyncio
    async def test_add_comment_with_visibility(self, make_service, transport):
        transport.routes["POST /issue/PRJ-1/comment"] = json_response(201, {"id": "100"})

        await make_service().add_comment("PRJ-1", "Looks good", visibility={"type": "role", "value": "Developers"})

        assert transport.last_json() == {
            "body": adf_text("Looks good"),
            "visibility": {"type": "role", "value": "Developers"},
        }

    @pytest.mark.asyncio
    async def test_get_comments_offset_paged(self, make_service, transport):
        transport.routes["GET /issue/PRJ-1/comment"] = [
            json_response(200, {
                "startAt": 0, "maxResults": 1, "total": 2,
                "comments": [{"author": {"displayName": "A", "emailAddress": "a@x"}, "body": ADF, "renderedBody": "<p>Body text</p>"}],
            }),
            json_response(200, {
                "startAt": 1, "maxResults": 1, "total": 2,
                "comments": [{"author": {"displayName": "B"}, "body": adf_text("Second")}],
            }),
        ]

        result = await make_service().get_issue_comments("PRJ-1", page_size=1)

        assert result.unwrap() == [
            {"author": {"displayName": "A", "emailAddress": "a@x"}, "body": "<p>Body text</p>"},
            {"author": {"displayName": "B", "emailAddress": ""}, "body": "Second"},
        ]
        assert [r.url.params["startAt"] for r in transport.requests] == ["0", "1"]


class TestLinksAndAttachments:

    @pytest.mark.asyncio
    async def test_link_types(self, make_service, transport):
        transport.routes["GET /issueLinkType"] = json_response(200, {"issueLinkTypes": [{"name": "Blocks"}]})
        assert (await make_service().get_issue_link_types()).unwrap() == [{"name": "Blocks"}]

    @pytest.mark.asyncio
    async def test_create_link(self, make_service, transport):
        transport.routes["POST /issueLink"] = json_response(201)

        result = await make_service().create_issue_link("PRJ-1", "PRJ-2", "Blocks", comment="related")

        assert result == Ok(None)
        assert transport.last_json() == {
            "type": {"name": "Blocks"},
            "inwardIssue": {"key": "PRJ-1"},
            "outwardIssue": {"key": "PRJ-2"},
            "comment": {"body": adf_text("related")},
        }

    @pytest.mark.asyncio
    async def test_delete_link(self, make_service, transport):
        transport.routes["DELETE /issueLink/10"] = json_response(204)
        assert await make_service().delete_issue_link("10") == Ok(None)

    @pytest.mark.asyncio
    async def test_get_attachments(self, make_service, transport):
        transport.routes["GET /issue/PRJ-1"] = json_response(200, {"fields": {"attachment": [{"id": "1"}]}})

        result = await make_service().get_issue_attachments("PRJ-1")

        assert result.unwrap() == [{"id": "1"}]
        assert transport.requests[0].url.params["fields"] == "attachment"

    @pytest.mark.asyncio
    async def test_upload(self, make_service, transport):
        transport.routes["POST /issue/PRJ-1/attachments"] = json_response(200, [{"filename": "a.txt", "size": 5}])

        result = await make_service().upload_attachments("PRJ-1", [FileData("a.txt", b"hello", "text/plain")])

        assert result.unwrap()["summary"] == "Successfully uploaded 1 file(s):\n- a.txt (5.0 B)"

    @pytest.mark.asyncio
    async def test_upload_rejects_blocked_file(self, make_service, transport):
        result = await make_service().upload_attachments("PRJ-1", [FileData("x.exe", b"MZ")])
        assert result.error.origin is ErrorOrigin.INPUT
        assert transport.requests == []


# =============================================================================
# Retry composition
# =============================================================================


class TestRetryComposition:

    @pytest.mark.asyncio
    async def test_transient_failures_retried(self, make_service, transport):
        transport.routes["GET /myself"] = [
            json_response(503, {"message": "down"}),
            json_response(200, {"accountId": "me"}),
        ]
        service = make_service(retry_policy=RetryPolicy(max_attempts=3, base_delay=0.5))

        with patch("jira_mcp.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            transport.routes["GET /serverInfo"] = json_response(200, {})
            result = await service.get_connection_info()

        assert result.ok
        sleep.assert_awaited_once_with(0.5)

    @pytest.mark.asyncio
    async def test_terminal_failure_not_retried(self, make_service, transport):
        service = make_service(retry_policy=RetryPolicy(max_attempts=3, base_delay=0.5))

        result = await service.get_issue("PRJ-404")

        assert result.error.kind is ErrorKind.NOT_FOUND
        assert len(transport.requests) == 1
