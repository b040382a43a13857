"""Tests for JiraProvider using pytest-httpx."""

import json

import pytest
from pytest_httpx import HTTPXMock

from ralphy.config import JiraConfig
from ralphy.errors import ConfigError
from ralphy.models import ErrorKind, IssueFilter, Priority, StateType
from ralphy.providers.jira import JiraProvider, adf_to_text

HOST = "https://example.atlassian.net"
SEARCH_URL = f"{HOST}/rest/api/3/search/jql"


def _config(project: str = "PROJ") -> JiraConfig:
    return JiraConfig(host=f"{HOST}/", email="dev@example.com", api_token="jira_token", project=project)


def _status(name: str = "In Progress", category: str = "indeterminate") -> dict:
    return {"id": "3", "name": name, "statusCategory": {"key": category}}


def _node(key: str = "PROJ-42", status: dict | None = None, project_key: str = "PROJ") -> dict:
    return {
        "id": "10042",
        "key": key,
        "fields": {
            "summary": "Fix the importer",
            "description": {
                "type": "doc",
                "version": 1,
                "content": [
                    {"type": "paragraph", "content": [{"type": "text", "text": "First line"}]},
                    {
                        "type": "paragraph",
                        "content": [{"type": "text", "text": "Second "}, {"type": "text", "text": "line"}],
                    },
                ],
            },
            "priority": {"name": "High"},
            "status": status or _status(),
            "labels": ["ralph-candidate", "bug"],
            "project": {"id": "10000", "key": project_key},
        },
    }


def _filter(label: str = "ralph-candidate") -> IssueFilter:
    return IssueFilter(team_id="PROJ", label_name=label, project_id="PROJ")


class TestAdf:
    def test_paragraphs_joined_by_newline(self) -> None:
        assert adf_to_text(_node()["fields"]["description"]) == "First line\nSecond line"

    def test_hard_break(self) -> None:
        doc = {
            "type": "doc",
            "content": [
                {
                    "type": "paragraph",
                    "content": [{"type": "text", "text": "a"}, {"type": "hardBreak"}, {"type": "text", "text": "b"}],
                }
            ],
        }
        assert adf_to_text(doc) == "a\nb"

    def test_plain_string_passthrough(self) -> None:
        assert adf_to_text("already text") == "already text"


class TestFetchIssuesByLabel:
    @pytest.mark.asyncio
    async def test_maps_issue_fields(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(url=SEARCH_URL, method="POST", json={"issues": [_node()], "isLast": True})
        result = await JiraProvider(_config()).fetch_issues_by_label(_filter())

        assert result.success
        [issue] = result.data
        assert issue.identifier == "PROJ-42"
        assert issue.id == "10042"
        assert issue.title == "Fix the importer"
        assert issue.description == "First line\nSecond line"
        assert issue.priority is Priority.HIGH
        assert issue.state.type is StateType.STARTED
        assert issue.labels == frozenset({"ralph-candidate", "bug"})
        assert issue.url == f"{HOST}/browse/PROJ-42"

    @pytest.mark.asyncio
    async def test_jql(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(url=SEARCH_URL, method="POST", json={"issues": [], "isLast": True})
        await JiraProvider(_config()).fetch_issues_by_label(_filter("ralph-ready"))

        body = json.loads(httpx_mock.get_requests()[0].content)
        assert body["jql"] == 'project = "PROJ" AND labels = "ralph-ready" ORDER BY updated DESC'
        assert body["maxResults"] == 100
        assert "labels" in body["fields"]

    @pytest.mark.asyncio
    async def test_follows_next_page_token(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(
            url=SEARCH_URL,
            method="POST",
            json={"issues": [_node("PROJ-1")], "nextPageToken": "tok_2", "isLast": False},
        )
        httpx_mock.add_response(url=SEARCH_URL, method="POST", json={"issues": [_node("PROJ-2")], "isLast": True})

        result = await JiraProvider(_config()).fetch_issues_by_label(_filter())

        assert [i.identifier for i in result.data] == ["PROJ-1", "PROJ-2"]
        requests = httpx_mock.get_requests()
        assert "nextPageToken" not in json.loads(requests[0].content)
        assert json.loads(requests[1].content)["nextPageToken"] == "tok_2"

    @pytest.mark.asyncio
    async def test_empty(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(url=SEARCH_URL, method="POST", json={"issues": [], "isLast": True})
        result = await JiraProvider(_config()).fetch_issues_by_label(_filter("nobody-uses-this"))
        assert result.success
        assert result.data == []

    @pytest.mark.asyncio
    async def test_rate_limited(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(url=SEARCH_URL, method="POST", status_code=429, headers={"Retry-After": "30"})
        result = await JiraProvider(_config()).fetch_issues_by_label(_filter())

        assert not result.success
        assert result.kind is ErrorKind.RATE_LIMITED
        assert "retry after 30s" in result.error

    @pytest.mark.asyncio
    async def test_unauthorized(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(url=SEARCH_URL, method="POST", status_code=401)
        result = await JiraProvider(_config()).fetch_issues_by_label(_filter())
        assert not result.success
        assert result.kind is ErrorKind.AUTH


class TestStatusCategories:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("name", "category", "expected"),
        [
            ("To Do", "new", StateType.BACKLOG),
            ("In Progress", "indeterminate", StateType.STARTED),
            ("In Review", "indeterminate", StateType.REVIEW),
            ("Done", "done", StateType.COMPLETED),
            ("Cancelled", "done", StateType.CANCELED),
        ],
    )
    async def test_category_mapping(self, httpx_mock: HTTPXMock, name: str, category: str, expected) -> None:
        httpx_mock.add_response(json=_node(status=_status(name, category)))
        result = await JiraProvider(_config()).fetch_issue_by_id("PROJ-42")
        assert result.data.state.type is expected

    @pytest.mark.asyncio
    async def test_unknown_category_raises(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(json=_node(status=_status("Limbo", "undefined")))
        with pytest.raises(ConfigError, match="undefined"):
            await JiraProvider(_config()).fetch_issue_by_id("PROJ-42")


class TestFetchIssueById:
    @pytest.mark.asyncio
    async def test_returns_issue(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(json=_node())
        result = await JiraProvider(_config()).fetch_issue_by_id("PROJ-42")

        assert result.success
        request = httpx_mock.get_requests()[0]
        assert request.url.path == "/rest/api/3/issue/PROJ-42"
        assert "labels" in request.url.params["fields"]

    @pytest.mark.asyncio
    async def test_missing_issue(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(status_code=404, json={"errorMessages": ["Issue does not exist"]})
        result = await JiraProvider(_config()).fetch_issue_by_id("PROJ-999")
        assert not result.success
        assert result.kind is ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_other_project_not_found(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(json=_node("OPS-7", project_key="OPS"))
        result = await JiraProvider(_config()).fetch_issue_by_id("OPS-7")
        assert not result.success
        assert result.kind is ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_project_matched_by_id(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(json=_node())
        result = await JiraProvider(_config(project="10000")).fetch_issue_by_id("PROJ-42")
        assert result.success


class TestWriteLabelSwap:
    @pytest.mark.asyncio
    async def test_one_put_with_both_operations(self, httpx_mock: HTTPXMock, make_issue) -> None:
        httpx_mock.add_response(url=f"{HOST}/rest/api/3/issue/PROJ-42", method="PUT", status_code=204)
        result = await JiraProvider(_config()).write_label_swap(
            make_issue("PROJ-42"), "ralph-candidate", "ralph-ready"
        )

        assert result.success
        [request] = httpx_mock.get_requests()
        assert json.loads(request.content) == {
            "update": {"labels": [{"remove": "ralph-candidate"}, {"add": "ralph-ready"}]}
        }

    @pytest.mark.asyncio
    async def test_add_only(self, httpx_mock: HTTPXMock, make_issue) -> None:
        httpx_mock.add_response(url=f"{HOST}/rest/api/3/issue/PROJ-42", method="PUT", status_code=204)
        await JiraProvider(_config()).write_label_swap(make_issue("PROJ-42"), None, "ralph-ready")

        body = json.loads(httpx_mock.get_requests()[0].content)
        assert body == {"update": {"labels": [{"add": "ralph-ready"}]}}

    @pytest.mark.asyncio
    async def test_rejected_edit(self, httpx_mock: HTTPXMock, make_issue) -> None:
        httpx_mock.add_response(
            url=f"{HOST}/rest/api/3/issue/PROJ-42",
            method="PUT",
            status_code=400,
            json={"errors": {"labels": "Field 'labels' cannot be set."}},
        )
        result = await JiraProvider(_config()).write_label_swap(
            make_issue("PROJ-42"), "ralph-candidate", "ralph-ready"
        )
        assert not result.success
        assert result.kind is ErrorKind.VALIDATION


class TestTeamsAndConnection:
    @pytest.mark.asyncio
    async def test_project_stands_in_for_team(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(
            url=f"{HOST}/rest/api/3/project/PROJ",
            json={"id": "10000", "key": "PROJ", "name": "Project"},
        )
        result = await JiraProvider(_config()).fetch_teams()
        assert result.success
        assert [(t.id, t.key) for t in result.data] == [("10000", "PROJ")]

    @pytest.mark.asyncio
    async def test_validate_connection(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(url=f"{HOST}/rest/api/3/myself", json={"accountId": "abc"})
        result = await JiraProvider(_config()).validate_connection()
        assert result.success
        assert result.data is True
        assert httpx_mock.get_requests()[0].headers["Authorization"].startswith("Basic ")
