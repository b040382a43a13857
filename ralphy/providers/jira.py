"""Jira Cloud REST API v3 provider."""

import logging
from urllib.parse import quote

import httpx

from ralphy.config import JiraConfig
from ralphy.errors import ConfigError, ProviderError
from ralphy.models import (
    Err,
    ErrorKind,
    Issue,
    IssueFilter,
    IssueState,
    Ok,
    Priority,
    Result,
    StateType,
    Team,
)
from ralphy.providers.base import is_review_state, json_body, send, unexpected_shape

logger = logging.getLogger(__name__)

API = "/rest/api/3"

FIELDS = ["summary", "description", "priority", "status", "labels", "project"]

PRIORITY_MAP = {
    "Highest": Priority.URGENT,
    "High": Priority.HIGH,
    "Medium": Priority.MEDIUM,
    "Low": Priority.LOW,
    "Lowest": Priority.NONE,
}

STATUS_CATEGORY_MAP = {
    "new": StateType.BACKLOG,
    "indeterminate": StateType.STARTED,
    "done": StateType.COMPLETED,
}

_BLOCK_NODES = {"doc", "bulletList", "orderedList", "listItem", "blockquote", "table", "tableRow"}


def _jql_quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def adf_to_text(node: object) -> str:
    """Flatten an Atlassian Document Format tree into plain text."""
    if isinstance(node, str):
        return node
    if not isinstance(node, dict):
        return ""
    if node.get("type") == "text":
        return node.get("text", "")
    if node.get("type") == "hardBreak":
        return "\n"
    parts = [adf_to_text(child) for child in node.get("content") or []]
    separator = "\n" if node.get("type") in _BLOCK_NODES else ""
    return separator.join(parts)


class JiraProvider:
    provider = "jira"

    def __init__(self, config: JiraConfig, client: httpx.AsyncClient | None = None) -> None:
        if not config.api_token.get_secret_value():
            raise ConfigError("jira api_token is required")
        self._host = config.host.rstrip("/")
        self._project = config.project
        self._client = client or httpx.AsyncClient(
            base_url=self._host,
            auth=(config.email, config.api_token.get_secret_value()),
            headers={"Accept": "application/json"},
            timeout=30,
        )

    def _state_from_status(self, status: dict) -> IssueState:
        name = status.get("name", "Unknown")
        category = (status.get("statusCategory") or {}).get("key")
        if category not in STATUS_CATEGORY_MAP:
            raise ConfigError(f"Jira status category '{category}' ({name}) has no workflow category")
        state_type = STATUS_CATEGORY_MAP[category]
        if state_type is StateType.COMPLETED and "cancel" in name.lower():
            state_type = StateType.CANCELED
        elif state_type is not StateType.COMPLETED and is_review_state(name):
            state_type = StateType.REVIEW
        return IssueState(id=str(status.get("id", "")), name=name, type=state_type)

    def _issue_from_node(self, node: dict) -> Issue:
        fields = node["fields"]
        description = fields.get("description")
        priority = (fields.get("priority") or {}).get("name")
        return Issue(
            id=str(node["id"]),
            identifier=node["key"],
            title=fields["summary"],
            description=adf_to_text(description) if description else None,
            priority=PRIORITY_MAP.get(priority, Priority.NONE),
            state=self._state_from_status(fields["status"]),
            labels=frozenset(fields.get("labels") or []),
            url=f"{self._host}/browse/{node['key']}",
        )

    def _in_scope(self, node: dict) -> bool:
        project = node["fields"].get("project") or {}
        return self._project in (project.get("key"), str(project.get("id")))

    async def fetch_issues_by_label(self, issue_filter: IssueFilter) -> Result[list[Issue]]:
        # Jira projects are the only scoping axis; a separate project_id narrows nothing further.
        project = issue_filter.project_id or issue_filter.team_id
        jql = (
            f"project = {_jql_quote(project)} AND labels = {_jql_quote(issue_filter.label_name)} "
            "ORDER BY updated DESC"
        )
        logger.debug("Jira JQL: %s", jql)

        body: dict = {"jql": jql, "fields": FIELDS, "maxResults": 100}
        issues: list[Issue] = []
        try:
            while True:
                response = await send(self._client, "Jira", "POST", f"{API}/search/jql", json=body)
                data = json_body(response, "Jira")
                issues.extend(self._issue_from_node(n) for n in data.get("issues", []))
                next_token = data.get("nextPageToken")
                if data.get("isLast", True) or not next_token:
                    break
                body = {**body, "nextPageToken": next_token}
        except ProviderError as exc:
            return exc.to_err("Failed to fetch issues")
        except (KeyError, TypeError, AttributeError) as exc:
            return unexpected_shape("Jira", exc).to_err("Failed to fetch issues")

        return Ok(data=issues)

    async def fetch_issue_by_id(self, identifier: str) -> Result[Issue]:
        try:
            response = await send(
                self._client,
                "Jira",
                "GET",
                f"{API}/issue/{quote(identifier, safe='')}",
                params={"fields": ",".join(FIELDS)},
            )
            node = json_body(response, "Jira")
            if not self._in_scope(node):
                return Err(error=f"Issue '{identifier}' not found in project {self._project}", kind=ErrorKind.NOT_FOUND)
            return Ok(data=self._issue_from_node(node))
        except ProviderError as exc:
            return exc.to_err(f"Failed to fetch issue {identifier}")
        except (KeyError, TypeError, AttributeError) as exc:
            return unexpected_shape("Jira", exc).to_err(f"Failed to fetch issue {identifier}")

    async def write_label_swap(self, issue: Issue, remove_label: str | None, add_label: str) -> Result[None]:
        operations: list[dict] = []
        if remove_label:
            operations.append({"remove": remove_label})
        operations.append({"add": add_label})

        # a single edit carrying both operations; Jira applies it as one update
        try:
            await send(
                self._client,
                "Jira",
                "PUT",
                f"{API}/issue/{quote(issue.identifier, safe='')}",
                json={"update": {"labels": operations}},
            )
        except ProviderError as exc:
            return exc.to_err(f"Failed to update labels on {issue.identifier}")

        logger.info("Jira: %s labels -%s +%s", issue.identifier, remove_label or "(none)", add_label)
        return Ok(data=None)

    async def fetch_teams(self) -> Result[list[Team]]:
        # Jira has no teams in Linear's sense; the configured project stands in for one
        try:
            response = await send(self._client, "Jira", "GET", f"{API}/project/{quote(self._project, safe='')}")
            node = json_body(response, "Jira")
            return Ok(data=[Team(id=str(node["id"]), name=node["name"], key=node["key"])])
        except ProviderError as exc:
            return exc.to_err("Failed to fetch teams")
        except (KeyError, TypeError) as exc:
            return unexpected_shape("Jira", exc).to_err("Failed to fetch teams")

    async def validate_connection(self) -> Result[bool]:
        try:
            response = await send(self._client, "Jira", "GET", f"{API}/myself")
            return Ok(data=bool(json_body(response, "Jira").get("accountId")))
        except ProviderError as exc:
            return exc.to_err("Failed to validate connection")
        except AttributeError as exc:
            return unexpected_shape("Jira", exc).to_err("Failed to validate connection")

    async def aclose(self) -> None:
        await self._client.aclose()
