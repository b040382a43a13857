"""Linear GraphQL API provider."""

import logging

import httpx

from ralphy.config import LinearConfig
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
from ralphy.providers.base import check_response, is_review_state, json_body, unexpected_shape

logger = logging.getLogger(__name__)

ENDPOINT = "https://api.linear.app/graphql"

# Linear: 0 = none, 1 = urgent ... 4 = low
PRIORITY_MAP = {
    0: Priority.NONE,
    1: Priority.URGENT,
    2: Priority.HIGH,
    3: Priority.MEDIUM,
    4: Priority.LOW,
}

STATE_TYPE_MAP = {
    "triage": StateType.BACKLOG,
    "backlog": StateType.BACKLOG,
    "unstarted": StateType.UNSTARTED,
    "started": StateType.STARTED,
    "completed": StateType.COMPLETED,
    "canceled": StateType.CANCELED,
}

_ISSUE_FIELDS = """
    id
    identifier
    title
    description
    url
    priority
    state { id name type }
    team { id key }
    labels { nodes { id name } }
"""

_ISSUES_BY_LABEL = (
    """
query IssuesByLabel($filter: IssueFilter!, $after: String) {
  issues(filter: $filter, first: 100, after: $after, orderBy: updatedAt) {
    nodes {"""
    + _ISSUE_FIELDS
    + """    }
    pageInfo { hasNextPage endCursor }
  }
}
"""
)

_GET_ISSUE = (
    """
query GetIssue($id: String!) {
  issue(id: $id) {"""
    + _ISSUE_FIELDS
    + """  }
}
"""
)

_ISSUE_LABEL_IDS = """
query IssueLabelIds($id: String!) {
  issue(id: $id) {
    labels { nodes { id name } }
  }
}
"""

_LABELS_BY_NAME = """
query LabelsByName($name: String!) {
  issueLabels(filter: { name: { eq: $name } }) {
    nodes {
      id
      name
      team { id }
    }
  }
}
"""

_UPDATE_LABELS = """
mutation UpdateIssueLabels($id: String!, $labelIds: [String!]) {
  issueUpdate(id: $id, input: { labelIds: $labelIds }) {
    success
  }
}
"""

_LIST_TEAMS = """
query ListTeams {
  teams {
    nodes {
      id
      name
      key
    }
  }
}
"""

_VIEWER = """
query Viewer {
  viewer { id }
}
"""


def _error_kind(error: dict) -> ErrorKind:
    code = (error.get("extensions") or {}).get("code", "")
    message = str(error.get("message", "")).lower()
    if code == "RATELIMITED":
        return ErrorKind.RATE_LIMITED
    if code in ("AUTHENTICATION_ERROR", "FORBIDDEN"):
        return ErrorKind.AUTH
    if "not found" in message:
        return ErrorKind.NOT_FOUND
    return ErrorKind.VALIDATION


class LinearProvider:
    provider = "linear"

    def __init__(self, config: LinearConfig, client: httpx.AsyncClient | None = None) -> None:
        if not config.api_key.get_secret_value():
            raise ConfigError("linear api_key is required")
        self._team_id = config.team_id
        self._client = client or httpx.AsyncClient(
            headers={
                "Authorization": config.api_key.get_secret_value(),
                "Content-Type": "application/json",
            },
            timeout=30,
        )

    async def _gql(self, query: str, variables: dict | None = None) -> dict:
        try:
            response = await self._client.post(ENDPOINT, json={"query": query, "variables": variables or {}})
        except httpx.TransportError as exc:
            raise ProviderError(ErrorKind.NETWORK, f"Linear request failed: {exc}") from exc

        # Linear reports GraphQL failures (including rate limiting) as 400 with an errors list
        body: dict = {}
        if response.status_code in (200, 400):
            body = json_body(response, "Linear")
            errors = body.get("errors") if isinstance(body, dict) else None
            if errors:
                first = errors[0]
                raise ProviderError(_error_kind(first), f"Linear API error: {first.get('message', errors)}")
        check_response(response, "Linear")
        return body["data"]

    def _state_from_node(self, node: dict) -> IssueState:
        raw_type = node["type"]
        if raw_type not in STATE_TYPE_MAP:
            raise ConfigError(f"Linear state type '{raw_type}' ({node['name']}) has no workflow category")
        state_type = STATE_TYPE_MAP[raw_type]
        if state_type in (StateType.UNSTARTED, StateType.STARTED) and is_review_state(node["name"]):
            state_type = StateType.REVIEW
        return IssueState(id=node["id"], name=node["name"], type=state_type)

    def _issue_from_node(self, node: dict) -> Issue:
        return Issue(
            id=node["id"],
            identifier=node["identifier"],
            title=node["title"],
            description=node.get("description"),
            priority=PRIORITY_MAP.get(node.get("priority") or 0, Priority.NONE),
            state=self._state_from_node(node["state"]),
            labels=frozenset(label["name"] for label in node.get("labels", {}).get("nodes", [])),
            url=node.get("url"),
        )

    async def fetch_issues_by_label(self, issue_filter: IssueFilter) -> Result[list[Issue]]:
        gql_filter: dict = {
            "team": {"id": {"eq": issue_filter.team_id}},
            "labels": {"name": {"eq": issue_filter.label_name}},
        }
        if issue_filter.project_id:
            gql_filter["project"] = {"id": {"eq": issue_filter.project_id}}

        issues: list[Issue] = []
        after: str | None = None
        try:
            while True:
                data = await self._gql(_ISSUES_BY_LABEL, {"filter": gql_filter, "after": after})
                connection = data["issues"]
                issues.extend(self._issue_from_node(n) for n in connection["nodes"])
                page_info = connection["pageInfo"]
                if not page_info["hasNextPage"]:
                    break
                after = page_info["endCursor"]
        except ProviderError as exc:
            return exc.to_err("Failed to fetch issues")
        except (KeyError, TypeError) as exc:
            return unexpected_shape("Linear", exc).to_err("Failed to fetch issues")

        logger.debug(
            "Linear: %d issue(s) labelled %r in team %s", len(issues), issue_filter.label_name, issue_filter.team_id
        )
        return Ok(data=issues)

    async def fetch_issue_by_id(self, identifier: str) -> Result[Issue]:
        try:
            data = await self._gql(_GET_ISSUE, {"id": identifier})
            node = data["issue"]
            if not node or (node.get("team") or {}).get("id") != self._team_id:
                return Err(error=f"Issue '{identifier}' not found in Linear team", kind=ErrorKind.NOT_FOUND)
            return Ok(data=self._issue_from_node(node))
        except ProviderError as exc:
            return exc.to_err(f"Failed to fetch issue {identifier}")
        except (KeyError, TypeError) as exc:
            return unexpected_shape("Linear", exc).to_err(f"Failed to fetch issue {identifier}")

    async def _resolve_label_id(self, name: str) -> str:
        data = await self._gql(_LABELS_BY_NAME, {"name": name})
        nodes = data["issueLabels"]["nodes"]
        team_labels = [n for n in nodes if (n.get("team") or {}).get("id") == self._team_id]
        workspace_labels = [n for n in nodes if not n.get("team")]
        matches = team_labels + workspace_labels
        if not matches:
            raise ProviderError(ErrorKind.NOT_FOUND, f'Label "{name}" not found for this team')
        return matches[0]["id"]

    async def write_label_swap(self, issue: Issue, remove_label: str | None, add_label: str) -> Result[None]:
        try:
            data = await self._gql(_ISSUE_LABEL_IDS, {"id": issue.id})
            current = data["issue"]["labels"]["nodes"]
            add_id = await self._resolve_label_id(add_label)
            label_ids = [n["id"] for n in current if n["name"] != remove_label and n["id"] != add_id]
            label_ids.append(add_id)

            # one issueUpdate call: Linear replaces the whole label set atomically
            result = await self._gql(_UPDATE_LABELS, {"id": issue.id, "labelIds": label_ids})
            if not result["issueUpdate"]["success"]:
                return Err(error="Linear issueUpdate returned success=false", kind=ErrorKind.VALIDATION)
        except ProviderError as exc:
            return exc.to_err(f"Failed to update labels on {issue.identifier}")
        except (KeyError, TypeError) as exc:
            return unexpected_shape("Linear", exc).to_err(f"Failed to update labels on {issue.identifier}")

        logger.info("Linear: %s labels -%s +%s", issue.identifier, remove_label or "(none)", add_label)
        return Ok(data=None)

    async def fetch_teams(self) -> Result[list[Team]]:
        try:
            data = await self._gql(_LIST_TEAMS)
            return Ok(data=[Team(id=n["id"], name=n["name"], key=n["key"]) for n in data["teams"]["nodes"]])
        except ProviderError as exc:
            return exc.to_err("Failed to fetch teams")
        except (KeyError, TypeError) as exc:
            return unexpected_shape("Linear", exc).to_err("Failed to fetch teams")

    async def validate_connection(self) -> Result[bool]:
        try:
            data = await self._gql(_VIEWER)
            return Ok(data=bool((data.get("viewer") or {}).get("id")))
        except ProviderError as exc:
            return exc.to_err("Failed to validate connection")
        except (KeyError, TypeError) as exc:
            return unexpected_shape("Linear", exc).to_err("Failed to validate connection")

    async def aclose(self) -> None:
        await self._client.aclose()
