"""GitHub REST API v3 provider, scoped to one repository."""

import logging
from urllib.parse import quote

import httpx

from ralphy.config import GitHubConfig
from ralphy.errors import ConfigError, ProviderError
from ralphy.models import (
    Err,
    ErrorKind,
    Issue,
    IssueFilter,
    IssueState,
    Ok,
    Result,
    StateType,
    Team,
)
from ralphy.providers.base import json_body, send, unexpected_shape

logger = logging.getLogger(__name__)

BASE_URL = "https://api.github.com"
PER_PAGE = 100


class GitHubProvider:
    provider = "github"

    def __init__(self, config: GitHubConfig, client: httpx.AsyncClient | None = None) -> None:
        token = config.token.get_secret_value()
        if not token:
            raise ConfigError("No GitHub credentials. Set GITHUB_TOKEN or github_token in your profile.")
        self._owner, self._repo = config.owner_and_name
        self._client = client or httpx.AsyncClient(
            base_url=BASE_URL,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            },
            timeout=30,
        )

    @property
    def full_name(self) -> str:
        return f"{self._owner}/{self._repo}"

    def _parse_issue_number(self, identifier: str) -> int | None:
        """Parse an identifier into an issue number inside the configured repo.

        Accepts:
        - "owner/repo#123": fully qualified, must name the configured repo
        - "#123" or "123": bare number
        """
        ref = identifier.strip()
        if "#" in ref:
            repo_part, num_str = ref.rsplit("#", 1)
            if repo_part and repo_part.lower() != self.full_name.lower():
                return None
        else:
            num_str = ref
        return int(num_str) if num_str.isascii() and num_str.isdigit() else None

    def _state_from_node(self, node: dict) -> IssueState:
        raw_state = node.get("state")
        if raw_state == "open":
            state_type = StateType.STARTED if node.get("assignees") else StateType.UNSTARTED
            return IssueState(id="open", name="Open", type=state_type)
        if raw_state == "closed":
            state_type = StateType.CANCELED if node.get("state_reason") == "not_planned" else StateType.COMPLETED
            return IssueState(id="closed", name="Closed", type=state_type)
        raise ConfigError(f"GitHub issue state '{raw_state}' has no workflow category")

    def _issue_from_node(self, node: dict) -> Issue:
        return Issue(
            id=str(node["id"]),
            identifier=f"{self.full_name}#{node['number']}",
            title=node["title"],
            description=node.get("body"),
            state=self._state_from_node(node),
            labels=frozenset(label["name"] for label in node.get("labels", [])),
            url=node.get("html_url"),
            # GitHub has no native priority
        )

    async def fetch_issues_by_label(self, issue_filter: IssueFilter) -> Result[list[Issue]]:
        """List issues in the configured repo carrying ``issue_filter.label_name``.

        ``team_id`` must name the configured repo; anything else is NOT_FOUND.
        GitHub has no project granularity so ``project_id`` is ignored.

        GitHub reads commas in the ``labels`` query parameter as an AND of several
        labels, so a label name containing a comma is matched client side instead.
        """
        if issue_filter.team_id.lower() != self.full_name.lower():
            return Err(
                error=f"Repository '{issue_filter.team_id}' is not the configured repo {self.full_name}",
                kind=ErrorKind.NOT_FOUND,
            )
        label = issue_filter.label_name
        params = {"state": "all", "per_page": str(PER_PAGE)}
        if "," not in label:
            params["labels"] = label

        issues: list[Issue] = []
        page = 1
        try:
            while True:
                response = await send(
                    self._client,
                    "GitHub",
                    "GET",
                    f"/repos/{self._owner}/{self._repo}/issues",
                    params={**params, "page": str(page)},
                )
                nodes = json_body(response, "GitHub")
                # the issues endpoint also returns pull requests
                issues.extend(
                    issue
                    for issue in (self._issue_from_node(n) for n in nodes if "pull_request" not in n)
                    if issue.has_label(label)
                )
                if len(nodes) < PER_PAGE:
                    break
                page += 1
        except ProviderError as exc:
            return exc.to_err("Failed to fetch issues")
        except (KeyError, TypeError) as exc:
            return unexpected_shape("GitHub", exc).to_err("Failed to fetch issues")

        return Ok(data=issues)

    async def fetch_issue_by_id(self, identifier: str) -> Result[Issue]:
        number = self._parse_issue_number(identifier)
        if number is None:
            return Err(error=f"Issue '{identifier}' not found in {self.full_name}", kind=ErrorKind.NOT_FOUND)
        try:
            response = await send(self._client, "GitHub", "GET", f"/repos/{self._owner}/{self._repo}/issues/{number}")
            node = json_body(response, "GitHub")
            if "pull_request" in node:
                return Err(error=f"'{identifier}' is a pull request, not an issue", kind=ErrorKind.NOT_FOUND)
            return Ok(data=self._issue_from_node(node))
        except ProviderError as exc:
            return exc.to_err(f"Failed to fetch issue {identifier}")
        except (KeyError, TypeError) as exc:
            return unexpected_shape("GitHub", exc).to_err(f"Failed to fetch issue {identifier}")

    async def write_label_swap(self, issue: Issue, remove_label: str | None, add_label: str) -> Result[None]:
        number = self._parse_issue_number(issue.identifier)
        if number is None:
            return Err(error=f"Issue '{issue.identifier}' not found in {self.full_name}", kind=ErrorKind.NOT_FOUND)
        labels_path = f"/repos/{self._owner}/{self._repo}/issues/{number}/labels"
        action = f"Failed to update labels on {issue.identifier}"

        # GitHub has no single call that removes and adds: two requests, remove first
        if remove_label:
            try:
                await send(self._client, "GitHub", "DELETE", f"{labels_path}/{quote(remove_label, safe='')}")
            except ProviderError as exc:
                # 404 here means the label is already off the issue
                if exc.kind is not ErrorKind.NOT_FOUND:
                    exc.failed_step = "remove"
                    return exc.to_err(action)

        try:
            await send(self._client, "GitHub", "POST", labels_path, json={"labels": [add_label]})
        except ProviderError as exc:
            exc.failed_step = "add"
            if remove_label:
                logger.warning(
                    "GitHub: %s lost %r but %r was not added; retry the add step",
                    issue.identifier,
                    remove_label,
                    add_label,
                )
                return exc.to_err(f"{action} (removed '{remove_label}', adding '{add_label}' failed)")
            return exc.to_err(action)

        logger.info("GitHub: %s labels -%s +%s", issue.identifier, remove_label or "(none)", add_label)
        return Ok(data=None)

    async def fetch_teams(self) -> Result[list[Team]]:
        # repos where the authenticated user has push access
        try:
            response = await send(self._client, "GitHub", "GET", "/user/repos", params={"per_page": "100"})
            repos = json_body(response, "GitHub")
            teams = [
                Team(id=str(repo["id"]), name=repo["name"], key=repo["full_name"])
                for repo in repos
                if repo.get("permissions", {}).get("push")
            ]
            return Ok(data=teams)
        except ProviderError as exc:
            return exc.to_err("Failed to fetch repositories")
        except (KeyError, TypeError) as exc:
            return unexpected_shape("GitHub", exc).to_err("Failed to fetch repositories")

    async def validate_connection(self) -> Result[bool]:
        try:
            response = await send(self._client, "GitHub", "GET", "/user")
            return Ok(data=bool(json_body(response, "GitHub").get("login")))
        except ProviderError as exc:
            return exc.to_err("Failed to validate connection")
        except AttributeError as exc:
            return unexpected_shape("GitHub", exc).to_err("Failed to validate connection")

    async def aclose(self) -> None:
        await self._client.aclose()
