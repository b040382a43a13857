"""Shared test fixtures."""

from collections.abc import Callable

import pytest

from ralphy.models import Err, ErrorKind, Issue, IssueFilter, IssueState, Ok, Priority, StateType, Team
from ralphy.service import TicketService


def build_issue(
    identifier: str = "ENG-1",
    labels: tuple[str, ...] = ("ralph-candidate",),
    state_type: StateType = StateType.UNSTARTED,
    state_name: str = "Todo",
) -> Issue:
    return Issue(
        id=f"id-{identifier}",
        identifier=identifier,
        title=f"Issue {identifier}",
        description="Something to do.",
        priority=Priority.MEDIUM,
        state=IssueState(id=f"state-{state_type.value}", name=state_name, type=state_type),
        labels=frozenset(labels),
        url=f"https://linear.app/t/{identifier}",
    )


class FakeProvider:
    """In-memory provider: issues keyed by identifier, writes recorded in order."""

    provider = "fake"

    def __init__(self, issues: list[Issue] | None = None, fail_writes_for: tuple[str, ...] = ()) -> None:
        self.issues = {issue.identifier: issue for issue in issues or []}
        self.fail_writes_for = set(fail_writes_for)
        self.writes: list[tuple[str, str | None, str]] = []
        self.reads: list[str] = []
        self.closed = False

    async def fetch_issues_by_label(self, issue_filter: IssueFilter):
        return Ok(data=[i for i in self.issues.values() if i.has_label(issue_filter.label_name)])

    async def fetch_issue_by_id(self, identifier: str):
        self.reads.append(identifier)
        issue = self.issues.get(identifier)
        if issue is None:
            return Err(error=f"Issue '{identifier}' not found", kind=ErrorKind.NOT_FOUND)
        return Ok(data=issue)

    async def write_label_swap(self, issue: Issue, remove_label: str | None, add_label: str):
        self.writes.append((issue.identifier, remove_label, add_label))
        if issue.identifier in self.fail_writes_for:
            return Err(error="Failed to update labels: connection reset", kind=ErrorKind.NETWORK)
        labels = set(issue.labels)
        if remove_label:
            labels.discard(remove_label)
        labels.add(add_label)
        self.issues[issue.identifier] = issue.model_copy(update={"labels": frozenset(labels)})
        return Ok(data=None)

    async def fetch_teams(self):
        return Ok(data=[Team(id="team_1", name="Engineering", key="ENG")])

    async def validate_connection(self):
        return Ok(data=True)

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def make_issue() -> Callable[..., Issue]:
    return build_issue


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider(
        [
            build_issue("ENG-1"),
            build_issue("ENG-2", labels=("ralph-candidate", "bug")),
            build_issue("ENG-3", labels=("ralph-ready",)),
        ]
    )


@pytest.fixture
def service(fake_provider: FakeProvider) -> TicketService:
    return TicketService(fake_provider)
