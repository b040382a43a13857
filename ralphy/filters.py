"""Actionable-issue classification."""

from ralphy.models import Issue, StateType

ACTIONABLE_STATE_TYPES = frozenset({StateType.BACKLOG, StateType.UNSTARTED, StateType.STARTED})


def is_issue_actionable(issue: Issue) -> bool:
    """True unless the issue is completed, canceled or in review."""
    return issue.state.type in ACTIONABLE_STATE_TYPES


def filter_actionable_issues(issues: list[Issue]) -> list[Issue]:
    return [issue for issue in issues if is_issue_actionable(issue)]
