"""Provider-independent ticket service: label lookups, the label swap and batch promotion."""

import logging

from ralphy.models import (
    Issue,
    IssueFilter,
    LabelConfig,
    Ok,
    PromotionOutcome,
    PromotionSummary,
    Result,
    SwapResult,
    Team,
)
from ralphy.providers.base import TicketProvider

logger = logging.getLogger(__name__)


class TicketService:
    """Facade over one provider adapter.

    Adapter errors are passed through unchanged. The service owns its adapter, so
    use it as an async context manager (or call ``aclose``) to release the HTTP client.
    """

    def __init__(self, provider: TicketProvider) -> None:
        self._provider = provider

    @property
    def provider(self) -> str:
        return self._provider.provider

    async def __aenter__(self) -> "TicketService":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._provider.aclose()

    async def fetch_issues_by_label(
        self, team_id: str, label_name: str, project_id: str | None = None
    ) -> Result[list[Issue]]:
        issue_filter = IssueFilter(team_id=team_id, label_name=label_name, project_id=project_id)
        return await self._provider.fetch_issues_by_label(issue_filter)

    async def fetch_issue_by_id(self, identifier: str) -> Result[Issue]:
        return await self._provider.fetch_issue_by_id(identifier)

    async def fetch_teams(self) -> Result[list[Team]]:
        return await self._provider.fetch_teams()

    async def validate_connection(self) -> Result[bool]:
        return await self._provider.validate_connection()

    async def swap_labels(self, issue_id: str, remove_label: str, add_label: str) -> Result[SwapResult]:
        """Move an issue from ``remove_label`` to ``add_label``.

        The label set is read fresh on every call. When ``add_label`` is already
        present nothing is written and ``already_had_target`` is reported, so
        repeating a swap is safe.
        """
        fetched = await self._provider.fetch_issue_by_id(issue_id)
        if not fetched.success:
            return fetched
        issue = fetched.data

        if issue.has_label(add_label):
            logger.debug("%s already has %r, nothing to write", issue.identifier, add_label)
            return Ok(data=SwapResult(removed=None, added=None, already_had_target=True))

        to_remove = remove_label if issue.has_label(remove_label) else None
        written = await self._provider.write_label_swap(issue, to_remove, add_label)
        if not written.success:
            return written

        return Ok(data=SwapResult(removed=to_remove, added=add_label, already_had_target=False))


async def promote_issues(service: TicketService, issue_ids: list[str], labels: LabelConfig) -> PromotionSummary:
    """Swap candidate → ready for each issue, one at a time, in input order.

    A failure on one issue never stops the batch.
    """
    outcomes: list[PromotionOutcome] = []
    for issue_id in issue_ids:
        result = await service.swap_labels(issue_id, labels.candidate, labels.ready)
        if not result.success:
            logger.warning("Failed to promote %s: %s", issue_id, result.error)
            outcomes.append(PromotionOutcome(issue_id=issue_id, success=False, error=result.error))
            continue
        outcomes.append(
            PromotionOutcome(
                issue_id=issue_id,
                success=True,
                skipped=result.data.already_had_target,
                swap=result.data,
            )
        )
    return PromotionSummary(outcomes=outcomes)
