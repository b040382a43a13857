"""Capability contract every ticket provider satisfies, plus shared HTTP error translation."""

from typing import Any, Protocol, runtime_checkable

import httpx

from ralphy.errors import ProviderError
from ralphy.models import ErrorKind, Issue, IssueFilter, Result, Team

REVIEW_MARKERS = ("in review", "review")


@runtime_checkable
class TicketProvider(Protocol):
    provider: str

    async def fetch_issues_by_label(self, issue_filter: IssueFilter) -> Result[list[Issue]]: ...

    async def fetch_issue_by_id(self, identifier: str) -> Result[Issue]: ...

    async def write_label_swap(self, issue: Issue, remove_label: str | None, add_label: str) -> Result[None]: ...

    async def fetch_teams(self) -> Result[list[Team]]: ...

    async def validate_connection(self) -> Result[bool]: ...

    async def aclose(self) -> None: ...


def is_review_state(name: str) -> bool:
    lowered = name.lower()
    return any(marker in lowered for marker in REVIEW_MARKERS)


def check_response(response: httpx.Response, provider: str) -> None:
    """Translate a non-2xx response into a ProviderError of the matching kind."""
    status = response.status_code
    if status < 400:
        return
    if status in (401, 403):
        raise ProviderError(
            ErrorKind.AUTH,
            f"{provider} API returned {status}. Check the credentials for the active profile.",
        )
    if status == 404:
        raise ProviderError(ErrorKind.NOT_FOUND, f"{provider} API returned 404 for {response.request.url.path}")
    if status == 429:
        retry_after = response.headers.get("Retry-After")
        hint = f" (retry after {retry_after}s)" if retry_after else ""
        raise ProviderError(ErrorKind.RATE_LIMITED, f"{provider} API rate limit hit{hint}")
    if status >= 500:
        raise ProviderError(ErrorKind.NETWORK, f"{provider} API returned {status}")
    raise ProviderError(ErrorKind.VALIDATION, f"{provider} API returned {status}: {response.text[:200]}")


async def send(client: httpx.AsyncClient, provider: str, method: str, url: str, **kwargs: Any) -> httpx.Response:
    try:
        response = await client.request(method, url, **kwargs)
    except httpx.TransportError as exc:
        raise ProviderError(ErrorKind.NETWORK, f"{provider} request failed: {exc}") from exc
    check_response(response, provider)
    return response


def unexpected_shape(provider: str, exc: Exception) -> ProviderError:
    return ProviderError(ErrorKind.VALIDATION, f"unexpected {provider} response shape ({exc!r})")


def json_body(response: httpx.Response, provider: str) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise ProviderError(ErrorKind.VALIDATION, f"{provider} returned a non-JSON body") from exc
