"""Provider factory: typed config in, TicketService out."""

from ralphy.config import GitHubConfig, JiraConfig, LinearConfig, ProviderConfig
from ralphy.errors import ConfigError
from ralphy.models import Scope
from ralphy.providers.github import GitHubProvider
from ralphy.providers.jira import JiraProvider
from ralphy.providers.linear import LinearProvider
from ralphy.service import TicketService

PROVIDERS = ("linear", "jira", "github")


def create_ticket_service(config: ProviderConfig) -> TicketService:
    match config:
        case LinearConfig():
            return TicketService(LinearProvider(config))
        case JiraConfig():
            return TicketService(JiraProvider(config))
        case GitHubConfig():
            return TicketService(GitHubProvider(config))
        case _:
            tag = getattr(config, "provider", type(config).__name__)
            raise ConfigError(f"Unknown provider '{tag}'. Valid: {', '.join(PROVIDERS)}")


def extract_team_and_project_ids(config: ProviderConfig) -> Scope:
    """Derive the (team, project) scope a provider queries in.

    Linear is team scoped with an optional project narrowing. Jira is project scoped,
    so the project stands in for the team and is surfaced again as the project.
    GitHub is scoped to one repository and has no project axis.
    """
    match config:
        case LinearConfig():
            return Scope(team_id=config.team_id, project_id=config.project_id)
        case JiraConfig():
            return Scope(team_id=config.project, project_id=config.project)
        case GitHubConfig():
            return Scope(team_id=config.repo, project_id=None)
        case _:
            tag = getattr(config, "provider", type(config).__name__)
            raise ConfigError(f"Unknown provider '{tag}'. Valid: {', '.join(PROVIDERS)}")
