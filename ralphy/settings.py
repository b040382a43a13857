"""Settings resolution with named profiles, turned into a typed AppConfig."""

import os
from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path

import tomlkit
import typer
from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from ralphy.config import AppConfig, GitHubConfig, JiraConfig, LinearConfig, ProviderConfig
from ralphy.models import LabelConfig

CONFIG_PATH = Path.home() / ".config" / "ralphy" / "config.toml"


def _secret_field(name: str):
    # RALPHY_<NAME> or the bare provider variable (LINEAR_API_KEY, JIRA_API_TOKEN, GITHUB_TOKEN)
    return Field(default=None, validation_alias=AliasChoices(f"ralphy_{name}", name))


class RalphySettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="RALPHY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Tracker selection
    default_tracker: str | None = None  # profile name
    provider: str = "linear"  # "linear" | "jira" | "github", resolved from active profile

    # Linear
    linear_api_key: SecretStr | None = _secret_field("linear_api_key")
    linear_team_id: str | None = None
    linear_project_id: str | None = None

    # Jira
    jira_host: str | None = None
    jira_email: str | None = None
    jira_api_token: SecretStr | None = _secret_field("jira_api_token")
    jira_project: str | None = None  # project key or id

    # GitHub
    github_token: SecretStr | None = _secret_field("github_token")
    github_repo: str | None = None  # owner/repo

    # Workflow labels
    candidate_label: str = "ralph-candidate"
    ready_label: str = "ralph-ready"


@lru_cache(maxsize=1)
def _load_toml() -> tomlkit.TOMLDocument:
    """Load ~/.config/ralphy/config.toml, returning empty document if missing."""
    if not CONFIG_PATH.exists():
        return tomlkit.document()
    return tomlkit.load(CONFIG_PATH.open())


def _list_profiles(config: Mapping) -> list[str]:
    # tomlkit Table implements MutableMapping but not dict, so check Mapping
    return [k for k, v in config.items() if isinstance(v, Mapping)]


def get_settings(tracker: str | None = None) -> RalphySettings:
    """Resolve the active tracker profile and return a populated RalphySettings.

    Profile precedence (highest to lowest):
    1. tracker argument (--tracker CLI flag)
    2. RALPHY_DEFAULT_TRACKER env var
    3. default_tracker key in ~/.config/ralphy/config.toml
    4. First profile defined in ~/.config/ralphy/config.toml
    """
    toml_config = _load_toml()

    active = (
        tracker
        or os.environ.get("RALPHY_DEFAULT_TRACKER")
        or toml_config.get("default_tracker")
        or ((_profiles := _list_profiles(toml_config)) and _profiles[0] or None)
    )

    profile_defaults: dict = {}
    if active:
        if active in toml_config and isinstance(toml_config[active], Mapping):
            profile_defaults = dict(toml_config[active])
        else:
            profiles = _list_profiles(toml_config)
            typer.echo(f"Profile '{active}' not found in {CONFIG_PATH}. Available: {profiles or '(none)'}")
            raise typer.Exit(1)

    # profile keys arrive as init kwargs; anything the profile leaves out comes from env / .env
    return RalphySettings(**profile_defaults)


def _require(settings: RalphySettings, names: list[str], hint: str) -> None:
    missing = [name for name in names if not getattr(settings, name)]
    if missing:
        typer.echo(f"Missing {', '.join(missing)} for provider '{settings.provider}'. {hint}")
        raise typer.Exit(1)


def provider_config_from_settings(settings: RalphySettings) -> ProviderConfig:
    profile_hint = f"Set them in your profile in {CONFIG_PATH} or as RALPHY_* environment variables."
    match settings.provider:
        case "linear":
            _require(settings, ["linear_api_key", "linear_team_id"], profile_hint + " LINEAR_API_KEY also works.")
            return LinearConfig(
                api_key=settings.linear_api_key,
                team_id=settings.linear_team_id,
                project_id=settings.linear_project_id,
            )
        case "jira":
            _require(
                settings,
                ["jira_host", "jira_email", "jira_api_token", "jira_project"],
                profile_hint + " JIRA_API_TOKEN also works.",
            )
            return JiraConfig(
                host=settings.jira_host,
                email=settings.jira_email,
                api_token=settings.jira_api_token,
                project=settings.jira_project,
            )
        case "github":
            _require(settings, ["github_token", "github_repo"], profile_hint + " GITHUB_TOKEN also works.")
            if "/" not in settings.github_repo:
                typer.echo(f"github_repo must look like owner/repo, got '{settings.github_repo}'")
                raise typer.Exit(1)
            return GitHubConfig(token=settings.github_token, repo=settings.github_repo)
        case _:
            typer.echo(f"Unknown provider '{settings.provider}'. Valid: linear, jira, github")
            raise typer.Exit(1)


def get_config(tracker: str | None = None) -> AppConfig:
    settings = get_settings(tracker=tracker)
    return AppConfig(
        provider=provider_config_from_settings(settings),
        labels=LabelConfig(candidate=settings.candidate_label, ready=settings.ready_label),
    )
