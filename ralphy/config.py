"""Typed, already-resolved provider configuration consumed by the factory and adapters."""

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from ralphy.models import LabelConfig


class LinearConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    provider: Literal["linear"] = "linear"
    api_key: SecretStr
    team_id: str
    project_id: str | None = None  # optional narrowing inside the team


class JiraConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    provider: Literal["jira"] = "jira"
    host: str  # https://your-domain.atlassian.net
    email: str
    api_token: SecretStr
    project: str  # project key or numeric id


class GitHubConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    provider: Literal["github"] = "github"
    token: SecretStr
    repo: str  # owner/repo

    @property
    def owner_and_name(self) -> tuple[str, str]:
        owner, name = self.repo.split("/", 1)
        return owner, name


ProviderConfig = Annotated[Union[LinearConfig, JiraConfig, GitHubConfig], Field(discriminator="provider")]


class AppConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    provider: ProviderConfig
    labels: LabelConfig = LabelConfig()
