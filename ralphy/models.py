"""Shared pydantic models: the contract between providers, the service and main.py."""

from enum import Enum, IntEnum
from typing import Generic, Literal, TypeVar, Union

from pydantic import BaseModel, ConfigDict, field_serializer
from typing_extensions import TypeAliasType

T = TypeVar("T")


class Priority(IntEnum):
    NONE = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    URGENT = 4

    @property
    def label(self) -> str:
        return "No priority" if self is Priority.NONE else self.name.capitalize()


class StateType(str, Enum):
    """Workflow state category every provider state maps onto."""

    BACKLOG = "backlog"
    UNSTARTED = "unstarted"
    STARTED = "started"
    COMPLETED = "completed"
    CANCELED = "canceled"
    REVIEW = "review"


class ErrorKind(str, Enum):
    AUTH = "auth"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    NETWORK = "network"
    VALIDATION = "validation"
    CONFIG = "config"


class IssueState(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    type: StateType


class Issue(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str  # provider-native ID
    identifier: str  # ENG-123, PROJ-42 or owner/repo#123
    title: str
    description: str | None = None
    priority: Priority = Priority.NONE
    state: IssueState
    labels: frozenset[str] = frozenset()
    url: str | None = None

    def has_label(self, name: str) -> bool:
        return name in self.labels

    @field_serializer("priority")
    def _serialize_priority(self, priority: Priority) -> str:
        return priority.name.lower()

    @field_serializer("labels")
    def _serialize_labels(self, labels: frozenset[str]) -> list[str]:
        return sorted(labels)


class Team(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    key: str  # Linear team key, Jira project key or GitHub "owner/repo"


class IssueFilter(BaseModel):
    model_config = ConfigDict(frozen=True)

    team_id: str
    label_name: str
    project_id: str | None = None  # ignored by providers without project granularity


class Scope(BaseModel):
    model_config = ConfigDict(frozen=True)

    team_id: str
    project_id: str | None = None


class LabelConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    candidate: str = "ralph-candidate"
    ready: str = "ralph-ready"


class SwapResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    removed: str | None
    added: str | None
    already_had_target: bool


class Ok(BaseModel, Generic[T]):
    model_config = ConfigDict(frozen=True)

    success: Literal[True] = True
    data: T


class Err(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: Literal[False] = False
    error: str
    kind: ErrorKind
    failed_step: str | None = None  # set when a multi-step write stopped part way


# pydantic returns Ok itself for Ok[T], so the type parameter lives on the alias
Result = TypeAliasType("Result", Union[Ok[T], Err], type_params=(T,))


class PromotionOutcome(BaseModel):
    """What happened to one issue during a batch promotion."""

    model_config = ConfigDict(frozen=True)

    issue_id: str
    success: bool
    skipped: bool = False
    swap: SwapResult | None = None
    error: str | None = None


class PromotionSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    outcomes: list[PromotionOutcome]

    @property
    def promoted(self) -> int:
        return sum(1 for o in self.outcomes if o.success and not o.skipped)

    @property
    def skipped(self) -> int:
        return sum(1 for o in self.outcomes if o.skipped)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.success)

    @property
    def exit_code(self) -> int:
        return 1 if self.failed else 0
