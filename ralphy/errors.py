"""Error taxonomy shared by adapters and the service."""

from ralphy.models import Err, ErrorKind


class ConfigError(RuntimeError):
    """Programmer or configuration error: unknown provider tag, unmapped state category.

    Raised, never returned as a Result.
    """


class ProviderError(RuntimeError):
    """Raised inside an adapter and turned into an ``Err`` at its public boundary."""

    def __init__(self, kind: ErrorKind, message: str, *, failed_step: str | None = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.failed_step = failed_step

    def to_err(self, action: str) -> Err:
        return Err(error=f"{action}: {self}", kind=self.kind, failed_step=self.failed_step)
