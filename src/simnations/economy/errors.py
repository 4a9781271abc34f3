"""Exception hierarchy of the economic update job."""

from typing import Optional


class EconomicJobError(Exception):
    """Base class for every error raised by the economic job core."""


class JobNotInitializedError(EconomicJobError):
    """The job controller was never constructed (or is not accepting work)."""

    def __init__(self, message: str = "Economic job not initialized"):
        super().__init__(message)


class JobStoppedError(JobNotInitializedError):
    """Admission refused because the controller is stopped."""

    def __init__(self, message: str = "Economic job is stopped"):
        super().__init__(message)


class AlreadyRunningError(EconomicJobError):
    """Admission refused because a pass is already running."""

    def __init__(self, started_at=None):
        self.started_at = started_at
        detail = f" (started at {started_at.isoformat()})" if started_at is not None else ""
        super().__init__(f"Economic update pass already running{detail}")


class RepositoryError(EconomicJobError):
    """The state repository failed to read or write."""


class RepositoryFetchError(RepositoryError):
    """Listing eligible states failed; the whole pass is aborted."""


class ItemError(EconomicJobError):
    """A failure isolated to a single simulated state."""

    kind = "ItemError"

    def __init__(self, state_id: str, message: str, *, cause: Optional[BaseException] = None):
        self.state_id = state_id
        self.cause = cause
        super().__init__(message)

    @property
    def reason(self) -> str:
        return f"{self.kind}: {self}"


class ItemRecomputeError(ItemError):
    kind = "ItemRecomputeError"


class ItemPersistError(ItemError):
    kind = "ItemPersistError"


class PassTimeoutError(EconomicJobError):
    """The pass ran past its deadline; remaining states were abandoned."""

    kind = "PassTimeout"

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(f"pass exceeded {timeout_seconds:g}s; state abandoned")

    @property
    def reason(self) -> str:
        return f"{self.kind}: {self}"
