"""Job state machine models — the lifecycle of one submission."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from actionforge.core.errors import ErrorKind, ForgeError
from actionforge.models.remote import Artifact


class JobState(str, Enum):
    """States a submission moves through, from file selection to result."""

    IDLE = "idle"
    UPLOADING = "uploading"
    WAITING = "waiting"
    DISCOVERING_RUN = "discovering_run"
    MONITORING = "monitoring"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATES: frozenset[JobState] = frozenset({JobState.COMPLETED, JobState.FAILED})

# Valid state transitions, enforced by JobMachine.
# Terminal states only lead back to IDLE, on a new file selection.
VALID_TRANSITIONS: dict[JobState, set[JobState]] = {
    JobState.IDLE: {JobState.UPLOADING},
    JobState.UPLOADING: {JobState.WAITING, JobState.FAILED},
    JobState.WAITING: {JobState.DISCOVERING_RUN, JobState.FAILED},
    JobState.DISCOVERING_RUN: {JobState.MONITORING, JobState.FAILED},
    JobState.MONITORING: {JobState.COMPLETED, JobState.FAILED},
    JobState.COMPLETED: {JobState.IDLE},
    JobState.FAILED: {JobState.IDLE},
}


class TickDecision(str, Enum):
    """What a single monitoring tick concluded."""

    CONTINUE = "continue"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    IGNORED = "ignored"  # machine was no longer monitoring


class JobFailure(BaseModel):
    """Why a submission ended in FAILED (or was rejected while IDLE)."""

    model_config = ConfigDict(frozen=True)

    kind: ErrorKind
    message: str
    status_code: int | None = None
    conclusion: str | None = None

    @classmethod
    def from_error(cls, exc: ForgeError) -> JobFailure:
        return cls(
            kind=exc.kind,
            message=exc.message,
            status_code=exc.status_code,
            conclusion=getattr(exc, "conclusion", None),
        )


class JobTransition(BaseModel):
    """Records a single state transition."""

    model_config = ConfigDict(frozen=True)

    from_state: JobState
    to_state: JobState
    at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    detail: str | None = None


class JobSnapshot(BaseModel):
    """Point-in-time view of a submission, handed to subscribers."""

    model_config = ConfigDict(frozen=True)

    state: JobState = JobState.IDLE
    file_name: str | None = None
    remote_path: str | None = None
    revision: str | None = None
    run_id: int | None = None
    run_status: str | None = None
    conclusion: str | None = None
    attempts: int = 0
    max_attempts: int = 0
    artifacts: list[Artifact] = []
    failure: JobFailure | None = None
    source_deleted: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def downloadable_artifacts(self) -> list[Artifact]:
        """Artifacts that may still be fetched (expired ones never are)."""
        return [a for a in self.artifacts if not a.expired]
