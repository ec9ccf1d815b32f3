"""actionforge data models — all Pydantic v2, all frozen (immutable)."""

from actionforge.models.jobs import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    JobFailure,
    JobSnapshot,
    JobState,
    JobTransition,
    TickDecision,
)
from actionforge.models.outcome import Outcome
from actionforge.models.remote import (
    Artifact,
    AutomationRun,
    CommitResult,
    RemoteFile,
    RepositoryRef,
    RunConclusion,
    RunStatus,
    remote_path_for,
)

__all__ = [
    # remote
    "RepositoryRef",
    "RemoteFile",
    "CommitResult",
    "RunStatus",
    "RunConclusion",
    "AutomationRun",
    "Artifact",
    "remote_path_for",
    # jobs
    "JobState",
    "TERMINAL_STATES",
    "VALID_TRANSITIONS",
    "TickDecision",
    "JobFailure",
    "JobTransition",
    "JobSnapshot",
    # outcome
    "Outcome",
]
