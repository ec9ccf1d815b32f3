"""Models for resources that live on the hosting service.

``RemoteFile`` is the only one this package creates; runs and artifacts are
observed, never mutated.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from pathlib import PurePosixPath

from pydantic import BaseModel, ConfigDict, field_validator


class RepositoryRef(BaseModel):
    """Owner/name pair identifying the target repository."""

    model_config = ConfigDict(frozen=True)

    owner: str
    repo: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def api_path(self) -> str:
        """Path prefix for every repository-scoped endpoint."""
        return f"/repos/{self.owner}/{self.repo}"


class RemoteFile(BaseModel):
    """One uploaded source file.

    ``revision`` is the provider's content hash and is only known once the
    file exists remotely.  Writes must carry it iff the file already exists.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    content: bytes
    remote_path: str
    revision: str | None = None

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("file name must not be empty")
        return value

    @classmethod
    def from_local(
        cls, name: str, content: bytes | str, *, upload_dir: str = "python-files"
    ) -> RemoteFile:
        """Build a RemoteFile for a locally selected file.

        Directory components of *name* are dropped so the remote path is
        always ``{upload_dir}/{basename}``.
        """
        basename = PurePosixPath(name.replace("\\", "/")).name
        if isinstance(content, str):
            content = content.encode("utf-8")
        return cls(
            name=basename,
            content=content,
            remote_path=remote_path_for(basename, upload_dir),
        )

    def with_revision(self, revision: str | None) -> RemoteFile:
        return self.model_copy(update={"revision": revision})


def remote_path_for(name: str, upload_dir: str = "python-files") -> str:
    """Deterministic remote path for a logical file name."""
    upload_dir = upload_dir.strip("/")
    return f"{upload_dir}/{name}" if upload_dir else name


class CommitResult(BaseModel):
    """Result of a create/update/delete on a repository file."""

    model_config = ConfigDict(frozen=True)

    path: str
    revision: str | None = None  # None after a delete
    commit_sha: str | None = None


class RunStatus(str, Enum):
    """Lifecycle status values reported for an automation run."""

    REQUESTED = "requested"
    QUEUED = "queued"
    PENDING = "pending"
    WAITING = "waiting"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class RunConclusion(str, Enum):
    """Conclusion values; only present once a run is completed."""

    SUCCESS = "success"
    FAILURE = "failure"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"
    TIMED_OUT = "timed_out"
    NEUTRAL = "neutral"
    ACTION_REQUIRED = "action_required"
    STALE = "stale"
    STARTUP_FAILURE = "startup_failure"


class AutomationRun(BaseModel):
    """One execution of the hosted CI pipeline.

    ``status`` and ``conclusion`` are kept as plain strings so that values
    the provider adds later still parse; compare against ``RunStatus`` and
    ``RunConclusion``.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int
    status: str
    conclusion: str | None = None
    created_at: datetime | None = None
    name: str | None = None
    head_sha: str | None = None
    html_url: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status == RunStatus.COMPLETED.value

    @property
    def succeeded(self) -> bool:
        return self.is_terminal and self.conclusion == RunConclusion.SUCCESS.value


class Artifact(BaseModel):
    """A downloadable output of a completed run.  The payload is fetched lazily."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int
    name: str
    expired: bool = False
    size_in_bytes: int = 0
    archive_download_url: str | None = None
    created_at: datetime | None = None
    expires_at: datetime | None = None
