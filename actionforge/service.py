"""ForgeService — the caller-facing surface.

Wires the resilient client, content gateway and run tracker for one
repository, and converts every ``ForgeError`` into an ``Outcome`` so
callers never have to catch.  The service owns its HTTP client; use it as
an async context manager::

    async with ForgeService.from_settings(settings) as service:
        outcome = await service.upload(b"print(1)", "script.py")
        if not outcome.ok:
            print(outcome.error)
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable
from typing import Any, TypeVar

from actionforge.config import ForgeSettings
from actionforge.core.access_probe import AccessProbe, AccessReport
from actionforge.core.content_gateway import ContentGateway
from actionforge.core.errors import ForgeError, NoFileSelectedError
from actionforge.core.http_client import ResilientClient
from actionforge.core.orchestrator import JobOrchestrator
from actionforge.core.run_tracker import RunTracker
from actionforge.models.outcome import Outcome
from actionforge.models.remote import (
    Artifact,
    AutomationRun,
    CommitResult,
    RemoteFile,
    RepositoryRef,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ForgeService:
    """Upload, inspect runs, fetch artifacts and clean up for one repository.

    Parameters
    ----------
    client:
        The resilient HTTP client; closed when the service closes.
    repository:
        Target repository.
    settings:
        Optional settings; supplies defaults for ``orchestrator()``.
    """

    def __init__(
        self,
        client: ResilientClient,
        repository: RepositoryRef,
        *,
        upload_dir: str = "python-files",
        runs_per_page: int = 5,
        settings: ForgeSettings | None = None,
    ) -> None:
        self._client = client
        self._repository = repository
        self._settings = settings
        self.gateway = ContentGateway(client, repository, upload_dir=upload_dir)
        self.tracker = RunTracker(client, repository, runs_per_page=runs_per_page)

    @classmethod
    def from_settings(cls, settings: ForgeSettings, **client_kwargs: Any) -> ForgeService:
        """Validate *settings* and build a service.

        Raises
        ------
        ConfigurationError
            If the token or repository identity is missing.
        """
        settings.require_credentials()
        client = ResilientClient.from_settings(settings, **client_kwargs)
        return cls(
            client,
            settings.repository,
            upload_dir=settings.upload_dir,
            runs_per_page=settings.runs_per_page,
            settings=settings,
        )

    @property
    def repository(self) -> RepositoryRef:
        return self._repository

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> ForgeService:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def upload(self, content: bytes | str, name: str) -> Outcome[CommitResult]:
        if not name or not name.strip():
            return Outcome.failure(NoFileSelectedError("Please select a file first"))
        source = self.gateway.local_file(name, content)
        return await self._guard(
            f"upload {source.remote_path}",
            self.gateway.write(source.remote_path, source.content),
        )

    async def get_latest_run(self) -> Outcome[AutomationRun]:
        return await self._guard("find latest run", self.tracker.latest_run())

    async def get_run_status(self, run_id: int) -> Outcome[AutomationRun]:
        return await self._guard(f"read run {run_id}", self.tracker.run_status(run_id))

    async def get_artifacts(self, run_id: int) -> Outcome[list[Artifact]]:
        return await self._guard(f"list artifacts of run {run_id}", self.tracker.artifacts(run_id))

    async def download_artifact(self, artifact_id: int) -> Outcome[bytes]:
        return await self._guard(
            f"download artifact {artifact_id}",
            self.tracker.fetch_artifact_payload(artifact_id),
        )

    async def get_artifact_url(self, artifact_id: int) -> Outcome[str]:
        return await self._guard(
            f"resolve artifact {artifact_id}",
            self.tracker.artifact_download_url(artifact_id),
        )

    async def delete_file(self, name: str) -> Outcome[CommitResult]:
        path = self.gateway.remote_path(name)
        return await self._guard(f"delete {path}", self.gateway.delete(path))

    async def read_file(self, name: str) -> Outcome[RemoteFile | None]:
        path = self.gateway.remote_path(name)
        return await self._guard(f"read {path}", self.gateway.read(path))

    async def check_access(self) -> AccessReport:
        """Probe authentication and repository access; never raises."""
        return await AccessProbe(self._client, self._repository).run()

    def orchestrator(self, **overrides: Any) -> JobOrchestrator:
        """Build a ``JobOrchestrator`` bound to this service's gateway and tracker.

        Pacing comes from the settings the service was built with; keyword
        *overrides* (e.g. ``sleep``, ``cleanup_source``) take precedence.
        """
        options: dict[str, Any] = {}
        if self._settings is not None:
            options.update(
                settle_delay=self._settings.settle_delay,
                poll_interval=self._settings.poll_interval,
                max_poll_attempts=self._settings.max_poll_attempts,
                cleanup_source=self._settings.cleanup_source,
            )
        options.update(overrides)
        return JobOrchestrator(self.gateway, self.tracker, **options)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _guard(self, action: str, call: Awaitable[T]) -> Outcome[T]:
        try:
            value = await call
        except ForgeError as exc:
            logger.error("Failed to %s: %s", action, exc.message)
            return Outcome.failure(exc)
        return Outcome.success(value)
