"""Automation run tracker — discover runs, read status, fetch artifacts.

Runs are created by the provider asynchronously after a file write and are
never returned by the write itself, so the run belonging to a submission is
inferred by recency: the most recently created run after the write.

Artifact download is an explicit two-step strategy because the provider
answers the archive endpoint either with the payload directly or with a
redirect to short-lived storage:

1. Direct: authenticated GET without automatic redirect following.
2. Redirect: unauthenticated GET of the ``Location`` target.  The target
   carries its own authorization in the URL; the token is never resent.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TypeVar

from pydantic import BaseModel, ValidationError

from actionforge.core.errors import (
    ArtifactExpiredError,
    NoRunsFoundError,
    ResponseParseError,
)
from actionforge.core.http_client import ResilientClient
from actionforge.models.remote import Artifact, AutomationRun, RepositoryRef

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

_MISSING = object()


@dataclass(frozen=True)
class DirectDownload:
    """Outcome of step 1: either the payload or a redirect target."""

    payload: bytes | None = None
    redirect_url: str | None = None


class RunTracker:
    """Read-only view of a repository's automation runs and artifacts.

    Parameters
    ----------
    client:
        The shared resilient HTTP client.
    repository:
        Target repository.
    runs_per_page:
        How many recent runs to request during discovery.
    """

    def __init__(
        self,
        client: ResilientClient,
        repository: RepositoryRef,
        *,
        runs_per_page: int = 5,
    ) -> None:
        self._client = client
        self._repository = repository
        self._runs_per_page = runs_per_page

    @property
    def _actions(self) -> str:
        return f"{self._repository.api_path}/actions"

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    async def latest_run(self) -> AutomationRun:
        """Return the most recently created run.

        Raises
        ------
        NoRunsFoundError
            If the repository has no runs at all.
        """
        data = await self._client.get_json(
            f"{self._actions}/runs", params={"per_page": self._runs_per_page}
        )
        raw_runs = _field(data, "workflow_runs", list)
        runs = [_parse(AutomationRun, item) for item in raw_runs]
        if not runs:
            raise NoRunsFoundError(
                f"No automation runs found in {self._repository.full_name}. "
                "Check that a workflow is configured to run on pushes to the upload path."
            )
        # The provider orders by recency already; runs without a timestamp sort last.
        latest = max(runs, key=lambda r: (r.created_at is not None, r.created_at or 0, r.id))
        logger.info("Latest run in %s: %d (%s)", self._repository.full_name, latest.id, latest.status)
        return latest

    async def run_status(self, run_id: int) -> AutomationRun:
        data = await self._client.get_json(f"{self._actions}/runs/{run_id}")
        run = _parse(AutomationRun, data)
        logger.debug("Run %d: status=%s conclusion=%s", run.id, run.status, run.conclusion)
        return run

    # ------------------------------------------------------------------
    # Artifacts
    # ------------------------------------------------------------------

    async def artifacts(self, run_id: int) -> list[Artifact]:
        """List artifacts of a run; an empty list when the run produced none."""
        data = await self._client.get_json(f"{self._actions}/runs/{run_id}/artifacts")
        return [_parse(Artifact, item) for item in _field(data, "artifacts", list, default=[])]

    async def artifact_metadata(self, artifact_id: int) -> Artifact:
        data = await self._client.get_json(f"{self._actions}/artifacts/{artifact_id}")
        return _parse(Artifact, data)

    async def fetch_artifact_payload(self, artifact_id: int) -> bytes:
        """Download the artifact archive.

        Raises
        ------
        ArtifactExpiredError
            If the artifact has expired; no download is attempted.
        """
        await self._require_downloadable(artifact_id)

        direct = await self._download_direct(artifact_id)
        if direct.payload is not None:
            return direct.payload
        return await self._download_redirect(direct.redirect_url)

    async def artifact_download_url(self, artifact_id: int) -> str:
        """Resolve the short-lived download URL without fetching the payload.

        Falls back to the API archive URL when the provider serves the
        payload directly instead of redirecting.
        """
        artifact = await self._require_downloadable(artifact_id)
        response = await self._client.request(
            "GET", self._archive_url(artifact_id), follow_redirects=False
        )
        if response.has_redirect_location:
            return response.headers["location"]
        return artifact.archive_download_url or str(response.request.url)

    # ------------------------------------------------------------------
    # Internal: download strategy
    # ------------------------------------------------------------------

    def _archive_url(self, artifact_id: int) -> str:
        return f"{self._actions}/artifacts/{artifact_id}/zip"

    async def _require_downloadable(self, artifact_id: int) -> Artifact:
        artifact = await self.artifact_metadata(artifact_id)
        if artifact.expired:
            raise ArtifactExpiredError(
                f"Artifact {artifact.name} ({artifact_id}) has expired and can no longer "
                "be downloaded. Re-run the workflow to produce a new one."
            )
        return artifact

    async def _download_direct(self, artifact_id: int) -> DirectDownload:
        response = await self._client.request(
            "GET", self._archive_url(artifact_id), follow_redirects=False
        )
        if response.is_redirect:
            logger.debug("Artifact %d: provider redirected, following without credentials", artifact_id)
            return DirectDownload(redirect_url=response.headers.get("location"))
        logger.debug("Artifact %d: served directly (%d bytes)", artifact_id, len(response.content))
        return DirectDownload(payload=response.content)

    async def _download_redirect(self, url: str | None) -> bytes:
        if not url:
            raise ResponseParseError("Redirect response carried no Location header")
        response = await self._client.request("GET", url, authenticated=False)
        logger.debug("Artifact downloaded via redirect (%d bytes)", len(response.content))
        return response.content


def _field(data: object, key: str, expected: type, *, default: object = _MISSING) -> object:
    """Pull *key* out of a JSON object, insisting on its type."""
    if isinstance(data, dict) and key not in data and default is not _MISSING:
        return default
    value = data.get(key) if isinstance(data, dict) else None
    if not isinstance(value, expected):
        raise ResponseParseError(
            f"Expected '{key}' to be a {expected.__name__} in response",
            snippet=repr(data)[:200],
        )
    return value


def _parse(model: type[ModelT], data: object) -> ModelT:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise ResponseParseError(
            f"Unexpected {model.__name__} payload: {exc.error_count()} validation error(s)",
            snippet=repr(data)[:200],
        ) from exc
