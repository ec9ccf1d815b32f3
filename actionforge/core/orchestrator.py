"""Job orchestrator — sequences one submission from upload to artifacts.

upload -> settle -> discover run -> poll until terminal -> artifacts -> cleanup

Steps within a submission are strictly sequential.  Every network call and
every delay (settle, poll interval, retry backoff) is a suspension point;
delays go through an injectable ``sleep`` so the whole flow runs in tests
without real timers.

The orchestrator is the only component that turns a ``ForgeError`` into a
terminal, user-visible state.  Nothing already written remotely is rolled
back: on timeout, failure or cancellation the uploaded file and the remote
run are left as they are.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Protocol

from actionforge.core.errors import (
    ErrorKind,
    ForgeError,
    NoFileSelectedError,
    NotFoundError,
    RevisionConflictError,
)
from actionforge.core.http_client import Sleep
from actionforge.core.job_machine import JobMachine, Listener
from actionforge.models.jobs import JobFailure, JobSnapshot, JobState, TickDecision
from actionforge.models.remote import Artifact, AutomationRun, CommitResult, RemoteFile

logger = logging.getLogger(__name__)


class ContentStore(Protocol):
    """The subset of ``ContentGateway`` the orchestrator depends on."""

    async def write(
        self, path: str, content: bytes | str, known_revision: str | None = None
    ) -> CommitResult: ...

    async def delete(self, path: str) -> CommitResult: ...


class RunSource(Protocol):
    """The subset of ``RunTracker`` the orchestrator depends on."""

    async def latest_run(self) -> AutomationRun: ...

    async def run_status(self, run_id: int) -> AutomationRun: ...

    async def artifacts(self, run_id: int) -> list[Artifact]: ...


class JobOrchestrator:
    """Drives a ``JobMachine`` through one submission at a time.

    Parameters
    ----------
    gateway:
        Writes and deletes the uploaded source file.
    tracker:
        Discovers and polls the automation run, lists artifacts.
    settle_delay:
        Seconds to wait after the write before looking for the new run.
        Run creation lags the write by a provider-controlled interval;
        this is a mitigation, not a guarantee.
    poll_interval:
        Seconds between status checks.
    max_poll_attempts:
        Status checks allowed before the submission times out.
    cleanup_source:
        Delete the uploaded file once the run succeeds.
    sleep:
        Coroutine used for every delay; defaults to ``asyncio.sleep``.
    """

    def __init__(
        self,
        gateway: ContentStore,
        tracker: RunSource,
        *,
        settle_delay: float = 5.0,
        poll_interval: float = 5.0,
        max_poll_attempts: int = 60,
        cleanup_source: bool = True,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._gateway = gateway
        self._tracker = tracker
        self._settle_delay = settle_delay
        self._poll_interval = poll_interval
        self._cleanup_source = cleanup_source
        self._sleep = sleep
        self.machine = JobMachine(max_poll_attempts=max_poll_attempts)

        self._task: asyncio.Task[JobSnapshot] | None = None
        self._cancel_requested = False
        self._finalizing = False
        self._source_deleted = False
        self._polling = False

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def state(self) -> JobState:
        return self.machine.state

    def snapshot(self) -> JobSnapshot:
        return self.machine.snapshot()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self.machine.subscribe(listener)

    # ------------------------------------------------------------------
    # Submission lifecycle
    # ------------------------------------------------------------------

    async def submit(self, source: RemoteFile | None) -> JobSnapshot:
        """Run a submission to a terminal state and return the final snapshot.

        A missing *source* leaves the machine IDLE with a ``no_file``
        failure recorded.  Failures never propagate; they end in FAILED.
        Cancellation ends in FAILED (kind ``cancelled``) and is re-raised.
        """
        if source is None:
            self.machine.reject(
                JobFailure.from_error(NoFileSelectedError("Please select a file first"))
            )
            return self.snapshot()

        self.machine.select(source)
        self._cancel_requested = False
        self._finalizing = False
        self._source_deleted = False
        self._polling = False

        try:
            self.machine.transition(JobState.UPLOADING, detail=source.remote_path)
            commit = await self._gateway.write(source.remote_path, source.content)
            self.machine.transition(JobState.WAITING, revision=commit.revision)

            await self._sleep(self._settle_delay)
            self._raise_if_cancelled()
            self.machine.transition(JobState.DISCOVERING_RUN)

            run = await self._tracker.latest_run()
            self.machine.transition(JobState.MONITORING, run=run, detail=f"run {run.id}")

            await self._monitor()
        except asyncio.CancelledError:
            self._fail_cancelled()
            raise
        except ForgeError as exc:
            logger.error("Submission of %s failed: %s", source.name, exc.message)
            self.machine.fail(JobFailure.from_error(exc))

        return self.snapshot()

    def start(self, source: RemoteFile | None) -> asyncio.Task[JobSnapshot]:
        """Schedule ``submit`` as a task so that it can be cancelled externally."""
        self._task = asyncio.create_task(self.submit(source))
        return self._task

    def cancel(self) -> None:
        """Stop scheduling further ticks and cancel the running task, if any.

        Already-issued writes are not rolled back.
        """
        self._cancel_requested = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def refresh(self) -> JobSnapshot:
        """Manually check the run status once while MONITORING.

        A refresh that lands while another status check is in flight returns
        the current snapshot without polling, so overlapping checks count
        once against ``max_poll_attempts``.  Finalization and cleanup happen
        at most once.
        """
        if self.machine.state is not JobState.MONITORING:
            return self.snapshot()
        try:
            await self._poll_once()
        except ForgeError as exc:
            self.machine.fail(JobFailure.from_error(exc))
        return self.snapshot()

    # ------------------------------------------------------------------
    # Internal: monitoring
    # ------------------------------------------------------------------

    async def _monitor(self) -> None:
        while self.machine.state is JobState.MONITORING:
            await self._sleep(self._poll_interval)
            self._raise_if_cancelled()
            if self.machine.state is not JobState.MONITORING:
                break  # a manual refresh finished the job meanwhile
            await self._poll_once()

    async def _poll_once(self) -> None:
        run_id = self.machine.run_id
        if run_id is None or self._polling:
            return
        self._polling = True
        try:
            run = await self._tracker.run_status(run_id)
            decision = self.machine.tick(run)
            if decision is TickDecision.SUCCEEDED:
                await self._finalize(run)
        finally:
            self._polling = False

    async def _finalize(self, run: AutomationRun) -> None:
        if self._finalizing:
            return
        self._finalizing = True

        artifacts = await self._tracker.artifacts(run.id)
        logger.info("Run %d succeeded with %d artifact(s)", run.id, len(artifacts))
        if self._cleanup_source:
            await self._cleanup()
        if self.machine.state is not JobState.MONITORING:
            return  # cancelled or failed while finalizing
        self.machine.transition(
            JobState.COMPLETED, artifacts=artifacts, detail=f"{len(artifacts)} artifact(s)"
        )

    async def _cleanup(self) -> None:
        source = self.machine.source
        if source is None or self._source_deleted:
            return
        try:
            await self._gateway.delete(source.remote_path)
        except (NotFoundError, RevisionConflictError) as exc:
            logger.warning("Source %s already removed: %s", source.remote_path, exc.message)
        self._source_deleted = True
        self.machine.mark_source_deleted()

    # ------------------------------------------------------------------
    # Internal: cancellation
    # ------------------------------------------------------------------

    def _raise_if_cancelled(self) -> None:
        if self._cancel_requested:
            raise asyncio.CancelledError()

    def _fail_cancelled(self) -> None:
        logger.warning("Submission cancelled in state %s", self.machine.state.value)
        self.machine.fail(
            JobFailure(kind=ErrorKind.CANCELLED, message="Submission cancelled")
        )
