"""Job state machine for one submission at a time.

Enforces:
- Valid state transitions only (VALID_TRANSITIONS table)
- A bounded number of monitoring ticks
- Every transition recorded and pushed to subscribers

The machine performs no I/O and never sleeps.  ``tick()`` is the single
monitoring transition function: the orchestrator feeds it each observed
run status, so it can be unit-tested without timers or a network.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from actionforge.core.errors import PollTimeoutError, RunFailedError
from actionforge.models.jobs import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    JobFailure,
    JobSnapshot,
    JobState,
    JobTransition,
    TickDecision,
)
from actionforge.models.remote import Artifact, AutomationRun, RemoteFile

logger = logging.getLogger(__name__)

Listener = Callable[[JobTransition, JobSnapshot], None]


class InvalidTransitionError(RuntimeError):
    """Raised when a requested state transition is not valid."""


class JobMachine:
    """Holds the current state of a submission and validates every change.

    Parameters
    ----------
    max_poll_attempts:
        Monitoring ticks allowed before the job times out.
    """

    def __init__(self, max_poll_attempts: int = 60) -> None:
        if max_poll_attempts < 1:
            raise ValueError("max_poll_attempts must be at least 1")
        self._max_attempts = max_poll_attempts
        self._listeners: list[Listener] = []
        self._history: list[JobTransition] = []
        self._clear()

    def _clear(self) -> None:
        self._state = JobState.IDLE
        self._source: RemoteFile | None = None
        self._revision: str | None = None
        self._run: AutomationRun | None = None
        self._attempts = 0
        self._artifacts: list[Artifact] = []
        self._failure: JobFailure | None = None
        self._source_deleted = False

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def state(self) -> JobState:
        return self._state

    @property
    def run_id(self) -> int | None:
        return self._run.id if self._run else None

    @property
    def source(self) -> RemoteFile | None:
        return self._source

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def history(self) -> list[JobTransition]:
        return list(self._history)

    def snapshot(self) -> JobSnapshot:
        return JobSnapshot(
            state=self._state,
            file_name=self._source.name if self._source else None,
            remote_path=self._source.remote_path if self._source else None,
            revision=self._revision,
            run_id=self.run_id,
            run_status=self._run.status if self._run else None,
            conclusion=self._run.conclusion if self._run else None,
            attempts=self._attempts,
            max_attempts=self._max_attempts,
            artifacts=list(self._artifacts),
            failure=self._failure,
            source_deleted=self._source_deleted,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener* for every transition; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def select(self, source: RemoteFile) -> None:
        """Reset to IDLE for a newly selected file.

        Allowed from IDLE and from either terminal state.
        """
        if self._state not in TERMINAL_STATES and self._state is not JobState.IDLE:
            raise InvalidTransitionError(
                f"Cannot select a new file while the job is {self._state.value}"
            )
        previous = self._state
        self._clear()
        self._source = source
        if previous is not JobState.IDLE:
            self._record(previous, JobState.IDLE, detail=f"selected {source.name}")

    def reject(self, failure: JobFailure) -> None:
        """Record a failure that leaves the machine IDLE (e.g. no file selected)."""
        if self._state is not JobState.IDLE:
            raise InvalidTransitionError(
                f"Cannot reject a submission while the job is {self._state.value}"
            )
        self._clear()
        self._failure = failure
        self._record(JobState.IDLE, JobState.IDLE, detail=failure.message)

    def transition(
        self,
        target: JobState,
        *,
        revision: str | None = None,
        run: AutomationRun | None = None,
        artifacts: list[Artifact] | None = None,
        detail: str | None = None,
    ) -> JobTransition:
        """Move to *target*, applying any supplied updates."""
        current = self._state
        allowed = VALID_TRANSITIONS.get(current, set())
        if target not in allowed:
            raise InvalidTransitionError(
                f"Cannot transition from {current.value} to {target.value}. "
                f"Allowed: {sorted(s.value for s in allowed)}"
            )
        if target is JobState.UPLOADING and self._source is None:
            raise InvalidTransitionError("Cannot upload without a selected file")

        if revision is not None:
            self._revision = revision
        if run is not None:
            self._run = run
        if artifacts is not None:
            self._artifacts = list(artifacts)
        if target is JobState.MONITORING:
            self._attempts = 0

        self._state = target
        return self._record(current, target, detail=detail)

    def fail(self, failure: JobFailure) -> JobTransition | None:
        """Move to FAILED from any non-terminal state.

        Returns None if the job already reached a terminal state.
        """
        if self._state in TERMINAL_STATES:
            logger.debug("Ignoring failure in terminal state %s: %s", self._state.value, failure.message)
            return None
        if self._state is JobState.IDLE:
            self.reject(failure)
            return None
        current = self._state
        self._failure = failure
        self._state = JobState.FAILED
        return self._record(current, JobState.FAILED, detail=failure.message)

    def tick(self, run: AutomationRun) -> TickDecision:
        """Apply one observed run status while MONITORING.

        - terminal + success            -> SUCCEEDED (caller finalizes)
        - terminal + any other result   -> FAILED, conclusion recorded
        - non-terminal, bound reached   -> FAILED with a timeout
        - otherwise                     -> CONTINUE
        """
        if self._state is not JobState.MONITORING:
            return TickDecision.IGNORED

        self._run = run
        self._attempts += 1
        logger.info(
            "Run %d: %s%s (check %d/%d)",
            run.id, run.status,
            f"/{run.conclusion}" if run.conclusion else "",
            self._attempts, self._max_attempts,
        )

        if run.is_terminal:
            if run.succeeded:
                return TickDecision.SUCCEEDED
            conclusion = run.conclusion or "unknown"
            self.fail(
                JobFailure.from_error(
                    RunFailedError(
                        f"Run {run.id} concluded with '{conclusion}'", conclusion=conclusion
                    )
                )
            )
            return TickDecision.FAILED

        if self._attempts >= self._max_attempts:
            self.fail(
                JobFailure.from_error(
                    PollTimeoutError(
                        f"Run {run.id} did not complete within {self._max_attempts} "
                        f"status checks (last status: {run.status})"
                    )
                )
            )
            return TickDecision.TIMED_OUT

        return TickDecision.CONTINUE

    def mark_source_deleted(self) -> None:
        self._source_deleted = True

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _record(
        self, from_state: JobState, to_state: JobState, *, detail: str | None = None
    ) -> JobTransition:
        entry = JobTransition(from_state=from_state, to_state=to_state, detail=detail)
        self._history.append(entry)
        logger.info("Job %s -> %s%s", from_state.value, to_state.value, f" ({detail})" if detail else "")

        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(entry, snapshot)
            except Exception:
                logger.exception("Job listener %r failed", listener)
        return entry
