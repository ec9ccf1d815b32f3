"""Adversarial tests — the best-effort existence probe guessing wrong.

A failed probe is treated as "absent", so a create is attempted.  If the
file does exist, the provider's conflict answer must surface as a
classified conflict rather than a silent overwrite.
"""

from __future__ import annotations

import httpx
import pytest

from actionforge.core.errors import ErrorKind, RevisionConflictError
from actionforge.models.jobs import JobState

PATH = "python-files/script.py"


@pytest.mark.adversarial
class TestProbeFailureConflict:
    async def test_failed_probe_on_existing_file_surfaces_conflict(self, gateway, fake_github):
        fake_github.put_file(PATH, b"someone else's edit")
        fake_github.script(
            "GET", fake_github.contents_path(PATH), httpx.Response(502, text="Bad Gateway")
        )

        with pytest.raises(RevisionConflictError) as info:
            await gateway.write(PATH, b"print(1)")

        assert info.value.status_code == 422
        assert fake_github.files[PATH]["content"] == b"someone else's edit"

    async def test_stale_known_revision_is_rejected(self, gateway, fake_github):
        fake_github.put_file(PATH, b"v1")
        fake_github.put_file(PATH, b"v2")
        fake_github.script(
            "GET", fake_github.contents_path(PATH), httpx.Response(500, text="probe broke")
        )

        with pytest.raises(RevisionConflictError) as info:
            await gateway.write(PATH, b"v3", known_revision="not-the-current-sha")

        assert info.value.status_code == 409
        assert fake_github.files[PATH]["content"] == b"v2"

    async def test_conflict_fails_the_submission(self, make_orchestrator, fake_github, source):
        fake_github.put_file(PATH, b"concurrent upload")
        fake_github.script(
            "GET", fake_github.contents_path(PATH), httpx.Response(500, text="probe broke")
        )

        snapshot = await make_orchestrator().submit(source)

        assert snapshot.state is JobState.FAILED
        assert snapshot.failure.kind is ErrorKind.CONFLICT
        assert fake_github.count("GET", "/repos/octocat/py-to-exe/actions/runs") == 0
