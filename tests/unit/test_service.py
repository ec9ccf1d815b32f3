"""Tests for ForgeService — Outcome conversion and orchestrator wiring."""

from __future__ import annotations

import httpx
import pytest

from actionforge.config import ForgeSettings
from actionforge.core.errors import ConfigurationError, ErrorKind
from actionforge.models.jobs import JobState
from actionforge.service import ForgeService

PATH = "python-files/script.py"


@pytest.fixture
async def service(client, repository):
    forge = ForgeService(client, repository)
    yield forge
    await forge.aclose()


class TestOutcomes:
    async def test_upload_success(self, service, fake_github):
        outcome = await service.upload("print(1)", "script.py")
        assert outcome.ok
        assert outcome.value.path == PATH
        assert fake_github.files[PATH]["content"] == b"print(1)"

    async def test_upload_strips_directories(self, service, fake_github):
        outcome = await service.upload(b"x", "C:\\Users\\dev\\script.py")
        assert outcome.value.path == PATH

    async def test_upload_without_name_is_no_file(self, service, fake_github):
        outcome = await service.upload(b"x", "  ")
        assert not outcome.ok
        assert outcome.error_kind is ErrorKind.NO_FILE
        assert fake_github.requests == []

    async def test_failure_carries_kind_and_status(self, service, fake_github):
        fake_github.script(
            "PUT", fake_github.contents_path(PATH),
            httpx.Response(403, json={"message": "Resource not accessible"}),
        )
        outcome = await service.upload(b"x", "script.py")
        assert not outcome.ok
        assert outcome.value is None
        assert outcome.error_kind is ErrorKind.AUTHORIZATION
        assert outcome.status_code == 403
        assert "contents: write" in outcome.error

    async def test_latest_run_without_runs(self, service):
        outcome = await service.get_latest_run()
        assert outcome.error_kind is ErrorKind.NO_RUNS

    async def test_run_status_and_artifacts(self, service, fake_github):
        fake_github.add_run(42, "completed", "success")
        fake_github.add_artifact(42, 7, "script.exe")

        status = await service.get_run_status(42)
        artifacts = await service.get_artifacts(42)

        assert status.value.succeeded
        assert [a.id for a in artifacts.value] == [7]

    async def test_download_expired_artifact(self, service, fake_github):
        fake_github.add_artifact(42, 7, "script.exe", expired=True)
        outcome = await service.download_artifact(7)
        assert outcome.error_kind is ErrorKind.EXPIRED

    async def test_download_artifact(self, service, fake_github):
        fake_github.add_artifact(42, 7, "script.exe", payload=b"ZIP")
        outcome = await service.download_artifact(7)
        assert outcome.value == b"ZIP"

    async def test_delete_missing_file(self, service):
        outcome = await service.delete_file("script.py")
        assert outcome.error_kind is ErrorKind.NOT_FOUND

    async def test_delete_uses_upload_path(self, service, fake_github):
        fake_github.put_file(PATH, b"x")
        outcome = await service.delete_file("script.py")
        assert outcome.ok
        assert PATH not in fake_github.files

    async def test_undecodable_status_body_is_parse_outcome(self, service, fake_github):
        fake_github.add_run(42, "completed", "success")
        fake_github.script(
            "GET", "/repos/octocat/py-to-exe/actions/runs/42",
            httpx.Response(
                200,
                headers={"Content-Encoding": "gzip"},
                stream=httpx.ByteStream(b"not gzip at all"),
            ),
        )
        outcome = await service.get_run_status(42)
        assert not outcome.ok
        assert outcome.error_kind is ErrorKind.PARSE

    async def test_check_access(self, service):
        report = await service.check_access()
        assert report.ok


class TestConstruction:
    def test_from_settings_requires_credentials(self):
        with pytest.raises(ConfigurationError):
            ForgeService.from_settings(ForgeSettings(_env_file=None, token="", owner="", repo=""))

    async def test_from_settings_uses_upload_dir(self, fake_github, sleep):
        settings = ForgeSettings(
            _env_file=None, token="t", owner="octocat", repo="py-to-exe", upload_dir="incoming"
        )
        async with ForgeService.from_settings(
            settings, transport=httpx.MockTransport(fake_github), sleep=sleep
        ) as service:
            outcome = await service.upload(b"x", "script.py")
        assert outcome.value.path == "incoming/script.py"

    async def test_orchestrator_uses_settings_and_overrides(self, fake_github, sleep, source):
        settings = ForgeSettings(
            _env_file=None,
            token="t",
            owner="octocat",
            repo="py-to-exe",
            settle_delay=1.5,
            poll_interval=0.5,
            cleanup_source=False,
        )
        fake_github.add_run(42, "completed", "success")
        async with ForgeService.from_settings(
            settings, transport=httpx.MockTransport(fake_github), sleep=sleep
        ) as service:
            snapshot = await service.orchestrator(sleep=sleep).submit(source)

        assert snapshot.state is JobState.COMPLETED
        assert sleep.delays == [1.5, 0.5]
        assert fake_github.count("DELETE", fake_github.contents_path(PATH)) == 0
