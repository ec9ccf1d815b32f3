"""Shared test fixtures for actionforge.

``FakeGitHub`` is an in-memory stand-in for the hosting API, served to the
real ``ResilientClient`` through ``httpx.MockTransport``.  Individual
requests can be scripted ahead of the default routing (rate limits,
errors, network failures) with ``FakeGitHub.script``.
"""

from __future__ import annotations

import asyncio
import base64
import hashlib
import json
from collections.abc import AsyncIterator, Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
import pytest

from actionforge.core.content_gateway import ContentGateway
from actionforge.core.http_client import ResilientClient
from actionforge.core.orchestrator import JobOrchestrator
from actionforge.core.run_tracker import RunTracker
from actionforge.models.remote import RemoteFile, RepositoryRef

API_BASE = "https://api.github.com"
OWNER = "octocat"
REPO = "py-to-exe"
TOKEN = "test-token"
CLOCK_NOW = 1_000_000.0


class FakeGitHub:
    """In-memory hosting API: contents, runs and artifacts for one repository."""

    def __init__(self, owner: str = OWNER, repo: str = REPO) -> None:
        self.prefix = f"/repos/{owner}/{repo}"
        self.full_name = f"{owner}/{repo}"
        self.files: dict[str, dict[str, Any]] = {}
        self.runs: dict[int, dict[str, Any]] = {}
        self.status_script: dict[int, list[dict[str, Any]]] = {}
        self.run_artifacts: dict[int, list[int]] = {}
        self.artifacts: dict[int, dict[str, Any]] = {}
        self.payloads: dict[int, bytes] = {}
        self.redirects: dict[int, str] = {}
        self.storage: dict[str, bytes] = {}
        self.user: dict[str, Any] = {"login": owner, "type": "User"}
        self.permissions: dict[str, bool] = {"push": True}
        self.requests: list[httpx.Request] = []
        self._scripted: dict[tuple[str, str], list[httpx.Response | Exception]] = {}
        self._revision = 0

    # ------------------------------------------------------------------
    # Arrangement helpers
    # ------------------------------------------------------------------

    def script(self, method: str, path: str, *responses: httpx.Response | Exception) -> None:
        """Queue *responses* for the next requests to ``method path``."""
        self._scripted.setdefault((method, path), []).extend(responses)

    def put_file(self, path: str, content: bytes) -> str:
        sha = self._next_sha(content)
        self.files[path] = {"sha": sha, "content": content}
        return sha

    def add_run(
        self,
        run_id: int,
        status: str = "queued",
        conclusion: str | None = None,
        *,
        minutes_ago: int = 0,
    ) -> dict[str, Any]:
        created = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc) - timedelta(minutes=minutes_ago)
        run = {
            "id": run_id,
            "name": "Build executable",
            "status": status,
            "conclusion": conclusion,
            "created_at": created.isoformat().replace("+00:00", "Z"),
            "head_sha": f"{run_id:040d}",
            "html_url": f"https://github.com/{self.full_name}/actions/runs/{run_id}",
        }
        self.runs[run_id] = run
        return run

    def script_statuses(self, run_id: int, *states: tuple[str, str | None]) -> None:
        """Successive ``GET runs/{id}`` answers; the last one repeats."""
        base = self.runs[run_id]
        self.status_script[run_id] = [
            {**base, "status": status, "conclusion": conclusion} for status, conclusion in states
        ]

    def add_artifact(
        self,
        run_id: int,
        artifact_id: int,
        name: str,
        *,
        expired: bool = False,
        payload: bytes = b"PK\x03\x04zip",
        redirect_to: str | None = None,
    ) -> None:
        self.artifacts[artifact_id] = {
            "id": artifact_id,
            "name": name,
            "expired": expired,
            "size_in_bytes": len(payload),
            "archive_download_url": f"{API_BASE}{self.prefix}/actions/artifacts/{artifact_id}/zip",
        }
        self.run_artifacts.setdefault(run_id, []).append(artifact_id)
        if redirect_to is not None:
            self.redirects[artifact_id] = redirect_to
            self.storage[redirect_to] = payload
        else:
            self.payloads[artifact_id] = payload

    # ------------------------------------------------------------------
    # Inspection helpers
    # ------------------------------------------------------------------

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def count(self, method: str, path: str) -> int:
        return len(self.calls(method, path))

    def contents_path(self, path: str) -> str:
        return f"{self.prefix}/contents/{path}"

    @staticmethod
    def body(request: httpx.Request) -> dict[str, Any]:
        return json.loads(request.content)

    # ------------------------------------------------------------------
    # Transport handler
    # ------------------------------------------------------------------

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self._scripted.get((request.method, request.url.path))
        if queue:
            item = queue.pop(0)
            if isinstance(item, Exception):
                raise item
            return item
        return self._route(request)

    def _route(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if url in self.storage:
            return httpx.Response(200, content=self.storage[url])

        path = request.url.path
        if path == "/user":
            return httpx.Response(200, json=self.user)
        if path == self.prefix:
            return httpx.Response(
                200,
                json={"full_name": self.full_name, "private": True, "permissions": self.permissions},
            )
        if path == f"{self.prefix}/contents":
            return httpx.Response(
                200, json=[{"name": p, "type": "file"} for p in sorted(self.files)]
            )
        if path.startswith(f"{self.prefix}/contents/"):
            return self._contents(request, path[len(f"{self.prefix}/contents/"):])
        if path.startswith(f"{self.prefix}/actions/"):
            return self._actions(request, path[len(f"{self.prefix}/actions/"):])
        return _not_found()

    def _contents(self, request: httpx.Request, path: str) -> httpx.Response:
        entry = self.files.get(path)
        if request.method == "GET":
            if entry is None:
                return _not_found()
            return httpx.Response(
                200,
                json={
                    "name": path.rsplit("/", 1)[-1],
                    "path": path,
                    "sha": entry["sha"],
                    "encoding": "base64",
                    "content": base64.b64encode(entry["content"]).decode("ascii"),
                },
            )

        body = self.body(request)
        if request.method == "PUT":
            if entry is not None and body.get("sha") != entry["sha"]:
                if "sha" not in body:
                    return httpx.Response(
                        422, json={"message": "Invalid request.\n\n\"sha\" wasn't supplied."}
                    )
                return httpx.Response(409, json={"message": f"{path} does not match {body['sha']}"})
            content = base64.b64decode(body["content"])
            sha = self.put_file(path, content)
            return httpx.Response(
                200 if entry else 201,
                json={"content": {"path": path, "sha": sha}, "commit": {"sha": f"c-{sha}"}},
            )

        if request.method == "DELETE":
            if entry is None:
                return _not_found()
            if body.get("sha") != entry["sha"]:
                return httpx.Response(409, json={"message": f"{path} does not match {body.get('sha')}"})
            del self.files[path]
            return httpx.Response(200, json={"content": None, "commit": {"sha": f"d-{entry['sha']}"}})

        return httpx.Response(405, json={"message": "Method not allowed"})

    def _actions(self, request: httpx.Request, rest: str) -> httpx.Response:
        parts = rest.split("/")
        if parts == ["runs"]:
            per_page = int(request.url.params.get("per_page", "30"))
            ordered = sorted(self.runs.values(), key=lambda r: r["created_at"], reverse=True)
            return httpx.Response(
                200,
                json={"total_count": len(ordered), "workflow_runs": ordered[:per_page]},
            )
        if parts[0] == "runs" and len(parts) == 2:
            run_id = int(parts[1])
            script = self.status_script.get(run_id)
            if script:
                current = script.pop(0) if len(script) > 1 else script[0]
                self.runs[run_id] = current
                return httpx.Response(200, json=current)
            if run_id not in self.runs:
                return _not_found()
            return httpx.Response(200, json=self.runs[run_id])
        if parts[0] == "runs" and parts[2:] == ["artifacts"]:
            ids = self.run_artifacts.get(int(parts[1]), [])
            items = [self.artifacts[i] for i in ids]
            return httpx.Response(200, json={"total_count": len(items), "artifacts": items})
        if parts[0] == "artifacts" and len(parts) == 2:
            artifact = self.artifacts.get(int(parts[1]))
            return httpx.Response(200, json=artifact) if artifact else _not_found()
        if parts[0] == "artifacts" and parts[2:] == ["zip"]:
            artifact_id = int(parts[1])
            if artifact_id in self.redirects:
                return httpx.Response(302, headers={"Location": self.redirects[artifact_id]})
            if artifact_id in self.payloads:
                return httpx.Response(200, content=self.payloads[artifact_id])
            return _not_found()
        return _not_found()

    def _next_sha(self, content: bytes) -> str:
        self._revision += 1
        return hashlib.sha1(content + str(self._revision).encode()).hexdigest()


def _not_found() -> httpx.Response:
    return httpx.Response(404, json={"message": "Not Found"})


class RecordingSleep:
    """Async ``sleep`` replacement that records delays and only yields."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_github() -> FakeGitHub:
    """Provide a fresh in-memory hosting API."""
    return FakeGitHub()


@pytest.fixture
def sleep() -> RecordingSleep:
    """Provide a sleep that never waits."""
    return RecordingSleep()


@pytest.fixture
def repository() -> RepositoryRef:
    return RepositoryRef(owner=OWNER, repo=REPO)


@pytest.fixture
def make_client(
    fake_github: FakeGitHub, sleep: RecordingSleep
) -> Callable[..., ResilientClient]:
    """Factory fixture: a ResilientClient wired to the fake API."""

    def _factory(**overrides: Any) -> ResilientClient:
        options: dict[str, Any] = {
            "transport": httpx.MockTransport(fake_github),
            "sleep": sleep,
            "clock": lambda: CLOCK_NOW,
        }
        options.update(overrides)
        return ResilientClient(API_BASE, TOKEN, **options)

    return _factory


@pytest.fixture
async def client(make_client: Callable[..., ResilientClient]) -> AsyncIterator[ResilientClient]:
    """Provide a ResilientClient wired to the fake API; closed after the test."""
    async with make_client() as resilient:
        yield resilient


@pytest.fixture
def gateway(client: ResilientClient, repository: RepositoryRef) -> ContentGateway:
    return ContentGateway(client, repository)


@pytest.fixture
def tracker(client: ResilientClient, repository: RepositoryRef) -> RunTracker:
    return RunTracker(client, repository)


@pytest.fixture
def make_orchestrator(
    gateway: ContentGateway, tracker: RunTracker, sleep: RecordingSleep
) -> Callable[..., JobOrchestrator]:
    """Factory fixture: a JobOrchestrator over the fake API that never really waits."""

    def _factory(**overrides: Any) -> JobOrchestrator:
        options: dict[str, Any] = {
            "settle_delay": 5.0,
            "poll_interval": 5.0,
            "max_poll_attempts": 60,
            "sleep": sleep,
        }
        options.update(overrides)
        return JobOrchestrator(gateway, tracker, **options)

    return _factory


@pytest.fixture
def source() -> RemoteFile:
    """The file most tests submit: ``script.py`` containing ``print(1)``."""
    return RemoteFile.from_local("script.py", b"print(1)")
