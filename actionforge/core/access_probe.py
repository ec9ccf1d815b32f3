"""Access probe — checks that the credential can reach the target repository.

Runs three checks in order and stops at the first failure:

1. Authentication: ``GET /user``
2. Repository access: ``GET /repos/{owner}/{repo}``
3. Contents access: ``GET /repos/{owner}/{repo}/contents``

Failures are reported in the ``AccessReport``, never raised.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from pydantic import BaseModel, ConfigDict

from actionforge.core.errors import ForgeError, ResponseParseError
from actionforge.core.http_client import ResilientClient
from actionforge.models.remote import RepositoryRef

logger = logging.getLogger(__name__)


class AccessCheck(BaseModel):
    """Result of one probe step.  ``ok`` is None when the step was skipped."""

    model_config = ConfigDict(frozen=True)

    name: str
    ok: bool | None
    detail: str


class AccessReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    repository: str
    checks: list[AccessCheck]

    @property
    def ok(self) -> bool:
        return all(check.ok for check in self.checks)

    @property
    def first_failure(self) -> AccessCheck | None:
        return next((c for c in self.checks if c.ok is False), None)


class AccessProbe:
    """Probes authentication, repository and contents access in sequence."""

    def __init__(self, client: ResilientClient, repository: RepositoryRef) -> None:
        self._client = client
        self._repository = repository

    async def run(self) -> AccessReport:
        steps: list[tuple[str, Callable[[], Awaitable[str]]]] = [
            ("Authentication", self._check_user),
            ("Repository", self._check_repository),
            ("Contents", self._check_contents),
        ]
        checks: list[AccessCheck] = []
        failed = False
        for name, step in steps:
            if failed:
                checks.append(AccessCheck(name=name, ok=None, detail="skipped"))
                continue
            try:
                detail = await step()
            except ForgeError as exc:
                logger.warning("Access check '%s' failed: %s", name, exc.message)
                checks.append(AccessCheck(name=name, ok=False, detail=exc.message))
                failed = True
            else:
                checks.append(AccessCheck(name=name, ok=True, detail=detail))

        return AccessReport(repository=self._repository.full_name, checks=checks)

    async def _get_object(self, url: str) -> dict:
        data = await self._client.get_json(url)
        if not isinstance(data, dict):
            raise ResponseParseError(f"Expected a JSON object from {url}", snippet=repr(data)[:200])
        return data

    async def _check_user(self) -> str:
        data = await self._get_object("/user")
        return f"authenticated as {data.get('login', '?')} ({data.get('type', 'User')})"

    async def _check_repository(self) -> str:
        data = await self._get_object(self._repository.api_path)
        visibility = "private" if data.get("private") else "public"
        permissions = data.get("permissions") or {}
        push = "push allowed" if permissions.get("push") else "no push permission"
        return f"{data.get('full_name', self._repository.full_name)} ({visibility}, {push})"

    async def _check_contents(self) -> str:
        data = await self._client.get_json(f"{self._repository.api_path}/contents")
        count = len(data) if isinstance(data, list) else 1
        return f"{count} top-level entries readable"
