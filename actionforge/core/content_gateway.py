"""Repository content gateway — read, write and delete a single file.

Writes follow an existence-check-then-write protocol: the current revision
is re-resolved on every call and sent only when the file exists, so a
concurrent external edit is rejected by the provider's conflict check
instead of being overwritten with a stale revision.

The existence probe inside ``write`` is best-effort by policy: if the probe
itself fails, the failure is logged and the file is treated as absent, so
a create is attempted.  If the file does in fact exist, the provider answers
with a conflict, surfaced as ``RevisionConflictError``.
"""

from __future__ import annotations

import base64
import binascii
import logging
from urllib.parse import quote

import httpx

from actionforge.core.errors import (
    ApiError,
    AuthenticationError,
    AuthorizationError,
    ForgeError,
    NotFoundError,
    RepositoryNotFoundError,
    ResponseParseError,
    RevisionConflictError,
)
from actionforge.core.http_client import ResilientClient, parse_json
from actionforge.models.remote import (
    CommitResult,
    RemoteFile,
    RepositoryRef,
    remote_path_for,
)

logger = logging.getLogger(__name__)

UPLOAD_MESSAGE = "Upload {name} via actionforge"
DELETE_MESSAGE = "Remove {name} after build"

_CONFLICT_STATUSES = frozenset({409, 422})


class ContentGateway:
    """File-level access to one repository's contents API.

    Parameters
    ----------
    client:
        The shared resilient HTTP client.
    repository:
        Target repository.
    upload_dir:
        Remote directory that holds uploaded source files.
    """

    def __init__(
        self,
        client: ResilientClient,
        repository: RepositoryRef,
        *,
        upload_dir: str = "python-files",
    ) -> None:
        self._client = client
        self._repository = repository
        self._upload_dir = upload_dir

    @property
    def repository(self) -> RepositoryRef:
        return self._repository

    def remote_path(self, name: str) -> str:
        return remote_path_for(name, self._upload_dir)

    def local_file(self, name: str, content: bytes | str) -> RemoteFile:
        """Wrap a locally selected file for upload into this repository."""
        return RemoteFile.from_local(name, content, upload_dir=self._upload_dir)

    def _contents_url(self, path: str) -> str:
        return f"{self._repository.api_path}/contents/{quote(path.strip('/'), safe='/')}"

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def exists(self, path: str) -> str | None:
        """Return the current revision of *path*, or ``None`` if it is absent."""
        data = await self._fetch(path)
        if data is None:
            return None
        return data["sha"]

    async def read(self, path: str) -> RemoteFile | None:
        """Fetch and decode the file at *path*, or ``None`` if it is absent."""
        data = await self._fetch(path)
        if data is None:
            return None
        try:
            content = base64.b64decode(data.get("content") or "")
        except (binascii.Error, ValueError) as exc:
            raise ResponseParseError(
                f"Content of {path} is not valid base64",
                snippet=str(data.get("content", ""))[:200],
            ) from exc
        return RemoteFile(
            name=data.get("name") or path.rsplit("/", 1)[-1],
            content=content,
            remote_path=path,
            revision=data["sha"],
        )

    async def _fetch(self, path: str) -> dict | None:
        response = await self._client.request(
            "GET", self._contents_url(path), allow_not_found=True
        )
        if response.status_code == 404:
            logger.debug("%s does not exist in %s", path, self._repository.full_name)
            return None
        data = parse_json(response)
        if not isinstance(data, dict) or "sha" not in data:
            raise ResponseParseError(
                f"Expected a file entry at {path}, got {type(data).__name__}",
                snippet=response.text[:200],
                status_code=response.status_code,
            )
        return data

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def write(
        self,
        path: str,
        content: bytes | str,
        known_revision: str | None = None,
        *,
        message: str | None = None,
    ) -> CommitResult:
        """Create or update *path* with *content*.

        The current revision is probed first and sent only if the file
        exists.  *known_revision* is used only when the probe itself fails.

        Raises
        ------
        AuthenticationError, AuthorizationError, RepositoryNotFoundError
            With user-facing guidance for 401 / 403 / 404.
        RevisionConflictError
            When the provider rejects the revision (409 / 422).
        ApiError
            Any other provider failure, with the provider's message.
        """
        if isinstance(content, str):
            content = content.encode("utf-8")
        name = path.rsplit("/", 1)[-1]

        try:
            revision = await self.exists(path)
        except ForgeError as exc:
            logger.warning(
                "Existence check for %s failed (%s); treating as absent", path, exc
            )
            revision = known_revision

        if revision:
            logger.info("%s exists (revision %s), updating", path, revision)
        else:
            logger.info("%s not found, creating", path)

        body: dict[str, str] = {
            "message": message or UPLOAD_MESSAGE.format(name=name),
            "content": base64.b64encode(content).decode("ascii"),
        }
        if revision:
            body["sha"] = revision

        try:
            response = await self._client.request(
                "PUT", self._contents_url(path), json=body
            )
        except ApiError as exc:
            classified = self._classify_write_error(exc, path)
            if classified is None:
                raise
            raise classified from exc

        data = _commit_body(response, "write")
        return CommitResult(
            path=path,
            revision=_nested_sha(data, "content"),
            commit_sha=_nested_sha(data, "commit"),
        )

    async def delete(self, path: str, *, message: str | None = None) -> CommitResult:
        """Delete *path*.  Deleting an absent file is an error, not a no-op.

        Raises
        ------
        NotFoundError
            If the file does not exist.
        """
        revision = await self.exists(path)
        if revision is None:
            raise NotFoundError(
                f"Cannot delete {path}: file does not exist in {self._repository.full_name}",
                status_code=404,
            )

        name = path.rsplit("/", 1)[-1]
        body = {"message": message or DELETE_MESSAGE.format(name=name), "sha": revision}
        try:
            response = await self._client.request(
                "DELETE", self._contents_url(path), json=body
            )
        except NotFoundError:
            # Removed between the probe and the delete.
            raise
        except ApiError as exc:
            classified = self._classify_write_error(exc, path)
            if classified is None:
                raise
            raise classified from exc

        data = _commit_body(response, "delete")
        logger.info("Deleted %s from %s", path, self._repository.full_name)
        return CommitResult(
            path=path,
            revision=None,
            commit_sha=_nested_sha(data, "commit"),
        )

    # ------------------------------------------------------------------
    # Internal: error translation
    # ------------------------------------------------------------------

    def _classify_write_error(self, exc: ApiError, path: str) -> ApiError | None:
        """User-facing replacement for *exc*, or None to surface it unchanged."""
        repo = self._repository.full_name
        status = exc.status_code
        if isinstance(exc, AuthenticationError):
            return AuthenticationError(
                "Authentication failed (401). Check that the access token is valid "
                "and has not expired.",
                status_code=status,
            )
        if isinstance(exc, AuthorizationError):
            return AuthorizationError(
                f"Access forbidden (403). The token cannot write to {repo}; it needs "
                "the 'repo' scope or 'contents: write' permission.",
                status_code=status,
            )
        if isinstance(exc, NotFoundError):
            return RepositoryNotFoundError(
                f"Repository {repo} not found (404). Check the owner and repository "
                "names, and that the token can see the repository.",
                status_code=status,
            )
        if status in _CONFLICT_STATUSES:
            return RevisionConflictError(
                f"Revision conflict on {path} ({status}): {exc.message}",
                status_code=status,
            )
        return None


def _commit_body(response: httpx.Response, action: str) -> dict:
    data = parse_json(response)
    if not isinstance(data, dict):
        raise ResponseParseError(
            f"Expected a commit object from {action}, got {type(data).__name__}",
            snippet=response.text[:200],
            status_code=response.status_code,
        )
    return data


def _nested_sha(data: dict, key: str) -> str | None:
    section = data.get(key)
    return section.get("sha") if isinstance(section, dict) else None
