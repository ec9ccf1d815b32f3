"""Runtime configuration — env-driven via pydantic-settings.

Reads ``ACTIONFORGE_*`` environment variables or a ``.env`` file.  The
credential and repository identity are supplied out-of-band; nothing in
this package acquires or rotates tokens.
"""

from __future__ import annotations

import logging

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from actionforge.core.errors import ConfigurationError
from actionforge.models.remote import RepositoryRef

logger = logging.getLogger(__name__)


class ForgeSettings(BaseSettings):
    """Settings for talking to the hosting API and pacing a submission.

    Examples
    --------
    Via environment::

        export ACTIONFORGE_TOKEN=ghp_xxx
        export ACTIONFORGE_OWNER=octocat
        export ACTIONFORGE_REPO=py-to-exe
        export ACTIONFORGE_POLL_INTERVAL=10

    Or via .env file::

        ACTIONFORGE_TOKEN=ghp_xxx
        ACTIONFORGE_CLEANUP_SOURCE=false
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="ACTIONFORGE_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Identity
    token: SecretStr = SecretStr("")
    owner: str = ""
    repo: str = ""

    # Transport
    api_base_url: str = "https://api.github.com"
    user_agent: str = "actionforge"
    request_timeout: float = Field(default=30.0, gt=0)
    max_attempts: int = Field(default=3, ge=1)
    initial_backoff: float = Field(default=1.0, ge=0)
    max_retry_delay: float = Field(default=60.0, ge=0)

    # Repository layout
    upload_dir: str = "python-files"

    # Run discovery and polling
    runs_per_page: int = Field(default=5, ge=1, le=100)
    settle_delay: float = Field(default=5.0, ge=0)
    poll_interval: float = Field(default=5.0, ge=0)
    max_poll_attempts: int = Field(default=60, ge=1)
    cleanup_source: bool = True

    # Observability
    log_level: str = "INFO"

    @property
    def repository(self) -> RepositoryRef:
        return RepositoryRef(owner=self.owner, repo=self.repo)

    def require_credentials(self) -> None:
        """Fail fast if the token or repository identity is missing.

        Every missing value is reported at once.

        Raises
        ------
        ConfigurationError
            If any of token, owner or repo is empty.
        """
        missing: list[str] = []
        if not self.token.get_secret_value():
            missing.append("token (ACTIONFORGE_TOKEN)")
        if not self.owner:
            missing.append("owner (ACTIONFORGE_OWNER)")
        if not self.repo:
            missing.append("repo (ACTIONFORGE_REPO)")

        if missing:
            msg = "Missing required configuration:\n" + "\n".join(
                f"  - {item}" for item in missing
            )
            logger.critical(msg)
            raise ConfigurationError(msg)
