"""actionforge: build source files with a repository's hosted CI.

Uploads a file into a hosted repository, follows the workflow run the
commit triggers, and fetches the artifacts it produces:
  - Rate-limit aware HTTP client with bounded retries (httpx)
  - Revision-checked create / update / delete of repository files
  - Run discovery, status polling and two-step artifact download
  - Observable job state machine with cancellation and bounded polling
  - Env-driven configuration (pydantic-settings) and a Typer/Rich CLI
"""

__version__ = "0.1.0"
__description__ = "Upload a source file, follow its hosted CI build and fetch the artifacts"

from actionforge.config import ForgeSettings
from actionforge.core.orchestrator import JobOrchestrator
from actionforge.service import ForgeService
from actionforge.cli.app import app as cli

__all__ = ["ForgeService", "ForgeSettings", "JobOrchestrator", "cli", "__version__"]
