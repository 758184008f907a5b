"""
Runtime context and configuration for the step plugins.
"""
from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
import logging
from typing import TYPE_CHECKING

# triggers decorators, registering Steps into the global registry
import amplugins.steps  # pylint: disable=unused-import

from amplugins.core.settings import load_settings, Settings
from amplugins.core import paths

if TYPE_CHECKING:
    from amplugins.core.executor import StepResult
    from amplugins.core.jobparams import JobContext, JobParams


@dataclass
class Runtime:
    """Configuration for the manager's runtime environment."""
    settings_dir: Path
    work_root: Path
    failed_results_dir: Path
    settings: Settings
    logger: logging.Logger

    def ensure_dirs(self) -> None:
        """Ensure all directories needed by the program exist."""
        self.work_root.mkdir(parents=True, exist_ok=True)
        self.failed_results_dir.mkdir(parents=True, exist_ok=True)

    def job_dir(self, job: int) -> Path:
        """Default working directory for a job."""
        return self.work_root / f"Job{job}"

    # --- Executor management ---

    def execute_step(self, step_key: str, job: "JobContext", params: "JobParams") -> "StepResult":
        """Passthrough to the Executor to run a step for a job."""
        from amplugins.core.executor import execute_step  # pylint: disable=import-outside-toplevel
        return execute_step(self, step_key, job, params)

# --- Runtime management ---

def build_runtime(
    *,
    work_root: Path | None = None,
    settings_dir: Path | None = None,
    settings: Settings | None = None,
    verbose: bool = False,
) -> Runtime:
    """Builds and returns a Runtime object."""
    # 1. Logging
    logger = logging.getLogger("amplugins")
    if not logging.getLogger().hasHandlers():
        logging.basicConfig(
            level=logging.DEBUG if verbose else logging.INFO,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    # 2. Set directories
    settings_dir = settings_dir or paths.default_settings_dir()
    if settings is None:
        settings = load_settings(settings_dir)
    if work_root is not None:
        work_root = work_root.expanduser().resolve()
    elif env := os.getenv("AMPLUGINS_WORK_ROOT"):
        work_root = Path(env).expanduser().resolve()
    elif settings.work_root is not None:
        work_root = settings.work_root.expanduser().resolve()
    else:
        work_root = paths.default_work_root()
    if settings.failed_results_dir is not None:
        failed_results_dir = settings.failed_results_dir.expanduser().resolve()
    else:
        failed_results_dir = paths.default_failed_results_dir()
    # 3. Create context
    rt = Runtime(
        settings_dir=settings_dir,
        work_root=work_root,
        failed_results_dir=failed_results_dir,
        settings=settings,
        logger=logger,
    )
    rt.ensure_dirs()
    return rt
