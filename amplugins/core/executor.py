"""
Step execution logic.
Uses the Sandwich pattern (prepare -> run -> finalize) so that a step failure
always ends with a recorded status and, when something was produced, a copy of
the partial output in the failed-results archive.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING
import logging
import shutil

from amplugins.core.jobparams import JobContext, JobParams
from amplugins.core.steps import step_registry, StepStatus
from amplugins.core.utils import slugify

if TYPE_CHECKING:
    from amplugins.core.runtime import Runtime
    from amplugins.core.steps import StepDefinition


@dataclass
class StepResult:
    """Outcome of one step run, as reported back to the manager."""
    step_key: str
    status: StepStatus = StepStatus.PENDING
    error: str | None = None
    outputs: list[Path] = field(default_factory=list)
    progress: float = 0.0
    tool_version: str = ""
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def duration(self) -> float | None:
        """Calculate duration from started_at and completed_at timestamps."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None


@dataclass
class StepContext:
    """
    Everything a step handler needs: the runtime (settings, logger), the job it
    is working on, the job parameters and a results basket to fill in.
    """
    runtime: "Runtime"
    job: JobContext
    params: JobParams
    step_def: "StepDefinition"
    result: StepResult

    @property
    def logger(self) -> logging.Logger:
        """Access the runtime logger."""
        return self.runtime.logger

    @property
    def work_dir(self) -> Path:
        """The job's working directory."""
        return self.job.work_dir

    def work_path(self, filename: str) -> Path:
        """Path of a file inside the working directory."""
        return self.job.work_dir / filename

    def set_progress(self, percent: float, message: str = "") -> None:
        """Record overall step progress (0-100)."""
        self.result.progress = max(0.0, min(100.0, percent))
        if message:
            self.logger.info("%s (%.1f%%)", message, self.result.progress)
        else:
            self.logger.debug("Progress: %.2f%%", self.result.progress)

    def add_output(self, path: Path) -> None:
        """Register a result file for transfer by the manager."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Output file not found: {path}")
        if path not in self.result.outputs:
            self.result.outputs.append(path)
            self.logger.info("Step %s emitted output: %s", self.step_def.key, path.name)


def archive_failed_results(rt: "Runtime", job: JobContext, logger: logging.Logger) -> Path | None:
    """
    Copy whatever is in the working directory to the failed-results archive.
    Never raises: copy problems are logged and swallowed.
    """
    work_dir = job.work_dir
    try:
        if not work_dir.exists() or not any(work_dir.iterdir()):
            logger.info("No partial results to archive for job %s", job.job)
            return None
        target = rt.failed_results_dir / slugify(f"{job.dataset_name}_Job{job.job}_Step{job.step}")
        target.mkdir(parents=True, exist_ok=True)
        for item in work_dir.iterdir():
            try:
                if item.is_dir():
                    shutil.copytree(item, target / item.name, dirs_exist_ok=True)
                else:
                    shutil.copy2(item, target / item.name)
            except OSError as e:
                logger.warning("Unable to archive %s: %s", item.name, e)
        logger.warning("Copied partial results for job %s to %s", job.job, target)
        return target
    except Exception as e:  # pylint: disable=broad-except
        # Archiving is best effort
        logger.error("Error copying failed results to the archive: %s", e)
        return None


def execute_step(rt: "Runtime", step_key: str, job: JobContext, params: JobParams) -> StepResult:
    """
    Execute a registered step for one job.
    Returns the StepResult; the manager decides how to report it.
    """
    logger = rt.logger
    logger.info("Preparing step '%s' for job %s (dataset %s)", step_key, job.job, job.dataset_name)

    # 1. Prepare step
    result = StepResult(step_key=step_key)
    step_def = step_registry.get(step_key)
    if not step_def:
        raise ValueError(f"Step key: '{step_key}' not found in Step Registry.")
    job.work_dir.mkdir(parents=True, exist_ok=True)
    result.status = StepStatus.RUNNING
    result.started_at = datetime.now(tz=timezone.utc)

    # 2. Execute step
    ctx = StepContext(runtime=rt, job=job, params=params, step_def=step_def, result=result)
    try:
        step_def.handler(ctx)
        result.status = StepStatus.COMPLETED
        logger.info("Success! Step '%s' for job %s", step_key, job.job)

    except Exception as e:  # pylint: disable=broad-except
        result.status = StepStatus.FAILED
        result.error = str(e) or e.__class__.__name__
        logger.error("Failed! Step '%s' for job %s. Reason: %s",
                     step_key, job.job, result.error, exc_info=True)

    finally:
        # 3. Finalize step
        result.completed_at = datetime.now(tz=timezone.utc)
        if result.status == StepStatus.FAILED:
            archive_failed_results(rt, job, logger)

    return result
