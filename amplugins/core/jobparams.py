"""
Job context and job parameters handed to a step by the manager.

The manager stores job parameters as an untyped name/value map. Steps read them
through JobParams.get_param, which coerces the stored text to the type of the
supplied default. Typed option models (e.g. MSGFOptions) are built on top of it.
"""
from dataclasses import dataclass, field
from pathlib import Path
import logging
from typing import Any

import yaml

from amplugins.core.utils import try_int

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"true", "1", "yes", "y", "on"}


@dataclass(frozen=True)
class JobContext:
    """Identifies the job step being run. Never mutated by a step."""
    dataset_name: str
    work_dir: Path
    job: int = 0
    step: int = 1
    dataset_id: int = 0
    debug_level: int = 1


@dataclass
class JobParams:
    """Case-insensitive view over the manager's job parameter map."""
    values: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self._lookup = {str(k).lower(): v for k, v in self.values.items()}

    def __contains__(self, name: str) -> bool:
        return name.lower() in self._lookup

    def get_param(self, name: str, default: Any = "") -> Any:
        """
        Look up a parameter by name, coercing it to the type of `default`.
        Missing or empty values return the default.
        """
        value = self._lookup.get(name.lower())
        if value is None or (isinstance(value, str) and not value.strip()):
            return default
        if isinstance(default, bool):
            if isinstance(value, bool):
                return value
            return str(value).strip().lower() in _TRUE_VALUES
        if isinstance(default, int):
            return try_int(value, default)
        if isinstance(default, float):
            try:
                return float(value)
            except (TypeError, ValueError):
                logger.warning("Job parameter %s is not numeric: %s", name, value)
                return default
        return str(value)

    def set_param(self, name: str, value: Any) -> None:
        """Add or overwrite a parameter (used by tests and the CLI)."""
        self.values[name] = value
        self._lookup[name.lower()] = value


def load_job_file(path: Path, work_dir: Path | None = None) -> tuple[JobContext, JobParams]:
    """
    Load a job description from YAML.

    Expected layout:
        dataset: QC_Shew_16_01
        job: 1234
        dataset_id: 567
        params:
          ResultType: XT_Peptide_Hit
          ParamFileName: xtandem.xml
    """
    logger.info("Loading job file from %s...", path)
    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f) or {}
    if "dataset" not in data:
        raise ValueError(f"Job file {path} must define 'dataset'")

    if work_dir is None:
        work_dir = Path(data.get("work_dir") or Path(path).parent)
    ctx = JobContext(
        dataset_name=str(data["dataset"]),
        work_dir=Path(work_dir).expanduser().resolve(),
        job=try_int(data.get("job")),
        step=try_int(data.get("step"), 1),
        dataset_id=try_int(data.get("dataset_id")),
        debug_level=try_int(data.get("debug_level"), 1),
    )
    return ctx, JobParams(dict(data.get("params") or {}))
