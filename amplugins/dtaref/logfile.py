"""
Readers for the `<dataset>_dta_DtaRefineryLog.txt` file written by DTA_Refinery.

DTA_Refinery first runs X!Tandem to identify spectra, then fits the parent ion
mass error and rewrites the _dta.txt file. The log records both phases, the
robust estimate of the mass error before and after refinement, and a stop
message when too few spectra were identified.
"""
from dataclasses import dataclass
from pathlib import Path
import logging
import re

from amplugins.core.database import StoredProcedureRunner, build_measurements_xml
from amplugins.core.errors import ProcessFailed, ReportingFailure

LOG_FILE_SUFFIX = "_dta_DtaRefineryLog.txt"
XTANDEM_FINISHED_MARKER = "finished x!tandem"
TOO_FEW_SPECTRA = "number of spectra identified less than 2"
STOP_PROCESSING = "stop processing"
ORIGINAL_SECTION = "ORIGINAL parent ion mass error distribution"
REFINED_SECTION = "REFINED parent ion mass error distribution"
ROBUST_ESTIMATE = "Robust estimate"

STORE_MASS_ERROR_STATS_PROCEDURE = "store_dta_ref_mass_error_stats"
MASS_ERROR_XML_ROOT = "DTARef_MassErrorStats"

_MASS_ERROR = re.compile(r"Robust estimate[ \t]+([^\t ]+)")

logger = logging.getLogger(__name__)


def log_file_path(work_dir: Path, dataset: str) -> Path:
    return Path(work_dir) / f"{dataset}{LOG_FILE_SUFFIX}"


def is_xtandem_finished(log_path: Path) -> bool:
    """True once the log says X!Tandem is done and refinement has started."""
    log_path = Path(log_path)
    if not log_path.exists():
        return False
    with open(log_path, "r", encoding="utf-8", errors="replace") as f:
        return any(XTANDEM_FINISHED_MARKER in line.lower() for line in f)


def validate_log_file(log_path: Path, log: logging.Logger | None = None) -> None:
    """
    Raise ProcessFailed if the log is missing or says that X!Tandem identified too
    few spectra to refine.
    """
    log = log or logger
    log_path = Path(log_path)
    if not log_path.exists():
        raise ProcessFailed(f"DtaRefinery log file not found ({log_path.name})")

    with open(log_path, "r", encoding="utf-8", errors="replace") as f:
        lines = [line.rstrip("\r\n") for line in f]

    for i, line in enumerate(lines):
        if not line.lower().startswith(TOO_FEW_SPECTRA):
            continue
        if i + 1 < len(lines) and lines[i + 1].lower().startswith(STOP_PROCESSING):
            raise ProcessFailed(
                "X!Tandem identified fewer than 2 peptides; unable to use DTARefinery with this dataset"
            )
        log.warning("Encountered message '%s' but did not find '%s' on the next line; "
                    "DTARefinery likely did not complete properly", TOO_FEW_SPECTRA, STOP_PROCESSING)


@dataclass
class MassErrorInfo:
    """Parent ion mass error (ppm) before and after refinement."""
    dataset: str
    psm_job: int
    mass_error_ppm: float | None = None
    mass_error_ppm_refined: float | None = None

    def to_xml(self) -> str:
        return build_measurements_xml(MASS_ERROR_XML_ROOT, self.dataset, self.psm_job, {
            "MassErrorPPM": self.mass_error_ppm,
            "MassErrorPPM_Refined": self.mass_error_ppm_refined,
        })


def parse_mass_errors(log_path: Path, dataset: str, psm_job: int) -> MassErrorInfo:
    """
    Pull the robust mass error estimates out of the log.
    Raises ValueError when a 'Robust estimate' line cannot be parsed.
    """
    info = MassErrorInfo(dataset=dataset, psm_job=psm_job)
    section = None
    with open(log_path, "r", encoding="utf-8", errors="replace") as f:
        for line in f:
            text = line.strip()
            if not text:
                continue
            lowered = text.lower()
            if ORIGINAL_SECTION.lower() in lowered:
                section = "original"
            if REFINED_SECTION.lower() in lowered:
                section = "refined"
            if not lowered.startswith(ROBUST_ESTIMATE.lower()):
                continue

            match = _MASS_ERROR.match(text)
            if match is None:
                raise ValueError(f"Unable to extract the mass error from line: {text}")
            try:
                value = float(match.group(1))
            except ValueError as e:
                raise ValueError(f"Robust estimate is not a number: {match.group(1)}") from e
            if section == "original":
                info.mass_error_ppm = value
            elif section == "refined":
                info.mass_error_ppm_refined = value
    return info


class MassErrorExtractor:
    """Parses the log of one job and stores the mass error statistics."""

    def __init__(self, runner: StoredProcedureRunner | None = None, log: logging.Logger | None = None):
        self.runner = runner
        self.logger = log or logger

    def extract(self, work_dir: Path, dataset: str, dataset_id: int, psm_job: int) -> MassErrorInfo | None:
        """
        Returns the parsed values, or None when the log holds no original mass error.
        Posting problems raise ReportingFailure.
        """
        path = log_file_path(work_dir, dataset)
        if not path.exists():
            raise ProcessFailed(f"DtaRefinery log file not found: {path.name}")
        info = parse_mass_errors(path, dataset, psm_job)
        if info.mass_error_ppm is None:
            self.logger.warning("No parent ion mass error found in %s", path.name)
            return None

        self.logger.info("Mass error for %s: %s ppm (refined: %s ppm)",
                         dataset, info.mass_error_ppm, info.mass_error_ppm_refined)
        if self.runner is not None:
            return_code = self.runner.call(STORE_MASS_ERROR_STATS_PROCEDURE,
                                           {"datasetID": dataset_id, "resultsXML": info.to_xml()})
            if return_code != 0:
                raise ReportingFailure(f"{STORE_MASS_ERROR_STATS_PROCEDURE} returned {return_code}")
        return info
