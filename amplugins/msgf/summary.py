"""
PSM statistics for a scored job, stored in the database and optionally on disk.

Counts are taken at a fixed spectral probability threshold and, when decoy
proteins are present, at a decoy-based FDR threshold.
"""
from dataclasses import asdict, dataclass
from pathlib import Path
import logging
import re

import pandas as pd

from amplugins.core.database import StoredProcedureRunner, build_measurements_xml
from amplugins.core.errors import ReportingFailure
from amplugins.core.jobparams import JobContext

DEFAULT_SPEC_PROB_THRESHOLD = 1e-10
DEFAULT_FDR_THRESHOLD = 0.01
STORE_PSM_STATS_PROCEDURE = "store_job_psm_stats"
PSM_STATS_XML_ROOT = "MSGF_PSMStats"
STATS_FILE_SUFFIX = "_PSM_Stats.txt"
DECOY_PREFIXES = ("reversed_", "rev_", "xxx_")

_PREFIX_SUFFIX = re.compile(r"^[A-Z\-]?\.(.+)\.[A-Z\-]?$", re.IGNORECASE)
_NON_RESIDUE = re.compile(r"[^A-Z]")


def clean_sequence(peptide: str) -> str:
    """Residues only: K.PEP*TIDE.R -> PEPTIDE."""
    match = _PREFIX_SUFFIX.match(peptide.strip())
    core = match.group(1) if match else peptide
    return _NON_RESIDUE.sub("", core.upper())


def is_decoy(protein: str) -> bool:
    return protein.strip().lower().startswith(DECOY_PREFIXES)


@dataclass
class PSMStats:
    """PSM counts for one job."""
    spec_prob_threshold: float = DEFAULT_SPEC_PROB_THRESHOLD
    fdr_threshold: float = DEFAULT_FDR_THRESHOLD
    spectra_searched: int = 0
    total_psms: int = 0
    unique_peptides: int = 0
    unique_proteins: int = 0
    total_psms_fdr: int = 0
    unique_peptides_fdr: int = 0
    unique_proteins_fdr: int = 0

    def measurements(self) -> dict[str, float | int]:
        """Named values for the database payload."""
        return {
            "MSGF_Threshold": self.spec_prob_threshold,
            "FDR_Threshold": self.fdr_threshold,
            "Spectra_Searched": self.spectra_searched,
            "Total_PSMs_MSGF_Filtered": self.total_psms,
            "Unique_Peptides_MSGF_Filtered": self.unique_peptides,
            "Unique_Proteins_MSGF_Filtered": self.unique_proteins,
            "Total_PSMs_FDR_Filtered": self.total_psms_fdr,
            "Unique_Peptides_FDR_Filtered": self.unique_peptides_fdr,
            "Unique_Proteins_FDR_Filtered": self.unique_proteins_fdr,
        }


def load_results(path: Path) -> pd.DataFrame:
    """Read a normalized MSGF results file; SpecProb becomes numeric (NaN when not)."""
    df = pd.read_csv(path, sep="\t", dtype=str, na_filter=False)
    df["SpecProb"] = pd.to_numeric(df["SpecProb"], errors="coerce")
    df["CleanSequence"] = df["Peptide"].map(clean_sequence)
    return df


def _count(df: pd.DataFrame) -> tuple[int, int, int]:
    psms = len(df[["Scan", "Charge"]].drop_duplicates())
    return psms, df["CleanSequence"].nunique(), df["Protein"].nunique()


def compute_fdr(df: pd.DataFrame) -> pd.Series:
    """
    Decoy-based FDR (#decoy / #forward) walking the best PSM per spectrum in order
    of increasing SpecProb. Returns NaN for every row when there are no decoys.
    """
    ordered = df.sort_values("SpecProb", kind="mergesort")
    decoy = ordered["Protein"].map(is_decoy)
    if not decoy.any():
        return pd.Series(float("nan"), index=df.index)
    decoys = decoy.cumsum()
    forwards = (~decoy).cumsum()
    fdr = (decoys / forwards.where(forwards > 0)).fillna(1.0)
    return fdr.reindex(df.index)


def compute_stats(
    synopsis_results: Path,
    first_hits_results: Path | None = None,
    spec_prob_threshold: float = DEFAULT_SPEC_PROB_THRESHOLD,
    fdr_threshold: float = DEFAULT_FDR_THRESHOLD,
    logger: logging.Logger | None = None,
) -> PSMStats:
    """Count PSMs, peptides and proteins passing the thresholds."""
    log = logger or logging.getLogger(__name__)
    stats = PSMStats(spec_prob_threshold=spec_prob_threshold, fdr_threshold=fdr_threshold)
    df = load_results(synopsis_results)

    # 1. Spectra searched
    searched = df
    if first_hits_results is not None and Path(first_hits_results).exists():
        searched = load_results(first_hits_results)
    stats.spectra_searched = len(searched[["Scan", "Charge"]].drop_duplicates())

    # 2. Score threshold
    passing = df[df["SpecProb"] <= spec_prob_threshold]
    stats.total_psms, stats.unique_peptides, stats.unique_proteins = _count(passing)

    # 3. FDR threshold, using the best PSM of each spectrum
    best = df.dropna(subset=["SpecProb"]).sort_values("SpecProb", kind="mergesort")
    best = best.drop_duplicates(subset=["Scan", "Charge"], keep="first")
    fdr = compute_fdr(best)
    if fdr.isna().all():
        log.warning("Data does not contain decoy proteins; cannot compute a decoy-based FDR")
    else:
        stats.total_psms_fdr, stats.unique_peptides_fdr, stats.unique_proteins_fdr = \
            _count(best[fdr <= fdr_threshold])
    return stats


def write_stats_file(path: Path, job: JobContext, stats: PSMStats) -> Path:
    """One header line and one data line, tab-delimited."""
    values = {"Dataset": job.dataset_name, "Job": job.job}
    values.update(stats.measurements())
    with open(path, "w", encoding="utf-8", newline="\n") as f:
        f.write("\t".join(values) + "\n")
        f.write("\t".join(str(v) for v in values.values()) + "\n")
    return path


class RunSummaryReporter:
    """
    Computes PSMStats and hands them to the database.
    `runner` may be None when results are not posted.
    """
    def __init__(self, runner: StoredProcedureRunner | None = None, logger: logging.Logger | None = None):
        self.runner = runner
        self.logger = logger or logging.getLogger(__name__)
        self.stats: PSMStats | None = None

    def post_results(self, job: JobContext, stats: PSMStats) -> None:
        """Call the statistics procedure. Raises ReportingFailure on a non-zero return code."""
        if self.runner is None:
            raise ReportingFailure("No database connection configured")
        payload = build_measurements_xml(PSM_STATS_XML_ROOT, job.dataset_name, job.job, stats.measurements())
        return_code = self.runner.call(STORE_PSM_STATS_PROCEDURE,
                                       {"datasetID": job.dataset_id, "resultsXML": payload})
        if return_code != 0:
            raise ReportingFailure(f"{STORE_PSM_STATS_PROCEDURE} returned {return_code}")

    def summarize(
        self,
        job: JobContext,
        synopsis_results: Path,
        first_hits_results: Path | None = None,
        post_to_db: bool = True,
        save_file: bool = True,
        fail_on_error: bool = False,
    ) -> bool:
        """
        Compute and report statistics. Reporting failures are logged and return
        False, unless `fail_on_error` is set.
        """
        self.stats = compute_stats(synopsis_results, first_hits_results, logger=self.logger)
        self.logger.info("PSM stats for job %s: %s", job.job, asdict(self.stats))

        if save_file:
            write_stats_file(job.work_dir / f"{job.dataset_name}{STATS_FILE_SUFFIX}", job, self.stats)

        if not post_to_db:
            return True
        try:
            self.post_results(job, self.stats)
        except ReportingFailure as e:
            if fail_on_error:
                raise
            self.logger.warning("Unable to store PSM stats for job %s: %s", job.job, e)
            return False
        return True
