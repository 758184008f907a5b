"""
Global fixtures live here

This tells pytest how to prepare a Runtime, a job and sample result files for tests.
"""
from pathlib import Path
import pytest

from amplugins.core.jobparams import JobContext
from amplugins.core.runtime import build_runtime, Runtime
from amplugins.core.settings import Settings

DATASET = "QC_Shew_16_01"

XT_COLUMNS = ["Result_ID", "Scan", "Charge", "Peptide", "Protein", "Peptide_Expectation_Value_Log(e)"]


@pytest.fixture
def test_runtime(tmp_path: Path) -> Runtime:
    """
    Creates a temporary Runtime for testing
    """
    settings = Settings(
        failed_results_dir=tmp_path / "failed_results",
        monitor_interval=0.25,
    )
    rt = build_runtime(
        work_root=tmp_path / "work",
        settings_dir=tmp_path / "settings",
        settings=settings,
        verbose=True,
    )
    yield rt


@pytest.fixture
def job(test_runtime: Runtime) -> JobContext:
    """A job whose working directory exists and is empty."""
    work_dir = test_runtime.job_dir(1234)
    work_dir.mkdir(parents=True, exist_ok=True)
    return JobContext(dataset_name=DATASET, work_dir=work_dir, job=1234, step=3, dataset_id=567)


@pytest.fixture
def write_tsv():
    """Returns a helper writing a tab-delimited file from a header and rows."""
    def _write(path: Path, header: list[str], rows: list[list]) -> Path:
        lines = ["\t".join(header)]
        lines += ["\t".join(str(v) for v in row) for row in rows]
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path
    return _write


@pytest.fixture
def xtandem_files(job: JobContext, write_tsv):
    """
    X!Tandem synopsis and first-hits files:
    - Result 2 repeats result 1 for another protein.
    - Result 3 fails the E-value filter.
    - First hit 10 repeats result 1; first hit 11 is new.
    """
    syn = write_tsv(job.work_dir / f"{DATASET}_xt_syn.txt", XT_COLUMNS, [
        [1, 100, 2, "K.PEPTIDEK.A", "ProtA", -2.5],
        [2, 100, 2, "K.PEPTIDEK.A", "ProtB", -2.5],
        [3, 200, 3, "R.WEAKPEPR.S", "ProtC", -0.1],
        [4, 300, 2, "K.SEC*ONDK.L", "ProtD", -1.2],
    ])
    fht = write_tsv(job.work_dir / f"{DATASET}_xt_fht.txt", XT_COLUMNS, [
        [10, 100, 2, "K.PEPTIDEK.A", "ProtA", -2.5],
        [11, 400, 2, "R.FIRSTHITK.G", "ProtE", -0.2],
    ])
    return syn, fht
