"""
The amplugins command line.
"""
from pathlib import Path
import pytest
import yaml
from click.testing import CliRunner

from amplugins.cli import main
from amplugins.core.settings import SETTINGS_FILE, Settings, load_settings, save_settings

from conftest import DATASET


@pytest.fixture
def cli_args(tmp_path: Path) -> list[str]:
    """Global options keeping every directory inside tmp_path."""
    settings_dir = tmp_path / "settings"
    save_settings(settings_dir, Settings(failed_results_dir=tmp_path / "failed_results", monitor_interval=0.25))
    return ["--work-root", str(tmp_path / "work"), "--settings-dir", str(settings_dir)]


def write_job_file(tmp_path: Path, params: dict) -> Path:
    work_dir = tmp_path / "work" / "Job42"
    work_dir.mkdir(parents=True, exist_ok=True)
    path = tmp_path / "job.yaml"
    path.write_text(yaml.safe_dump({
        "dataset": DATASET,
        "job": 42,
        "step": 2,
        "dataset_id": 99,
        "work_dir": str(work_dir),
        "params": params,
    }), encoding="utf-8")
    return path


def test_steps_lists_registered_steps(cli_args):
    result = CliRunner().invoke(main, cli_args + ["steps"])
    assert result.exit_code == 0, result.output
    assert "msgf.score" in result.output
    assert "dta_refinery.run" in result.output


def test_run_unknown_step(cli_args, tmp_path: Path):
    job_file = write_job_file(tmp_path, {})
    result = CliRunner().invoke(main, cli_args + ["run", "no.such.step", "--job-file", str(job_file)])
    assert result.exit_code == 2
    assert "Unknown step" in result.output


def test_run_failed_step_exits_with_error(cli_args, tmp_path: Path):
    job_file = write_job_file(tmp_path, {"DTARefineryXMLFile": "x.xml", "GeneratedFastaName": "y.fasta"})
    result = CliRunner().invoke(main, cli_args + ["run", "dta_refinery.run", "-j", str(job_file)])

    assert result.exit_code == 1
    assert "Running dta_refinery.run for job 42" in result.output
    assert "failed" in result.output


def test_init_settings(cli_args, tmp_path: Path):
    settings_file = tmp_path / "settings" / SETTINGS_FILE
    settings_file.write_text(settings_file.read_text(encoding="utf-8").replace("\"java\"", "\"/opt/java/bin/java\""),
                             encoding="utf-8")
    result = CliRunner().invoke(main, cli_args + ["init-settings"])

    assert result.exit_code == 0, result.output
    assert str(settings_file) in result.output
    settings = load_settings(tmp_path / "settings")
    assert settings.java_path == "/opt/java/bin/java"
    assert settings.monitor_interval == 0.25
