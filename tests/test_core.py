"""
Scripts to test the core step machinery: registry, executor, job parameters and settings.
"""
from pathlib import Path
import pytest

from amplugins.core.executor import StepContext
from amplugins.core.jobparams import JobContext, JobParams, load_job_file
from amplugins.core.runtime import Runtime
from amplugins.core.settings import Settings, load_settings, save_settings
from amplugins.core.steps import StepRegistry, StepStatus, step_registry
from amplugins.core.utils import add_file_name_suffix, count_lines, is_number, slugify, try_int


@step_registry.register("tests.echo", tool="echo")
def echo_handler(ctx: StepContext):
    """Writes a file and registers it as output."""
    out = ctx.work_path("echo.txt")
    out.write_text(ctx.params.get_param("Message", "hello"), encoding="utf-8")
    ctx.add_output(out)
    ctx.set_progress(100, "Echo done")


@step_registry.register("tests.crash")
def crash_handler(ctx: StepContext):
    """Leaves a partial file behind and fails."""
    ctx.work_path("partial.txt").write_text("half done", encoding="utf-8")
    raise RuntimeError("Intentional Crash")


def test_builtin_steps_registered():
    assert "msgf.score" in step_registry.all
    assert "dta_refinery.run" in step_registry.all
    msgf = step_registry["msgf.score"]
    assert msgf.tool == "MSGF"
    assert msgf.description


def test_registry_rejects_duplicates():
    registry = StepRegistry()

    @registry.register("demo.thing")
    def _handler(ctx):  # pylint: disable=unused-argument
        """Demo."""

    assert registry["demo.thing"].name == "Thing"
    assert registry["demo.thing"].category == "demo"
    with pytest.raises(ValueError, match="already registered"):
        registry.register("demo.thing")(_handler)
    with pytest.raises(KeyError):
        _ = registry["demo.missing"]


def test_execute_step_success(test_runtime: Runtime, job: JobContext):
    result = test_runtime.execute_step("tests.echo", job, JobParams({"message": "hi"}))

    assert result.status == StepStatus.COMPLETED
    assert result.error is None
    assert result.progress == 100
    assert [p.name for p in result.outputs] == ["echo.txt"]
    assert (job.work_dir / "echo.txt").read_text(encoding="utf-8") == "hi"
    assert result.duration is not None


def test_execute_step_failure_archives_partial_results(test_runtime: Runtime, job: JobContext):
    result = test_runtime.execute_step("tests.crash", job, JobParams())

    assert result.status == StepStatus.FAILED
    assert "Intentional Crash" in result.error
    archived = list(test_runtime.failed_results_dir.glob("*/partial.txt"))
    assert len(archived) == 1
    assert archived[0].parent.name == "QC_Shew_16_01_Job1234_Step3"


def test_execute_step_unknown_key(test_runtime: Runtime, job: JobContext):
    with pytest.raises(ValueError, match="not found"):
        test_runtime.execute_step("tests.nope", job, JobParams())


def test_job_params_coercion():
    params = JobParams({
        "MSGFEntriesPerSegment": "5000",
        "KeepMSGFInputFile": "True",
        "MGFInstrumentData": "false",
        "Threshold": "0.5",
        "Empty": "  ",
    })
    assert params.get_param("msgfentriespersegment", 25000) == 5000
    assert params.get_param("KeepMSGFInputFile", False) is True
    assert params.get_param("MGFInstrumentData", True) is False
    assert params.get_param("Threshold", 1.0) == 0.5
    assert params.get_param("Empty", "default") == "default"
    assert params.get_param("Missing", 7) == 7
    assert "keepmsgfinputfile" in params

    params.set_param("Added", 3)
    assert params.get_param("added", 0) == 3


def test_load_job_file(tmp_path: Path):
    job_file = tmp_path / "job.yaml"
    job_file.write_text(
        "dataset: QC_Shew_16_01\n"
        "job: 1234\n"
        "dataset_id: 567\n"
        "params:\n"
        "  ResultType: XT_Peptide_Hit\n"
        "  MSGFEntriesPerSegment: 100\n",
        encoding="utf-8",
    )
    ctx, params = load_job_file(job_file)

    assert ctx.dataset_name == "QC_Shew_16_01"
    assert ctx.job == 1234
    assert ctx.dataset_id == 567
    assert ctx.work_dir == tmp_path.resolve()
    assert params.get_param("ResultType") == "XT_Peptide_Hit"
    assert params.get_param("MSGFEntriesPerSegment", 0) == 100


def test_load_job_file_requires_dataset(tmp_path: Path):
    job_file = tmp_path / "job.yaml"
    job_file.write_text("job: 1\n", encoding="utf-8")
    with pytest.raises(ValueError, match="dataset"):
        load_job_file(job_file)


def test_settings_round_trip(tmp_path: Path):
    settings = Settings(work_root=tmp_path / "work", java_path="/opt/java/bin/java",
                        connection_string="sqlite://")
    save_settings(tmp_path, settings)
    loaded = load_settings(tmp_path)

    assert loaded == settings
    assert isinstance(loaded.work_root, Path)


def test_corrupt_settings_fall_back_to_defaults(tmp_path: Path):
    (tmp_path / "settings.json").write_text("{not json", encoding="utf-8")
    assert load_settings(tmp_path) == Settings()


def test_utils(tmp_path: Path):
    assert add_file_name_suffix(Path("Data_syn_MSGF.txt"), 3).name == "Data_syn_MSGF_3.txt"
    assert is_number("1.5E-10")
    assert not is_number("N/A")
    assert not is_number("nan")
    assert try_int("2.0") == 2
    assert try_int("x", -1) == -1
    assert slugify("QC Shew/Job 1") == "QC_ShewJob_1"

    path = tmp_path / "lines.txt"
    path.write_text("a\n\nb\n", encoding="utf-8")
    assert count_lines(path) == 2
    assert count_lines(path, skip_blank=False) == 3
    assert count_lines(tmp_path / "missing.txt") == 0
