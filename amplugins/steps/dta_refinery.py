"""
Step for refining the parent ion masses of a _dta.txt file with DTA_Refinery
"""
from pathlib import Path
import shutil
import zipfile

from amplugins.core.database import StoredProcedureRunner
from amplugins.core.errors import NoSpectraFound, ProcessFailed, ReportingFailure
from amplugins.core.executor import StepContext
from amplugins.core.steps import step_registry
from amplugins.core.supervisor import ExternalProcessSupervisor, ProcessStats, Ticker
from amplugins.core.utils import delete_file
from amplugins.dtaref.logfile import MassErrorExtractor, is_xtandem_finished, log_file_path, validate_log_file

PROGRESS_PCT_DTA_REFINERY_RUNNING = 5
PROGRESS_PCT_DONE = 100

PROGRAM_NAME = "dta_refinery.py"
CONSOLE_OUTPUT_FILE = "DTARefinery_Console_Output.txt"
FIXED_DTA_SUFFIX = "_FIXED_dta.txt"
STATUS_CHECK_INTERVAL = 30.0


def zip_refined_dta(work_dir: Path, dataset: str) -> Path:
    """
    Replace the original _dta files with the refined one and zip it as
    `<dataset>_dta.zip`. The unzipped `<dataset>_dta.txt` is removed.
    """
    work_dir = Path(work_dir)
    fixed = work_dir / f"{dataset}_dta{FIXED_DTA_SUFFIX}"
    if not fixed.exists():
        fixed = work_dir / f"{dataset}{FIXED_DTA_SUFFIX}"
    if not fixed.exists():
        raise ProcessFailed(f"DTARefinery output file not found: {dataset}_dta{FIXED_DTA_SUFFIX}")

    # 1. Delete the original DTA files
    for path in work_dir.glob("*_dta.*"):
        if path != fixed and not path.name.lower().endswith(FIXED_DTA_SUFFIX.lower()):
            delete_file(path)

    # 2. Rename and zip
    dta_path = work_dir / f"{dataset}_dta.txt"
    shutil.move(str(fixed), str(dta_path))
    zip_path = work_dir / f"{dataset}_dta.zip"
    with zipfile.ZipFile(zip_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.write(dta_path, arcname=dta_path.name)
    delete_file(dta_path)
    return zip_path


@step_registry.register(
    "dta_refinery.run",
    name="DTA_Refinery",
    tool="DTARefinery",
    category="Spectra",
)
def dta_refinery_handler(ctx: StepContext):
    """
    Run DTA_Refinery on the job's _dta.txt file, store the parent ion mass error
    before and after refinement, and zip the refined _dta.txt file.
    """
    settings = ctx.runtime.settings
    dataset = ctx.job.dataset_name

    # 1. Validate
    dta_path = ctx.work_path(f"{dataset}_dta.txt")
    if not dta_path.exists() or dta_path.stat().st_size == 0:
        raise NoSpectraFound(f"{dta_path.name} is missing or empty")

    if not settings.dta_refinery_dir:
        raise ProcessFailed("Setting 'dta_refinery_dir' is not defined")
    program = Path(settings.dta_refinery_dir).expanduser() / PROGRAM_NAME
    if not program.exists():
        raise ProcessFailed(f"Cannot find DTA_Refinery program file: {program}")
    python = shutil.which(settings.python_path)
    if not python:
        raise ProcessFailed(f"Python not found at '{settings.python_path}'. Please check your settings.")

    xml_name = ctx.params.get_param("DTARefineryXMLFile", "")
    fasta_name = ctx.params.get_param("GeneratedFastaName", "")
    if not xml_name:
        raise ProcessFailed("Job parameter 'DTARefineryXMLFile' is not defined")
    if not fasta_name:
        raise ProcessFailed("Job parameter 'GeneratedFastaName' is not defined")
    fasta_path = Path(settings.org_db_dir).expanduser() / fasta_name

    # 2. Run
    supervisor = ExternalProcessSupervisor(
        ctx.work_dir,
        "DTARefinery",
        console_file=ctx.work_path(CONSOLE_OUTPUT_FILE),
        monitor_interval=settings.monitor_interval,
        logger=ctx.logger,
    )
    log_path = log_file_path(ctx.work_dir, dataset)
    status_ticker = Ticker(STATUS_CHECK_INTERVAL)
    state = {"xtandem_finished": False}

    def on_poll(stats: ProcessStats) -> None:
        if not status_ticker.due():
            return
        if not state["xtandem_finished"] and is_xtandem_finished(log_path):
            state["xtandem_finished"] = True
            ctx.logger.info("X!Tandem has finished searching and now DTA_Refinery is running")
        phase = "DTA_Refinery" if state["xtandem_finished"] else "X!Tandem"
        ctx.logger.debug("%s: %.1f%% CPU, %.0f MB", phase, stats.cpu_percent, stats.memory_mb)

    supervisor.add_callback(on_poll)
    ctx.set_progress(PROGRESS_PCT_DTA_REFINERY_RUNNING, "Running DTA_Refinery")
    arguments = [str(program), str(ctx.work_path(xml_name)), str(dta_path), str(fasta_path)]
    if not supervisor.launch(python, arguments):
        # The log usually explains the failure better than the exit code
        if log_path.exists():
            validate_log_file(log_path, ctx.logger)
        message = "Error running DTARefinery"
        if supervisor.console_info.error_line:
            message += f": {supervisor.console_info.error_line}"
        raise ProcessFailed(message)

    # 3. Check the log and store the mass errors
    validate_log_file(log_path, ctx.logger)
    runner = None
    if settings.connection_string:
        runner = StoredProcedureRunner(settings.connection_string, log=ctx.logger)
    try:
        MassErrorExtractor(runner, ctx.logger).extract(ctx.work_dir, dataset, ctx.job.dataset_id, ctx.job.job)
    except (ValueError, ReportingFailure) as e:
        ctx.logger.error("Error parsing DTA refinery log file to extract mass error stats, job %s: %s",
                         ctx.job.job, e)

    # 4. Zip the refined spectra
    zip_path = zip_refined_dta(ctx.work_dir, dataset)
    ctx.add_output(zip_path)
    ctx.add_output(log_path)
    ctx.set_progress(PROGRESS_PCT_DONE, "DTA_Refinery complete")
