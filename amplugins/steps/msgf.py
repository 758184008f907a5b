"""
Step for scoring the PSMs of a search job with MSGF
"""
from pathlib import Path
import shutil

from amplugins.core.database import StoredProcedureRunner
from amplugins.core.errors import ProcessFailed
from amplugins.core.executor import StepContext
from amplugins.core.steps import step_registry
from amplugins.core.supervisor import ExternalProcessSupervisor, ProcessStats, Ticker, parse_console_output
from amplugins.core.utils import delete_file
from amplugins.msgf.etd import detect_etd_mode
from amplugins.msgf.options import MSGFDB_MODE_AUTO_VERSION, MSGFOptions
from amplugins.msgf.passthrough import render_precomputed_results, resolve_source_path
from amplugins.msgf.postprocess import ResultPostProcessor, results_header_line, update_protein_mods_file
from amplugins.msgf.segments import SegmentedProcessDriver
from amplugins.msgf.summary import STATS_FILE_SUFFIX, RunSummaryReporter
from amplugins.msgf.synthesizer import SynthesisSession
from amplugins.phrp.formats import DataSource, FormatSpec, ResultFormat, get_format_spec
from amplugins.phrp.mgf import MGFIndexMap

PROGRESS_PCT_PARAM_FILE_EXAMINED = 2
PROGRESS_PCT_INPUT_GENERATED = 3
PROGRESS_PCT_MSGF_COMPLETE = 95
PROGRESS_PCT_POST_PROCESSING = 97
PROGRESS_PCT_DONE = 100

CONSOLE_OUTPUT_FILE = "MSGF_ConsoleOutput.txt"
VERSION_PREFIX = "MSGF"
PROGRESS_UPDATE_INTERVAL = 20.0
CONSOLE_PARSE_INTERVAL = 15.0


def build_msgf_arguments(
    options: MSGFOptions,
    jar_path: str,
    input_path: Path,
    output_path: Path,
    work_dir: Path,
    etd_mode: bool,
) -> list[str]:
    """Java arguments for one MSGF invocation."""
    args = [f"-Xmx{options.java_memory_mb}M"]
    if options.uses_msgfdb:
        args += ["-cp", jar_path, "ui.MSGF"]
    else:
        args += ["-jar", jar_path]

    args += ["-i", str(input_path), "-d", str(work_dir), "-o", str(output_path)]

    # -m 0 means use the fragmentation method stated in the spectrum file
    if options.uses_msgfdb and options.msgfdb_build >= MSGFDB_MODE_AUTO_VERSION:
        mode = 0
    else:
        mode = 1 if etd_mode else 0
    args += ["-m", str(mode)]

    # Trypsin, no fixed Cys mods, all spectra, show the peptide
    args += ["-e", "1", "-fixMod", "0", "-x", "0", "-p", "1"]
    return args


def _load_etd_mode(ctx: StepContext, options: MSGFOptions) -> bool:
    if not options.param_file_name:
        ctx.logger.warning("ParamFileName is not defined; assuming CID spectra")
        return False
    return detect_etd_mode(options.result_format, ctx.work_path(options.param_file_name))


def _summarize(ctx: StepContext, options: MSGFOptions, synopsis_results: Path,
               first_hits_results: Path | None) -> None:
    settings = ctx.runtime.settings
    runner = None
    if options.post_results_to_db:
        if settings.connection_string:
            runner = StoredProcedureRunner(settings.connection_string, log=ctx.logger)
        else:
            ctx.logger.warning("No connection_string in the settings; PSM stats will not be stored")

    reporter = RunSummaryReporter(runner, ctx.logger)
    reporter.summarize(
        ctx.job,
        synopsis_results,
        first_hits_results,
        post_to_db=options.post_results_to_db and runner is not None,
        save_file=options.save_stats_file,
        fail_on_error=options.fail_on_reporting_error,
    )
    stats_file = ctx.work_path(f"{ctx.job.dataset_name}{STATS_FILE_SUFFIX}")
    if options.save_stats_file and stats_file.exists():
        ctx.add_output(stats_file)


def _update_protein_mods(ctx: StepContext, spec: FormatSpec, results_path: Path) -> None:
    if not spec.updates_protein_mods:
        return
    protein_mods = ctx.work_path(spec.protein_mods_file_name(ctx.job.dataset_name))
    if update_protein_mods_file(protein_mods, results_path, ctx.logger):
        ctx.add_output(protein_mods)


def _run_precomputed(ctx: StepContext, options: MSGFOptions, spec: FormatSpec) -> None:
    """Render the results from the scores the search tool already computed."""
    dataset = ctx.job.dataset_name
    ctx.logger.info("Using the %s values in the %s results instead of running MSGF",
                    spec.precomputed_score, spec.result_format.name)

    synopsis = resolve_source_path(ctx.work_dir, dataset, spec, DataSource.SYNOPSIS)
    synopsis_results = render_precomputed_results(synopsis, spec, DataSource.SYNOPSIS, ctx.logger)
    ctx.add_output(synopsis_results)

    first_hits_results = None
    if spec.result_format == ResultFormat.MSGFDB:
        # MS-GF+ jobs always have both files
        first_hits = resolve_source_path(ctx.work_dir, dataset, spec, DataSource.FIRST_HITS)
    else:
        first_hits = ctx.work_path(spec.first_hits_file_name(dataset))
    if first_hits.exists():
        first_hits_results = render_precomputed_results(first_hits, spec, DataSource.FIRST_HITS, ctx.logger)
        ctx.add_output(first_hits_results)

    ctx.set_progress(PROGRESS_PCT_POST_PROCESSING, "Computing PSM stats")
    _update_protein_mods(ctx, spec, synopsis_results)
    _summarize(ctx, options, synopsis_results, first_hits_results)


def _run_msgf(ctx: StepContext, options: MSGFOptions, session: SynthesisSession,
              input_path: Path, line_count: int, etd_mode: bool) -> Path:
    """Score the input file, in segments if needed. Returns the raw results path."""
    settings = ctx.runtime.settings
    results_path = session.synopsis_results_path

    # 1. Validate
    java = settings.java_path
    if not shutil.which(java):
        raise ProcessFailed(f"Java not found at '{java}'. Please check your settings.")
    jar_path = settings.msgfdb_jar if options.uses_msgfdb else settings.msgf_jar

    # 2. Supervisor and progress polling
    supervisor = ExternalProcessSupervisor(
        ctx.work_dir,
        "MSGF",
        console_file=ctx.work_path(CONSOLE_OUTPUT_FILE),
        monitor_interval=settings.monitor_interval,
        version_prefix=VERSION_PREFIX,
        logger=ctx.logger,
    )

    # When split by collision mode, each bucket carries its own fragmentation mode
    by_collision_mode = options.result_format == ResultFormat.MSGFDB and not options.uses_msgfdb

    def run_one(seg_input: Path, seg_output: Path, seg_etd: bool) -> bool:
        delete_file(seg_output, ctx.logger)
        args = build_msgf_arguments(options, jar_path, seg_input, seg_output, ctx.work_dir,
                                    seg_etd if by_collision_mode else etd_mode)
        return supervisor.launch(java, args)

    driver = SegmentedProcessDriver(run_one, keep_files=options.keep_input_files, logger=ctx.logger)
    progress_ticker = Ticker(PROGRESS_UPDATE_INTERVAL)
    console_ticker = Ticker(CONSOLE_PARSE_INTERVAL)

    def on_poll(stats: ProcessStats) -> None:
        ctx.logger.debug("MSGF pid %s: %.1f%% CPU, %.0f MB", stats.pid, stats.cpu_percent, stats.memory_mb)
        if progress_ticker.due():
            ctx.set_progress(driver.progress_percent())
        if console_ticker.due() and not ctx.result.tool_version:
            info = parse_console_output(supervisor.console_file, VERSION_PREFIX)
            ctx.result.tool_version = info.version

    supervisor.add_callback(on_poll)

    # 3. Run
    if by_collision_mode:
        driver.run_collision_modes(input_path, options.entries_per_segment, results_path)
    else:
        driver.run(input_path, line_count, options.entries_per_segment, results_path)

    if supervisor.console_info.version:
        ctx.result.tool_version = supervisor.console_info.version
    if not results_path.exists():
        raise ProcessFailed(f"MSGF results file not found: {results_path.name}")
    return results_path


@step_registry.register(
    "msgf.score",
    name="MSGF spectral probability",
    tool="MSGF",
    category="Scoring",
)
def msgf_handler(ctx: StepContext):
    """
    Compute MSGF spectral probabilities for the synopsis and first-hits PSMs of a
    search job, then store PSM statistics for the job.
    """
    options = MSGFOptions.from_job_params(ctx.params)
    spec = get_format_spec(options.result_format)
    dataset = ctx.job.dataset_name
    ctx.logger.info("Scoring %s results for dataset %s", spec.result_format.name, dataset)

    # 1. Fragmentation mode
    etd_mode = _load_etd_mode(ctx, options)
    ctx.set_progress(PROGRESS_PCT_PARAM_FILE_EXAMINED, "Examined the search parameter file")

    if options.uses_precomputed:
        _run_precomputed(ctx, options, spec)
        ctx.set_progress(PROGRESS_PCT_DONE, "MSGF step complete")
        return

    # 2. Input synthesis
    mgf_map = None
    if options.mgf_instrument_data:
        mgf_map = MGFIndexMap.from_file(ctx.work_path(f"{dataset}.mgf"))
    session = SynthesisSession(dataset, ctx.work_dir, spec, mgf_map,
                               ignore_filters=options.ignore_filters, logger=ctx.logger)
    input_path, line_count = session.synthesize()
    ctx.set_progress(PROGRESS_PCT_INPUT_GENERATED, f"Created {input_path.name}")

    # 3. MSGF
    processor = ResultPostProcessor(session, ctx.logger)
    results_path = session.synopsis_results_path
    if line_count <= 1:
        ctx.logger.warning("%s has no data rows; MSGF will not be run", input_path.name)
        results_path.write_text(results_header_line(), encoding="utf-8")
        first_hits_present = False
    else:
        _run_msgf(ctx, options, session, input_path, line_count, etd_mode)
        ctx.set_progress(PROGRESS_PCT_MSGF_COMPLETE, "MSGF complete")

        # 4. Post-processing
        results_path, first_hits_present = processor.reconcile(results_path)
    ctx.add_output(results_path)

    first_hits_results = None
    if first_hits_present:
        first_hits_results = processor.write_first_hits_results()
        if first_hits_results is not None:
            ctx.add_output(first_hits_results)

    # 5. Protein mods and statistics
    ctx.set_progress(PROGRESS_PCT_POST_PROCESSING, "Post-processing MSGF results")
    _update_protein_mods(ctx, spec, results_path)
    _summarize(ctx, options, results_path, first_hits_results)

    # 6. Clean up
    if options.keep_input_files:
        ctx.add_output(input_path)
    else:
        delete_file(input_path, ctx.logger)
    console_file = ctx.work_path(CONSOLE_OUTPUT_FILE)
    if console_file.exists():
        ctx.add_output(console_file)
    ctx.set_progress(PROGRESS_PCT_DONE, "MSGF step complete")
