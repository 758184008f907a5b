"""
Main entry point for the step plugins. Accessed by 'amplugins' in the command line.
"""
from functools import update_wrapper
from pathlib import Path
import click

from amplugins.core.jobparams import load_job_file
from amplugins.core.runtime import build_runtime, Runtime
from amplugins.core.settings import save_settings
from amplugins.core.steps import step_registry, StepStatus


def pass_runtime(f):
    """
    Decorator to pass a Runtime to Click commands that need it.
    Ensures a Runtime is created and passed as the first argument.
    """
    @click.pass_context
    def new_func(ctx: click.Context, *args, **kwargs):
        ctx.ensure_object(dict)
        rt = ctx.obj.get('rt')
        if rt is None:
            opts = ctx.obj.get('global_opts', {})  # user overrides
            rt = build_runtime(**opts)
            ctx.obj['rt'] = rt
        # call the function with the Runtime context
        return f(ctx.obj['rt'], *args, **kwargs)
    return update_wrapper(new_func, f)

@click.group()
@click.option('--work-root', type=click.Path(path_type=Path), default=None,
              help="Directory holding the job working directories.")
@click.option('--settings-dir', type=click.Path(path_type=Path), default=None,
              help="Directory holding settings.json.")
@click.option('-v', '--verbose', is_flag=True, default=False,
              help="Very very detailed logging for debugging purposes.")
@click.version_option(package_name="amplugins")
@click.pass_context
def main(ctx, work_root, settings_dir, verbose):
    """Analysis manager step plugins: MSGF scoring and DTA_Refinery."""
    ctx.ensure_object(dict)
    ctx.obj['global_opts'] = {
        'work_root': work_root,
        'settings_dir': settings_dir,
        'verbose': verbose,
    }

@main.command()
@pass_runtime
def steps(rt: Runtime):  # pylint: disable=unused-argument
    """List the registered steps."""
    for key, step in sorted(step_registry.all.items()):
        click.echo(f"{key:20} {step.category:10} {step.name} ({step.tool})")

@main.command()
@pass_runtime
@click.argument("step_key")
@click.option("--job-file", "-j", required=True, type=click.Path(exists=True, path_type=Path),
              help="YAML file describing the job and its parameters")
@click.option("--work-dir", "-w", type=click.Path(path_type=Path), default=None,
              help="Working directory (defaults to the job file's 'work_dir' or its folder)")
def run(rt: Runtime, step_key: str, job_file: Path, work_dir: Path | None):
    """
    Execute a single step for one job

    Example: amplugins run msgf.score -j job.yaml
    """
    if step_registry.get(step_key) is None:
        raise click.BadParameter(f"Unknown step '{step_key}'", param_hint="STEP_KEY")

    job, params = load_job_file(job_file, work_dir)
    click.echo(f"Running {step_key} for job {job.job} in {job.work_dir}")
    result = rt.execute_step(step_key, job, params)

    for path in result.outputs:
        click.echo(f"  output: {path.name}")
    if result.tool_version:
        click.echo(f"  tool version: {result.tool_version}")
    if result.status != StepStatus.COMPLETED:
        click.echo(f"Step {step_key} failed: {result.error}", err=True)
        raise SystemExit(1)
    click.echo(f"Step {step_key} completed in {result.duration:.1f}s")

@main.command("init-settings")
@pass_runtime
def init_settings(rt: Runtime):
    """Write the current settings to settings.json for editing."""
    path = save_settings(rt.settings_dir, rt.settings)
    click.echo(f"Settings written to {path}")
