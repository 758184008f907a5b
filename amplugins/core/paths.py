"""
Default paths for manager settings, working directories and failed-job archives.
"""
from pathlib import Path
from platformdirs import user_data_dir

APP_NAME = 'amplugins'

def default_settings_dir() -> Path:
    """Get the default settings directory for the manager."""
    return Path(user_data_dir(APP_NAME)).expanduser().resolve()

def default_work_root() -> Path:
    """Get the default root under which job working directories are created."""
    return (Path.home() / APP_NAME / "work").resolve()

def default_failed_results_dir() -> Path:
    """Get the default directory receiving partial output of failed jobs."""
    return (Path.home() / APP_NAME / "failed_results").resolve()
