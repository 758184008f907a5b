"""
Manager settings: where the tools live and how to reach the database.
Job-specific options live in amplugins.core.jobparams instead.
"""
from dataclasses import asdict, dataclass, fields
from pathlib import Path
import json
import logging
from typing import Any

SETTINGS_FILE = "settings.json"

_PATH_FIELDS = ("work_root", "failed_results_dir")

logger = logging.getLogger(__name__)


@dataclass
class Settings:
    """Configuration settings shared by every step the manager runs."""
    work_root: Path | None = None
    failed_results_dir: Path | None = None
    java_path: str = "java"  # Default to assuming java is in PATH
    msgf_jar: str = "MSGF.jar"
    msgfdb_jar: str = "MSGFDB.jar"
    python_path: str = "python"
    dta_refinery_dir: str = ""
    org_db_dir: str = ""
    connection_string: str = ""
    monitor_interval: float = 2.0
    verbose: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> 'Settings':
        """Hydrate Settings from a dictionary."""
        valid_keys = {f.name for f in fields(cls)}
        filtered_data = {k: v for k, v in data.items() if k in valid_keys}

        for key in _PATH_FIELDS:
            if filtered_data.get(key) is not None:
                filtered_data[key] = Path(filtered_data[key])
        return cls(**filtered_data)

    def to_dict(self) -> dict[str, Any]:
        """Serialize Settings to a dictionary."""
        data = asdict(self)
        for key in _PATH_FIELDS:
            if data.get(key) is not None:
                data[key] = str(data[key])
        return data

# --- Persistence functions ---

def load_settings(settings_dir: Path) -> Settings:
    """Load settings from a JSON file in the settings directory."""
    path = settings_dir / SETTINGS_FILE
    if not path.exists():
        return Settings()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return Settings.from_dict(data)
    except (json.JSONDecodeError, TypeError) as e:
        # Corrupt settings fall back to defaults
        logger.warning("Ignoring unreadable settings file %s: %s", path, e)
        return Settings()

def save_settings(settings_dir: Path, settings: Settings) -> Path:
    """Save settings to a JSON file in the settings directory."""
    settings_dir.mkdir(parents=True, exist_ok=True)
    path = settings_dir / SETTINGS_FILE
    data = settings.to_dict()
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    return path
