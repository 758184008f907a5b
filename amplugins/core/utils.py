"""
Simple file and text helpers used across the steps.
"""
from pathlib import Path
import logging
import re

logger = logging.getLogger(__name__)


def add_file_name_suffix(path: Path | str, suffix: str | int) -> Path:
    """
    Insert `_suffix` between a file's stem and its extension.
    e.g. Data_syn_MSGF.txt + 3 -> Data_syn_MSGF_3.txt
    """
    path = Path(path)
    return path.with_name(f"{path.stem}_{suffix}{path.suffix}")


def count_lines(path: Path | str, skip_blank: bool = True) -> int:
    """Count the lines of a text file, ignoring blank lines by default."""
    path = Path(path)
    if not path.exists():
        return 0
    count = 0
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        for line in f:
            if skip_blank and not line.strip():
                continue
            count += 1
    return count


def is_number(value: str | None) -> bool:
    """True if the text parses as a float (NaN and infinity excluded)."""
    if value is None:
        return False
    try:
        number = float(value)
    except (TypeError, ValueError):
        return False
    return number == number and number not in (float("inf"), float("-inf"))


def try_int(value, default: int = 0) -> int:
    """Parse an int, tolerating float text such as '2.0'."""
    try:
        return int(value)
    except (TypeError, ValueError):
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return default


def delete_file(path: Path | str, log: logging.Logger | None = None) -> bool:
    """Delete a file if it exists. Returns True if the file is gone afterwards."""
    path = Path(path)
    try:
        path.unlink(missing_ok=True)
        return True
    except OSError as e:
        (log or logger).warning("Unable to delete %s: %s", path, e)
        return False


def replace_file(source: Path | str, target: Path | str) -> None:
    """Delete target then rename source into its place."""
    source, target = Path(source), Path(target)
    if target.exists():
        target.unlink()
    source.rename(target)


# [^\w\-.]: Anything that isn't a word character [a-zA-Z0-9_] or - .
_UNSAFE_CHARS = re.compile(r'[^\w\-.]')

def slugify(value: str, max_length: int = 64) -> str:
    """Filesystem-friendly name for scripts and archive folders."""
    value = re.sub(r'\s+', '_', value.strip())
    value = _UNSAFE_CHARS.sub('', value)
    return value[:max_length]
