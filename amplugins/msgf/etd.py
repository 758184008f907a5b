"""
Decide whether a job's spectra are ETD spectra from the upstream search parameters.
"""
from pathlib import Path
import logging
import re
import xml.etree.ElementTree as ET

from amplugins.core.errors import MissingInputFile
from amplugins.phrp.formats import ResultFormat

logger = logging.getLogger(__name__)

# Sequest ion_series weights: 3 neutral loss flags then a b c d v w x y z
SEQUEST_C_ION_INDEX = 5
SEQUEST_Z_ION_INDEX = 11
XTANDEM_ETD_LABELS = ("scoring, c ions", "scoring, z ions")
MSGFDB_ETD_METHOD_ID = 2

_MSGFDB_FRAG_METHOD = re.compile(r"^\s*FragmentationMethodID\s*=\s*(\d+)", re.IGNORECASE)


def sequest_uses_etd(param_file: Path) -> bool:
    """ETD if the ion_series line weights c or z ions."""
    with open(param_file, "r", encoding="utf-8", errors="replace") as f:
        for line in f:
            text = line.split(";", 1)[0].strip()
            if not text.lower().startswith("ion_series"):
                continue
            _, _, values = text.partition("=")
            weights = values.split()
            if len(weights) <= SEQUEST_Z_ION_INDEX:
                logger.warning("ion_series line has %s values; expected 12", len(weights))
                return False
            try:
                return float(weights[SEQUEST_C_ION_INDEX]) > 0 or float(weights[SEQUEST_Z_ION_INDEX]) > 0
            except ValueError:
                logger.warning("Unable to parse ion_series line: %s", text)
                return False
    return False


def xtandem_uses_etd(param_file: Path) -> bool:
    """ETD if c or z ion scoring is switched on."""
    tree = ET.parse(param_file)
    for note in tree.getroot().iter("note"):
        label = (note.get("label") or "").strip().lower()
        if note.get("type") == "input" and label in XTANDEM_ETD_LABELS:
            if (note.text or "").strip().lower() == "yes":
                return True
    return False


def msgfdb_uses_etd(param_file: Path) -> bool:
    """ETD if FragmentationMethodID is 2."""
    with open(param_file, "r", encoding="utf-8", errors="replace") as f:
        for line in f:
            match = _MSGFDB_FRAG_METHOD.match(line.split("#", 1)[0])
            if match:
                return int(match.group(1)) == MSGFDB_ETD_METHOD_ID
    return False


_DETECTORS = {
    ResultFormat.SEQUEST: sequest_uses_etd,
    ResultFormat.XTANDEM: xtandem_uses_etd,
    ResultFormat.MSGFDB: msgfdb_uses_etd,
}


def detect_etd_mode(result_format: ResultFormat, param_file: Path | None) -> bool:
    """
    True when the search that produced the results targeted ETD spectra.
    Formats without ETD support always return False.
    """
    detector = _DETECTORS.get(result_format)
    if detector is None:
        logger.debug("%s does not support ETD data processing", result_format.name)
        return False
    if param_file is None or not Path(param_file).exists():
        raise MissingInputFile(f"Parameter file not found: {param_file}")
    try:
        etd = detector(Path(param_file))
    except ET.ParseError as e:
        raise MissingInputFile(f"Unable to read parameter file {Path(param_file).name}: {e}") from e
    if etd:
        logger.info("ETD search found in %s", Path(param_file).name)
    return etd
