"""
Spectrum index for MGF packaged instrument data.

When instrument data arrives as one MGF file, the scoring tool addresses spectra by
their 1-based position in that file instead of by scan number. MGFIndexMap keeps
both directions of that mapping.
"""
from pathlib import Path
import logging
import re

from pyteomics import mgf

from amplugins.core.errors import MissingInputFile, NoSpectraFound
from amplugins.core.utils import try_int

logger = logging.getLogger(__name__)

# DMS-style titles: Dataset.ScanStart.ScanEnd.Charge[.dta]
_TITLE_SCAN = re.compile(r"\.(\d+)\.(\d+)\.(\d+)(?:\.dta)?\s*$", re.IGNORECASE)


def _spectrum_scan(params: dict, index: int) -> int:
    """Scan number of a spectrum: SCANS=, then the title, then its position."""
    scans = str(params.get("scans", "") or "").strip()
    if scans:
        first = re.split(r"[-,\s]", scans)[0]
        scan = try_int(first, -1)
        if scan >= 0:
            return scan
    match = _TITLE_SCAN.search(str(params.get("title", "") or ""))
    if match:
        return int(match.group(1))
    return index


def _spectrum_charges(params: dict) -> list[int]:
    charge = params.get("charge")
    if charge is None or charge == "":
        return []
    if isinstance(charge, (list, tuple)):
        return [abs(int(c)) for c in charge]
    return [abs(int(charge))]


class MGFIndexMap:
    """Bidirectional scan+charge <-> 1-based spectrum index mapping."""

    def __init__(self):
        self._index_by_scan_charge: dict[tuple[int, int], int] = {}
        self._scan_by_index: dict[int, int] = {}

    def __len__(self) -> int:
        return len(self._scan_by_index)

    def add(self, index: int, scan: int, charges: list[int]) -> None:
        """Record one spectrum. Spectra without explicit charges map under charge 0."""
        self._scan_by_index[index] = scan
        for charge in (charges or [0]):
            # First spectrum wins for repeated scan/charge combos
            self._index_by_scan_charge.setdefault((scan, charge), index)

    def lookup_index(self, scan: int, charge: int) -> int | None:
        """Spectrum index for a scan and charge, falling back to the charge 0 entry."""
        index = self._index_by_scan_charge.get((scan, charge))
        if index is None:
            index = self._index_by_scan_charge.get((scan, 0))
        return index

    def lookup_scan(self, index: int) -> int | None:
        """Scan number for a spectrum index."""
        return self._scan_by_index.get(index)

    @classmethod
    def from_file(cls, path: Path | str) -> "MGFIndexMap":
        """
        Read an MGF file sequentially and index its spectra.
        Raises NoSpectraFound if the file holds none.
        """
        path = Path(path)
        if not path.exists():
            raise MissingInputFile(f"MGF file not found: {path}")

        index_map = cls()
        with mgf.read(str(path), convert_arrays=0, read_charges=True) as reader:
            for index, spectrum in enumerate(reader, start=1):
                params = spectrum.get("params", {})
                index_map.add(index, _spectrum_scan(params, index), _spectrum_charges(params))

        if not len(index_map):
            raise NoSpectraFound(f"No spectra found in {path.name}")
        logger.info("Indexed %s spectra in %s", len(index_map), path.name)
        return index_map
