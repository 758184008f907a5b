"""
MGF spectrum index map.
"""
from pathlib import Path
import pytest

from amplugins.core.errors import MissingInputFile, NoSpectraFound
from amplugins.phrp.mgf import MGFIndexMap

MGF_TEXT = """\
BEGIN IONS
TITLE=QC_Shew_16_01.100.100.2.dta
PEPMASS=500.25
CHARGE=2+
150.1 10.0
250.2 20.0
END IONS

BEGIN IONS
TITLE=QC_Shew_16_01.101.101.1.dta
PEPMASS=400.5
150.1 5.0
END IONS

BEGIN IONS
TITLE=third spectrum
SCANS=205
PEPMASS=610.8
CHARGE=2+ and 3+
175.1 8.0
END IONS
"""


@pytest.fixture
def mgf_file(tmp_path: Path) -> Path:
    path = tmp_path / "QC_Shew_16_01.mgf"
    path.write_text(MGF_TEXT, encoding="utf-8")
    return path


def test_index_map_from_file(mgf_file: Path):
    index_map = MGFIndexMap.from_file(mgf_file)

    assert len(index_map) == 3
    assert index_map.lookup_index(100, 2) == 1
    assert index_map.lookup_index(205, 2) == 3
    assert index_map.lookup_index(205, 3) == 3
    assert index_map.lookup_scan(2) == 101
    assert index_map.lookup_scan(3) == 205
    assert index_map.lookup_scan(4) is None


def test_charge_zero_fallback(mgf_file: Path):
    """A spectrum without a CHARGE line answers for every charge of its scan."""
    index_map = MGFIndexMap.from_file(mgf_file)
    assert index_map.lookup_index(101, 3) == 2
    assert index_map.lookup_index(100, 3) is None


def test_first_spectrum_wins():
    index_map = MGFIndexMap()
    index_map.add(1, 50, [2])
    index_map.add(2, 50, [2])
    assert index_map.lookup_index(50, 2) == 1
    assert index_map.lookup_scan(2) == 50


def test_empty_mgf(tmp_path: Path):
    path = tmp_path / "empty.mgf"
    path.write_text("", encoding="utf-8")
    with pytest.raises(NoSpectraFound):
        MGFIndexMap.from_file(path)


def test_missing_mgf(tmp_path: Path):
    with pytest.raises(MissingInputFile):
        MGFIndexMap.from_file(tmp_path / "nope.mgf")
