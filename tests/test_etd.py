"""
ETD detection from upstream search parameter files.
"""
from pathlib import Path
import pytest

from amplugins.core.errors import MissingInputFile
from amplugins.msgf.etd import detect_etd_mode
from amplugins.phrp.formats import ResultFormat

SEQUEST_CID = "ion_series = 0 1 1 0.0 1.0 0.0 0.0 0.0 0.0 0.0 1.0 0.0 ; a b c d v w x y z\n"
SEQUEST_ETD = "ion_series = 0 1 1 0.0 0.0 1.0 0.0 0.0 0.0 0.0 0.0 1.0\n"

XTANDEM_TEMPLATE = """<?xml version="1.0"?>
<bioml>
  <note type="input" label="scoring, b ions">yes</note>
  <note type="input" label="scoring, c ions">{c_ions}</note>
  <note type="input" label="scoring, z ions">no</note>
</bioml>
"""


@pytest.mark.parametrize("content, expected", [
    (SEQUEST_CID, False),
    (SEQUEST_ETD, True),
    ("; ion_series = 0 1 1 0 0 1 0 0 0 0 0 1\n", False),
])
def test_sequest(tmp_path: Path, content: str, expected: bool):
    param_file = tmp_path / "sequest.params"
    param_file.write_text("[SEQUEST]\n" + content, encoding="utf-8")
    assert detect_etd_mode(ResultFormat.SEQUEST, param_file) is expected


@pytest.mark.parametrize("c_ions, expected", [("no", False), ("yes", True)])
def test_xtandem(tmp_path: Path, c_ions: str, expected: bool):
    param_file = tmp_path / "xtandem.xml"
    param_file.write_text(XTANDEM_TEMPLATE.format(c_ions=c_ions), encoding="utf-8")
    assert detect_etd_mode(ResultFormat.XTANDEM, param_file) is expected


@pytest.mark.parametrize("method, expected", [(0, False), (1, False), (2, True)])
def test_msgfdb(tmp_path: Path, method: int, expected: bool):
    param_file = tmp_path / "MSGFDB.txt"
    param_file.write_text(f"#FragmentationMethodID=2\nFragmentationMethodID={method}\n", encoding="utf-8")
    assert detect_etd_mode(ResultFormat.MSGFDB, param_file) is expected


def test_formats_without_etd_support(tmp_path: Path):
    assert detect_etd_mode(ResultFormat.INSPECT, None) is False
    assert detect_etd_mode(ResultFormat.INSPECT, tmp_path / "missing.txt") is False


def test_missing_param_file(tmp_path: Path):
    with pytest.raises(MissingInputFile):
        detect_etd_mode(ResultFormat.XTANDEM, tmp_path / "missing.xml")


def test_malformed_xtandem_params(tmp_path: Path):
    param_file = tmp_path / "xtandem.xml"
    param_file.write_text("<bioml><note type=\"input\"", encoding="utf-8")
    with pytest.raises(MissingInputFile, match="Unable to read"):
        detect_etd_mode(ResultFormat.XTANDEM, param_file)
