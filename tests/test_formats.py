"""
Per-format filter rules and file naming.
"""
import pytest

from amplugins.phrp.formats import (
    ResultFormat,
    get_format_spec,
    passes_inspect_filter,
    passes_moda_filter,
    passes_modplus_filter,
    passes_sequest_filter,
    passes_xtandem_filter,
)
from amplugins.phrp.reader import PSMRecord


def make_psm(charge: int = 2, peptide: str = "K.PEPTIDEK.A", **scores) -> PSMRecord:
    return PSMRecord(
        result_id=1, scan=100, charge=charge, peptide=peptide,
        scores={k.lower(): str(v) for k, v in scores.items()},
    )


def test_sequest_non_tryptic_rows_rejected():
    """Charges 1/2/3 with XCorr 1.2/1.6/2.0 all miss the non-tryptic thresholds 1.5/2.0/2.5."""
    rows = [
        make_psm(charge=1, XCorr=1.2, DelCn=0.1, NumTrypticEnds=1),
        make_psm(charge=2, XCorr=1.6, DelCn=0.1, NumTrypticEnds=1),
        make_psm(charge=3, XCorr=2.0, DelCn=0.1, NumTrypticEnds=1),
    ]
    assert [passes_sequest_filter(p) for p in rows] == [False, False, False]


def test_sequest_boundaries():
    # Non-tryptic thresholds are inclusive
    assert passes_sequest_filter(make_psm(charge=2, XCorr=2.0, DelCn=0.1, NumTrypticEnds=1))
    assert passes_sequest_filter(make_psm(charge=3, XCorr=2.5, DelCn=0.1, NumTrypticEnds=0))
    # Tryptic: 1.5 for charge 1-2, 2.2 from charge 3
    assert passes_sequest_filter(make_psm(charge=2, XCorr=1.6, DelCn=0.1, NumTrypticEnds=2))
    assert not passes_sequest_filter(make_psm(charge=3, XCorr=2.1, DelCn=0.1, NumTrypticEnds=2))
    # Protein terminus counts as tryptic
    assert passes_sequest_filter(make_psm(charge=2, peptide="-.MPEPTIDE.K", XCorr=1.6, DelCn=0.1))
    assert passes_sequest_filter(make_psm(charge=2, peptide="K.PEPTIDE.-", XCorr=1.6, DelCn=0.1))
    # DelCn above 0.25 always fails
    assert not passes_sequest_filter(make_psm(charge=2, XCorr=5.0, DelCn=0.26, NumTrypticEnds=2))


def test_xtandem_filter():
    assert passes_xtandem_filter(make_psm(**{"Peptide_Expectation_Value_Log(e)": -0.3}))
    assert passes_xtandem_filter(make_psm(**{"Peptide_Expectation_Value_Log(e)": -4.1}))
    assert not passes_xtandem_filter(make_psm(**{"Peptide_Expectation_Value_Log(e)": -0.29}))


def test_inspect_filter():
    assert passes_inspect_filter(make_psm(PValue=0.2, TotalPRMScore=0, FScore=-2))
    assert passes_inspect_filter(make_psm(PValue=0.9, TotalPRMScore=50, FScore=-2))
    assert passes_inspect_filter(make_psm(PValue=0.9, TotalPRMScore=10, FScore=0))
    assert not passes_inspect_filter(make_psm(PValue=0.9, TotalPRMScore=10, FScore=-0.5))
    assert not passes_inspect_filter(make_psm())


def test_moda_and_modplus_filters():
    assert passes_moda_filter(make_psm(Probability=0.2))
    assert not passes_moda_filter(make_psm(Probability=0.19))
    assert passes_modplus_filter(make_psm(Probability=0.05))
    assert not passes_modplus_filter(make_psm(Probability=0.049))


def test_msgfdb_keeps_everything():
    spec = get_format_spec(ResultFormat.MSGFDB)
    assert spec.filter_predicate(make_psm())
    assert spec.precomputed_score == "MSGFDB_SpecEValue"
    assert not spec.updates_protein_mods


@pytest.mark.parametrize("value, expected", [
    ("XT_Peptide_Hit", ResultFormat.XTANDEM),
    ("peptide_hit", ResultFormat.SEQUEST),
    ("MSG_Peptide_Hit", ResultFormat.MSGFDB),
    ("modplus", ResultFormat.MODPLUS),
])
def test_result_type_lookup(value, expected):
    assert ResultFormat.from_result_type(value) == expected


def test_unknown_result_type():
    with pytest.raises(ValueError, match="Unsupported result type"):
        ResultFormat.from_result_type("SQ_Peptide_Hit")


def test_file_names():
    spec = get_format_spec("XT_Peptide_Hit")
    assert spec.synopsis_file_name("DS") == "DS_xt_syn.txt"
    assert spec.first_hits_file_name("DS") == "DS_xt_fht.txt"
    assert spec.protein_mods_file_name("DS") == "DS_xt_ProteinMods.txt"
    assert get_format_spec(ResultFormat.SEQUEST).synopsis_file_name("DS") == "DS_syn.txt"
    assert get_format_spec(ResultFormat.MSGFDB).first_hits_file_name("DS") == "DS_msgfplus_fht.txt"
