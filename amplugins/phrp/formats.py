"""
Upstream search-result formats and the per-format rules applied to them.

Each ResultFormat has one FormatSpec in FORMAT_SPECS describing its file names and
the filter a synopsis record must pass before it is scored.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Callable, TYPE_CHECKING

if TYPE_CHECKING:
    from amplugins.phrp.reader import PSMRecord


class ResultFormat(str, Enum):
    """Result types as named by the manager's ResultType job parameter."""
    SEQUEST = "Peptide_Hit"
    XTANDEM = "XT_Peptide_Hit"
    INSPECT = "IN_Peptide_Hit"
    MODA = "MODa_Peptide_Hit"
    MODPLUS = "MODPlus_Peptide_Hit"
    MSGFDB = "MSG_Peptide_Hit"

    @classmethod
    def from_result_type(cls, value: str) -> "ResultFormat":
        """Resolve a ResultType value or a format name (case-insensitive)."""
        text = (value or "").strip().lower()
        for member in cls:
            if text in (member.value.lower(), member.name.lower()):
                return member
        raise ValueError(f"Unsupported result type: '{value}'")


class DataSource(str, Enum):
    """Which upstream file a record came from. The value is the tag written to files."""
    SYNOPSIS = "Syn"
    FIRST_HITS = "FHT"


# --- Filter predicates ---

SEQUEST_MAX_DELCN = 0.25

def is_tryptic_or_terminal(psm: "PSMRecord") -> bool:
    """Fully tryptic (two tryptic ends) or at a protein terminus."""
    if psm.get_int("NumTrypticEnds", psm.get_int("NTT", 0)) >= 2:
        return True
    return psm.peptide.startswith("-.") or psm.peptide.endswith(".-")


def passes_sequest_filter(psm: "PSMRecord") -> bool:
    """DelCn <= 0.25 plus a charge-dependent XCorr threshold."""
    if psm.get_score("DelCn", 0.0) > SEQUEST_MAX_DELCN:
        return False
    xcorr = psm.get_score("XCorr", 0.0)
    if is_tryptic_or_terminal(psm):
        return xcorr >= (1.5 if psm.charge <= 2 else 2.2)
    if psm.charge <= 1:
        return xcorr >= 1.5
    if psm.charge == 2:
        return xcorr >= 2.0
    return xcorr >= 2.5


def passes_xtandem_filter(psm: "PSMRecord") -> bool:
    """log10(E-value) <= -0.3; the synopsis column already holds the log."""
    return psm.get_score("Peptide_Expectation_Value_Log(e)", 0.0) <= -0.3


def passes_inspect_filter(psm: "PSMRecord") -> bool:
    return (psm.get_score("PValue", 1.0) <= 0.2
            or psm.get_score("TotalPRMScore", 0.0) >= 50
            or psm.get_score("FScore", -1.0) >= 0)


def passes_moda_filter(psm: "PSMRecord") -> bool:
    return psm.get_score("Probability", 0.0) >= 0.2


def passes_modplus_filter(psm: "PSMRecord") -> bool:
    return psm.get_score("Probability", 0.0) >= 0.05


def passes_all(psm: "PSMRecord") -> bool:  # pylint: disable=unused-argument
    """Scores were already computed upstream; everything is kept."""
    return True


@dataclass(frozen=True)
class FormatSpec:
    """
    File naming and filtering for one result format.

    Attributes:
        result_format: The ResultFormat described.
        synopsis_suffix: Appended to the dataset name to get the synopsis file.
        first_hits_suffix: Appended to the dataset name to get the first-hits file.
        mods_tag: Tool tag used in the protein modifications file name.
        filter_predicate: Acceptance rule for synopsis records.
        precomputed_score: Score column holding a ready-made spectral probability,
            for formats whose results can bypass the external scorer.
        updates_protein_mods: Whether the protein modifications file gets the scores.
    """
    result_format: ResultFormat
    synopsis_suffix: str
    first_hits_suffix: str
    mods_tag: str
    filter_predicate: Callable[["PSMRecord"], bool]
    precomputed_score: str = ""
    updates_protein_mods: bool = True

    def synopsis_file_name(self, dataset: str) -> str:
        return f"{dataset}{self.synopsis_suffix}"

    def first_hits_file_name(self, dataset: str) -> str:
        return f"{dataset}{self.first_hits_suffix}"

    def protein_mods_file_name(self, dataset: str) -> str:
        return f"{dataset}{self.mods_tag}_ProteinMods.txt"


FORMAT_SPECS: dict[ResultFormat, FormatSpec] = {
    ResultFormat.SEQUEST: FormatSpec(
        ResultFormat.SEQUEST, "_syn.txt", "_fht.txt", "_syn", passes_sequest_filter),
    ResultFormat.XTANDEM: FormatSpec(
        ResultFormat.XTANDEM, "_xt_syn.txt", "_xt_fht.txt", "_xt", passes_xtandem_filter),
    ResultFormat.INSPECT: FormatSpec(
        ResultFormat.INSPECT, "_inspect_syn.txt", "_inspect_fht.txt", "_inspect_syn",
        passes_inspect_filter),
    ResultFormat.MODA: FormatSpec(
        ResultFormat.MODA, "_moda_syn.txt", "_moda_fht.txt", "_moda_syn", passes_moda_filter,
        precomputed_score="Probability"),
    ResultFormat.MODPLUS: FormatSpec(
        ResultFormat.MODPLUS, "_modp_syn.txt", "_modp_fht.txt", "_modp_syn", passes_modplus_filter,
        precomputed_score="Probability"),
    ResultFormat.MSGFDB: FormatSpec(
        ResultFormat.MSGFDB, "_msgfplus_syn.txt", "_msgfplus_fht.txt", "_msgfplus_syn", passes_all,
        precomputed_score="MSGFDB_SpecEValue", updates_protein_mods=False),
}


def get_format_spec(result_format: ResultFormat | str) -> FormatSpec:
    """Look up the FormatSpec for a format or a ResultType string."""
    if not isinstance(result_format, ResultFormat):
        result_format = ResultFormat.from_result_type(result_format)
    return FORMAT_SPECS[result_format]
