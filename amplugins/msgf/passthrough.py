"""
MSGF results for search tools that already report a spectral probability.

MS-GF+ (SpecEValue) and MODa/MODPlus (Probability) results do not need the MSGF
re-scorer: the normalized results file is rendered straight from the synopsis and
first-hits files.
"""
from pathlib import Path
import logging

from amplugins.core.errors import MissingInputFile
from amplugins.msgf.postprocess import results_header_line
from amplugins.msgf.synthesizer import msgf_results_path
from amplugins.phrp.formats import DataSource, FormatSpec, ResultFormat
from amplugins.phrp.reader import PSMRecord, ResultRecordReader

# Older MSGFDB jobs name their files _msgfdb_syn.txt instead of _msgfplus_syn.txt
LEGACY_MSGFDB_TAG = "_msgfdb"
MSGFDB_SPEC_PROB_COLUMN = "MSGFDB_SpecProb"


def resolve_source_path(work_dir: Path, dataset: str, spec: FormatSpec, source: DataSource) -> Path:
    """Synopsis or first-hits file for a format, allowing the legacy MSGFDB name."""
    if source == DataSource.SYNOPSIS:
        path = work_dir / spec.synopsis_file_name(dataset)
    else:
        path = work_dir / spec.first_hits_file_name(dataset)
    if path.exists():
        return path
    if spec.result_format == ResultFormat.MSGFDB:
        alternate = path.with_name(path.name.replace("_msgfplus", LEGACY_MSGFDB_TAG, 1))
        if alternate.exists():
            return alternate
    raise MissingInputFile(f"Input file not found: {path.name}")


def precomputed_score(psm: PSMRecord, spec: FormatSpec) -> str:
    """Score text for the SpecProb column."""
    if spec.result_format in (ResultFormat.MODA, ResultFormat.MODPLUS):
        probability = psm.get_score(spec.precomputed_score, 0.0)
        return f"{1 - probability:.4f}"
    value = psm.get_text(spec.precomputed_score)
    if not value:
        value = psm.get_text(MSGFDB_SPEC_PROB_COLUMN)
    return value


def render_precomputed_results(source_path: Path, spec: FormatSpec, source: DataSource,
                               logger: logging.Logger | None = None) -> Path:
    """Write `<source stem>_MSGF.txt` using the scores already in `source_path`."""
    log = logger or logging.getLogger(__name__)
    output_path = msgf_results_path(source_path)
    rows = 0
    with open(output_path, "w", encoding="utf-8", newline="\n") as writer:
        writer.write(results_header_line())
        for psm in ResultRecordReader(source_path, source):
            writer.write("\t".join((
                str(psm.result_id), str(psm.scan), str(psm.charge), psm.protein,
                psm.peptide, precomputed_score(psm, spec), "",
            )) + "\n")
            rows += 1
    log.info("Wrote %s precomputed results to %s", rows, output_path.name)
    return output_path
