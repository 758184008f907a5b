"""
Post-processing of MSGF output.

MSGF echoes the input columns and appends SpecProb. The post-processor turns that
into the normalized results file (Result_ID, Scan, Charge, Protein, Peptide,
SpecProb, Notes), re-emits synopsis rows that were skipped as duplicates, writes
the first-hits results and pushes the scores into the protein modifications file.
"""
from dataclasses import dataclass
from pathlib import Path
import logging

from amplugins.core.errors import (
    ExcessiveMGFLookupFailures,
    ExcessivePrecursorMassErrors,
    ResultFileSwapFailed,
)
from amplugins.core.utils import is_number, replace_file, try_int
from amplugins.msgf.synthesizer import SynthesisSession
from amplugins.phrp.formats import DataSource

RESULTS_HEADER = ("Result_ID", "Scan", "Charge", "Protein", "Peptide", "SpecProb", "Notes")

# Default column order of MSGF output, used until the header line says otherwise
DEFAULT_COLUMNS = {
    "#spectrumfile": 0,
    "title": 1,
    "scan#": 2,
    "annotation": 3,
    "charge": 4,
    "protein_first": 5,
    "result_id": 6,
    "data_source": 7,
    "collision_mode": 8,
    "specprob": 9,
}

MAX_WARNINGS_TO_LOG = 5
MAX_FIRST_HITS_WARNINGS = 10
ERROR_RATE_THRESHOLD = 0.10
POST_PROCESS_SUFFIX = "_PostProcess"
PROTEIN_MODS_SCORE_COLUMN = "MSGF_SpecProb"


def format_spec_prob(value: float) -> str:
    """Six digits after the decimal point in scientific notation, e.g. 1.234560E-05."""
    return f"{value:.6E}"


def results_header_line() -> str:
    return "\t".join(RESULTS_HEADER) + "\n"


@dataclass
class PostProcessStats:
    """Tallies gathered while normalizing one MSGF results file."""
    lines_read: int = 0
    rows_written: int = 0
    invalid_scores: int = 0
    precursor_mass_errors: int = 0
    mgf_lookup_failures: int = 0
    first_hits_present: bool = False


class ResultPostProcessor:
    """Normalizes MSGF output using the state of the synthesis session."""

    def __init__(self, session: SynthesisSession, logger: logging.Logger | None = None):
        self.session = session
        self.logger = logger or logging.getLogger(__name__)
        self.stats = PostProcessStats()

    def reconcile(self, raw_results_path: Path) -> tuple[Path, bool]:
        """
        Rewrite `raw_results_path` in normalized form (in place).
        Returns the path and whether first-hits rows were present.
        """
        raw_results_path = Path(raw_results_path)
        normalized_path = raw_results_path.with_name(raw_results_path.stem + POST_PROCESS_SUFFIX + raw_results_path.suffix)
        self.stats = PostProcessStats()

        # 1. Normalize into a side file
        with open(raw_results_path, "r", encoding="utf-8", errors="replace") as reader, \
                open(normalized_path, "w", encoding="utf-8", newline="\n") as writer:
            writer.write(results_header_line())
            columns = dict(DEFAULT_COLUMNS)
            header_checked = False
            for line in reader:
                line = line.rstrip("\r\n")
                if not line:
                    continue
                fields = line.split("\t")
                if not header_checked:
                    header_checked = True
                    if fields[0].strip().lower() == "#spectrumfile":
                        columns = {name.strip().lower(): i for i, name in enumerate(fields)}
                        continue
                if len(fields) < 4:
                    continue
                self.stats.lines_read += 1
                self._process_row(fields, columns, writer)

        # 2. Swap the normalized file into place
        try:
            replace_file(normalized_path, raw_results_path)
        except OSError as e:
            raise ResultFileSwapFailed(
                f"Unable to replace {raw_results_path.name} with {normalized_path.name}: {e}"
            ) from e

        # 3. Data quality checks
        self._check_error_rates()
        return raw_results_path, self.stats.first_hits_present

    def _process_row(self, fields: list[str], columns: dict[str, int], writer) -> None:
        def get(name: str) -> str:
            idx = columns.get(name)
            if idx is None or idx >= len(fields):
                return ""
            return fields[idx].strip()

        original_peptide = get("title")
        peptide = get("annotation")
        scan = get("scan#")
        charge = get("charge")
        protein = get("protein_first")
        result_id = get("result_id")
        spec_prob = get("specprob")
        data_source = get("data_source")
        notes = ""

        # MGF spectrum index -> scan
        if self.session.mgf_map is not None:
            actual_scan = self.session.mgf_map.lookup_scan(try_int(scan, -1))
            if not actual_scan:
                self.stats.mgf_lookup_failures += 1
                if self.stats.mgf_lookup_failures <= MAX_WARNINGS_TO_LOG:
                    self.logger.warning("Unable to determine the scan number for MGF spectrum index %s", scan)
                actual_scan = 0
            scan = str(actual_scan)

        if is_number(spec_prob):
            if original_peptide != peptide:
                notes = peptide
            spec_prob = format_spec_prob(float(spec_prob))
        else:
            self.stats.invalid_scores += 1
            if self.stats.invalid_scores <= MAX_WARNINGS_TO_LOG:
                self.logger.warning("MSGF SpecProb is not numeric: %s (peptide %s, scan %s, Result_ID %s)",
                                    spec_prob, peptide, scan, result_id)
            if "precursor mass" in spec_prob.lower():
                self.stats.precursor_mass_errors += 1
            notes = f"{peptide}; {spec_prob}" if original_peptide != peptide else spec_prob
            spec_prob = "1"

        data = "\t".join((scan, charge, protein, original_peptide, spec_prob, notes))
        self.session.store_result(f"{scan}_{charge}_{original_peptide}", data)

        if data_source.upper() == DataSource.FIRST_HITS.value.upper():
            self.stats.first_hits_present = True
            return

        writer.write(f"{result_id}\t{data}\n")
        self.stats.rows_written += 1
        for skipped in self.session.skip_records.get(try_int(result_id, -1), []):
            writer.write("\t".join((str(skipped.result_id), scan, charge, skipped.protein,
                                    original_peptide, spec_prob, notes)) + "\n")
            self.stats.rows_written += 1

    def _check_error_rates(self) -> None:
        stats = self.stats
        if stats.invalid_scores > 1:
            self.logger.warning("MSGF SpecProb was not numeric for %s entries", stats.invalid_scores)

        if stats.mgf_lookup_failures > 0:
            self.logger.error("MGF index-to-scan lookup failed for %s entries", stats.mgf_lookup_failures)
            if stats.lines_read > 0 and stats.mgf_lookup_failures / stats.lines_read > ERROR_RATE_THRESHOLD:
                raise ExcessiveMGFLookupFailures(
                    f"MGF index-to-scan lookup failed for {stats.mgf_lookup_failures} of "
                    f"{stats.lines_read} entries"
                )

        if stats.precursor_mass_errors > 0 and stats.lines_read >= 2:
            rate = stats.precursor_mass_errors / stats.lines_read
            if rate > ERROR_RATE_THRESHOLD:
                raise ExcessivePrecursorMassErrors(
                    f"{rate:.1%} of the MSGF results have precursor mass errors "
                    f"({stats.precursor_mass_errors} of {stats.lines_read})"
                )
            self.logger.warning("%s MSGF results have precursor mass errors", stats.precursor_mass_errors)

    # --- First-hits results ---

    def write_first_hits_results(self) -> Path | None:
        """
        Write `<first hits stem>_MSGF.txt` from the cached scores of the first-hits
        records. Returns None when there is no first-hits file.
        """
        records = self.session.first_hits_records()
        if not records:
            return None

        output_path = self.session.first_hits_results_path
        missing = 0
        with open(output_path, "w", encoding="utf-8", newline="\n") as writer:
            writer.write(results_header_line())
            for psm in records:
                data = self.session.get_result(psm.result_code)
                if not data:
                    missing += 1
                    if missing <= MAX_FIRST_HITS_WARNINGS:
                        self.logger.warning("MSGF results not found for first-hits Result_ID %s (%s)",
                                            psm.result_id, psm.result_code)
                    continue
                writer.write(f"{psm.result_id}\t{data}\n")
        if missing > MAX_FIRST_HITS_WARNINGS:
            self.logger.warning("MSGF results were missing for %s first-hits entries", missing)
        return output_path


def update_protein_mods_file(
    protein_mods_path: Path,
    results_path: Path,
    logger: logging.Logger | None = None,
) -> bool:
    """
    Fill the MSGF_SpecProb column of a protein modifications file with the scores
    in `results_path`, matched by Result_ID. Returns False (after a warning) when the
    protein modifications file does not exist.
    """
    log = logger or logging.getLogger(__name__)
    protein_mods_path, results_path = Path(protein_mods_path), Path(results_path)
    if not protein_mods_path.exists():
        log.warning("Protein mods file not found: %s", protein_mods_path.name)
        return False

    # 1. Result_ID -> SpecProb
    scores: dict[int, str] = {}
    with open(results_path, "r", encoding="utf-8") as f:
        header = f.readline().split()
        lookup = {name.lower(): i for i, name in enumerate(header)}
        id_idx, score_idx = lookup.get("result_id", 0), lookup.get("specprob", 5)
        for line in f:
            fields = line.rstrip("\r\n").split("\t")
            if len(fields) <= max(id_idx, score_idx):
                continue
            scores[try_int(fields[id_idx], -1)] = fields[score_idx].strip()

    # 2. Rewrite the score column
    temp_path = protein_mods_path.with_suffix(protein_mods_path.suffix + ".tmp")
    updated = 0
    with open(protein_mods_path, "r", encoding="utf-8") as reader, \
            open(temp_path, "w", encoding="utf-8", newline="\n") as writer:
        # Whitespace-delimited; rewritten tab-delimited
        header = reader.readline().split()
        writer.write("\t".join(header) + "\n")
        lookup = {name.strip().lower(): i for i, name in enumerate(header)}
        score_idx = lookup.get(PROTEIN_MODS_SCORE_COLUMN.lower())
        id_idx = lookup.get("resultid", lookup.get("result_id", 0))
        if score_idx is None:
            log.warning("%s column not found in %s", PROTEIN_MODS_SCORE_COLUMN, protein_mods_path.name)
        for line in reader:
            fields = line.split()
            if not fields:
                continue
            if score_idx is not None and len(fields) > max(score_idx, id_idx):
                score = scores.get(try_int(fields[id_idx], -1))
                if score is not None and is_number(score):
                    fields[score_idx] = score
                    updated += 1
            writer.write("\t".join(fields) + "\n")

    replace_file(temp_path, protein_mods_path)
    log.info("Updated %s rows of %s", updated, protein_mods_path.name)
    return True
