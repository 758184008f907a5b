"""
Builds the MSGF input file from upstream synopsis and first-hits files.

One SynthesisSession covers one job. Besides writing the input file, it keeps the
state the post-processor needs later: the result codes that were sent to MSGF
(with the scored data once known), the skipped duplicates to re-emit, and the
MGF index map.
"""
from dataclasses import dataclass
from pathlib import Path
import logging
import warnings

from amplugins.core.errors import DuplicateKeyWarning, MissingInputFile, NoInputProduced
from amplugins.phrp.formats import DataSource, FormatSpec
from amplugins.phrp.mgf import MGFIndexMap
from amplugins.phrp.reader import PSMRecord, ResultRecordReader

INPUT_FILE_SUFFIX = "_MSGF_input.txt"
RESULTS_FILE_SUFFIX = "_MSGF.txt"

INPUT_HEADER = (
    "#SpectrumFile", "Title", "Scan#", "Annotation", "Charge",
    "Protein_First", "Result_ID", "Data_Source", "Collision_Mode",
)

MAX_LOOKUP_WARNINGS = 10


@dataclass(frozen=True)
class SkipRecord:
    """A synopsis row left out of the MSGF input as a duplicate of a kept row."""
    result_id: int
    protein: str


def msgf_input_path(synopsis_path: Path) -> Path:
    return synopsis_path.with_name(synopsis_path.stem + INPUT_FILE_SUFFIX)


def msgf_results_path(source_path: Path) -> Path:
    """MSGF results file for a synopsis or first-hits file."""
    return source_path.with_name(source_path.stem + RESULTS_FILE_SUFFIX)


class SynthesisSession:
    """
    Input synthesis for one job, plus the caches shared with post-processing.
    """
    def __init__(
        self,
        dataset: str,
        work_dir: Path,
        format_spec: FormatSpec,
        mgf_map: MGFIndexMap | None = None,
        ignore_filters: bool = False,
        logger: logging.Logger | None = None,
    ):
        self.dataset = dataset
        self.work_dir = Path(work_dir)
        self.format_spec = format_spec
        self.mgf_map = mgf_map
        self.ignore_filters = ignore_filters
        self.logger = logger or logging.getLogger(__name__)

        self.synopsis_path = self.work_dir / format_spec.synopsis_file_name(dataset)
        self.first_hits_path = self.work_dir / format_spec.first_hits_file_name(dataset)
        self.input_path = msgf_input_path(self.synopsis_path)
        self.line_count = 0

        # result code -> tab-delimited scored data ("" until post-processed)
        self.cached_results: dict[str, str] = {}
        # kept result id -> duplicates skipped in its favour
        self.skip_records: dict[int, list[SkipRecord]] = {}
        self.mgf_lookup_failures = 0

    @property
    def mgf_mode(self) -> bool:
        return self.mgf_map is not None

    @property
    def spectrum_file_name(self) -> str:
        return f"{self.dataset}.mgf" if self.mgf_mode else f"{self.dataset}.mzXML"

    @property
    def synopsis_results_path(self) -> Path:
        return msgf_results_path(self.synopsis_path)

    @property
    def first_hits_results_path(self) -> Path:
        return msgf_results_path(self.first_hits_path)

    # --- Cached results ---

    def store_result(self, result_code: str, data: str) -> None:
        """Cache scored data for a result code; a repeated code keeps the later data."""
        previous = self.cached_results.get(result_code)
        if previous:
            message = f"Duplicate result code {result_code}; keeping the later value"
            self.logger.warning(message)
            warnings.warn(message, DuplicateKeyWarning, stacklevel=2)
        self.cached_results[result_code] = data

    def get_result(self, result_code: str) -> str | None:
        return self.cached_results.get(result_code)

    # --- Synthesis ---

    def synthesize(self) -> tuple[Path, int]:
        """
        Write the MSGF input file. Returns its path and line count (header included).
        """
        have_synopsis = self.synopsis_path.exists()
        have_first_hits = self.first_hits_path.exists()
        if not have_synopsis and not have_first_hits:
            raise MissingInputFile("Neither the _syn.txt nor the _fht.txt file was found")

        self.cached_results.clear()
        self.skip_records.clear()
        self.mgf_lookup_failures = 0

        passes = []
        if have_synopsis:
            passes.append((self.synopsis_path, DataSource.SYNOPSIS))
        if have_first_hits:
            passes.append((self.first_hits_path, DataSource.FIRST_HITS))

        succeeded = 0
        last_error: Exception | None = None
        with open(self.input_path, "w", encoding="utf-8", newline="\n") as out:
            out.write("\t".join(INPUT_HEADER) + "\n")
            self.line_count = 1
            for path, source in passes:
                try:
                    if source == DataSource.SYNOPSIS:
                        written = self._write_synopsis_rows(out, path)
                    else:
                        written = self._write_first_hits_rows(out, path)
                except (ValueError, OSError) as e:
                    last_error = e
                    self.logger.error("Error reading %s: %s", path.name, e)
                    continue
                self.line_count += written
                succeeded += 1
                self.logger.info("Wrote %s %s rows to %s", written, source.value, self.input_path.name)

        if not succeeded:
            raise NoInputProduced(f"Unable to create {self.input_path.name}: {last_error}")

        if self.mgf_lookup_failures > MAX_LOOKUP_WARNINGS:
            self.logger.warning("%s PSMs could not be mapped to an MGF spectrum index",
                                self.mgf_lookup_failures)
        return self.input_path, self.line_count

    def _write_synopsis_rows(self, out, path: Path) -> int:
        """Filter, de-duplicate and write synopsis rows."""
        kept_ids: dict[str, int] = {}
        predicate = self.format_spec.filter_predicate
        written = 0
        for psm in ResultRecordReader(path, DataSource.SYNOPSIS):
            if not self.ignore_filters and not predicate(psm):
                continue
            code = psm.result_code
            kept_id = kept_ids.get(code)
            if kept_id is not None:
                self.skip_records.setdefault(kept_id, []).append(SkipRecord(psm.result_id, psm.protein))
                continue
            kept_ids[code] = psm.result_id
            self.cached_results[code] = ""
            out.write(self._format_line(psm, DataSource.SYNOPSIS))
            written += 1
        return written

    def _write_first_hits_rows(self, out, path: Path) -> int:
        """Write first-hits rows not already sent from the synopsis file (no filtering)."""
        written = 0
        for psm in ResultRecordReader(path, DataSource.FIRST_HITS):
            code = psm.result_code
            if code in self.cached_results:
                continue
            self.cached_results[code] = ""
            out.write(self._format_line(psm, DataSource.FIRST_HITS))
            written += 1
        return written

    def _format_line(self, psm: PSMRecord, source: DataSource) -> str:
        scan_value = psm.scan
        if self.mgf_map is not None:
            scan_value = self._lookup_mgf_index(psm)
        fields = (
            self.spectrum_file_name,
            psm.peptide,
            str(scan_value),
            psm.peptide_with_mods,
            str(psm.charge),
            psm.protein,
            str(psm.result_id),
            source.value,
            psm.collision_mode,
        )
        return "\t".join(fields) + "\n"

    def _lookup_mgf_index(self, psm: PSMRecord) -> int:
        index = self.mgf_map.lookup_index(psm.scan, psm.charge)
        if index is not None:
            return index
        self.mgf_lookup_failures += 1
        if self.mgf_lookup_failures <= MAX_LOOKUP_WARNINGS:
            self.logger.warning("Unable to find scan %s, charge %s in the MGF index map",
                                psm.scan, psm.charge)
        return 0

    # --- First-hits results ---

    def first_hits_records(self) -> list[PSMRecord]:
        """Re-read the first-hits file, in file order."""
        if not self.first_hits_path.exists():
            return []
        return list(ResultRecordReader(self.first_hits_path, DataSource.FIRST_HITS))
