"""
Runs MSGF over an input file that may be too large for one invocation.

The input is split into segments of at most `entries_per_segment` data lines (plus
a small overflow margin for the last one), each segment is scored by its own
invocation, and the per-segment results are concatenated. Inputs mixing CID/HCD and
ETD spectra can instead be scored one fragmentation mode at a time.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Callable
import logging
import shutil

from amplugins.core.errors import ProcessFailed
from amplugins.core.utils import add_file_name_suffix, count_lines, delete_file

OVERFLOW_MARGIN = 0.05
MIN_ENTRIES_PER_SEGMENT = 100
COLLISION_MODE_COLUMN = "Collision_Mode"

# Percent complete reported while MSGF runs
PROGRESS_PCT_MSGF_START = 10
PROGRESS_PCT_MSGF_COMPLETE = 95

# (input file, results file, etd mode) -> success
RunFunc = Callable[[Path, Path, bool], bool]


@dataclass(frozen=True)
class SegmentDescriptor:
    """One chunk of a split input file."""
    index: int
    path: Path
    entry_count: int


def should_segment(line_count: int, entries_per_segment: int) -> bool:
    """Small inputs and segment sizes of 1 or less run as one invocation."""
    if entries_per_segment <= 1:
        return False
    return line_count > entries_per_segment * OVERFLOW_MARGIN


def split_input_file(input_path: Path, line_count: int, entries_per_segment: int) -> list[SegmentDescriptor]:
    """
    Split `input_path` into segment files `<stem>_<n><ext>`, each starting with the
    header line. A new segment is only opened while more than 5% of a segment's
    worth of lines remain; otherwise the current segment keeps growing.
    """
    entries_per_segment = max(entries_per_segment, MIN_ENTRIES_PER_SEGMENT)
    segments: list[SegmentDescriptor] = []
    header = ""
    lines_read = 0
    written_all_segments = 0
    index = 0
    entries = 0
    writer = None
    seg_path: Path | None = None

    try:
        with open(input_path, "r", encoding="utf-8") as reader:
            for line in reader:
                line = line.rstrip("\r\n")
                if not line.strip():
                    continue
                lines_read += 1
                if lines_read == 1:
                    header = line

                if index == 0 or entries >= entries_per_segment:
                    remaining = line_count - written_all_segments
                    if index == 0 or remaining > entries_per_segment * OVERFLOW_MARGIN:
                        if writer is not None:
                            writer.close()
                            segments.append(SegmentDescriptor(index, seg_path, entries))
                        index += 1
                        entries = 0
                        seg_path = add_file_name_suffix(input_path, index)
                        writer = open(seg_path, "w", encoding="utf-8", newline="\n")
                        writer.write(header + "\n")

                if lines_read > 1:
                    writer.write(line + "\n")
                    entries += 1
                    written_all_segments += 1
    finally:
        if writer is not None:
            writer.close()

    if index > 0:
        segments.append(SegmentDescriptor(index, seg_path, entries))
    return segments


def combine_result_files(output_path: Path, result_files: list[Path]) -> None:
    """Concatenate result files, keeping only the first file's header."""
    with open(output_path, "w", encoding="utf-8", newline="\n") as out:
        for file_number, path in enumerate(result_files):
            with open(path, "r", encoding="utf-8") as f:
                for line_number, line in enumerate(f):
                    if line_number == 0 and file_number > 0:
                        continue
                    if not line.strip():
                        continue
                    out.write(line.rstrip("\r\n") + "\n")


def append_results(source: Path, target: Path) -> None:
    """Append a results file to another, skipping its header."""
    with open(source, "r", encoding="utf-8") as f, open(target, "a", encoding="utf-8", newline="\n") as out:
        for line_number, line in enumerate(f):
            if line_number == 0 or not line.strip():
                continue
            out.write(line.rstrip("\r\n") + "\n")


def split_by_collision_mode(input_path: Path) -> tuple[Path, int, Path, int]:
    """
    Write the ETD rows and all other rows of an input file to `<stem>_ETD` and
    `<stem>_CID`. Returns (cid path, cid lines, etd path, etd lines); line counts
    include the header.
    """
    cid_path = add_file_name_suffix(input_path, "CID")
    etd_path = add_file_name_suffix(input_path, "ETD")
    cid_lines = etd_lines = 0
    mode_index = None

    with open(input_path, "r", encoding="utf-8") as reader, \
            open(cid_path, "w", encoding="utf-8", newline="\n") as cid, \
            open(etd_path, "w", encoding="utf-8", newline="\n") as etd:
        for line in reader:
            line = line.rstrip("\r\n")
            if not line.strip():
                continue
            columns = line.split("\t")
            if mode_index is None:
                lookup = {c.strip().lower(): i for i, c in enumerate(columns)}
                mode_index = lookup.get(COLLISION_MODE_COLUMN.lower())
                if mode_index is None:
                    raise ProcessFailed(f"{input_path.name} does not have a {COLLISION_MODE_COLUMN} column")
                cid.write(line + "\n")
                etd.write(line + "\n")
                cid_lines = etd_lines = 1
                continue

            mode = columns[mode_index].strip() if mode_index < len(columns) else ""
            if mode.upper() == "ETD":
                etd.write(line + "\n")
                etd_lines += 1
            else:
                cid.write(line + "\n")
                cid_lines += 1

    return cid_path, cid_lines, etd_path, etd_lines


class SegmentedProcessDriver:
    """
    Drives `run_func` over the segments of an input file and tracks progress.

    `run_func(input_path, results_path, etd_mode)` performs one invocation of the
    external tool and returns True on success.
    """
    def __init__(self, run_func: RunFunc, keep_files: bool = False, logger: logging.Logger | None = None):
        self.run_func = run_func
        self.keep_files = keep_files
        self.logger = logger or logging.getLogger(__name__)
        self.etd_mode = False
        self.segments: list[SegmentDescriptor] = []
        # Progress bookkeeping
        self.total_line_count = 0
        self.lines_previous_segments = 0
        self.current_output: Path | None = None
        self.collision_mode_processing = False
        self.collision_mode_iteration = 0

    # --- Progress ---

    def progress_fraction(self) -> float:
        """Fraction of the input scored so far, judged by lines in the output files."""
        if self.total_line_count <= 0:
            return 0.0
        lines = count_lines(self.current_output) if self.current_output else 0
        fraction = (lines + self.lines_previous_segments) / self.total_line_count
        fraction = min(fraction, 1.0)
        if self.collision_mode_processing:
            fraction /= 2.0
            if self.collision_mode_iteration >= 2:
                fraction += 0.5
        return fraction

    def progress_percent(self) -> float:
        span = PROGRESS_PCT_MSGF_COMPLETE - PROGRESS_PCT_MSGF_START
        return PROGRESS_PCT_MSGF_START + span * self.progress_fraction()

    # --- Runs ---

    def _run_single(self, input_path: Path, results_path: Path) -> None:
        self.current_output = results_path
        if not self.run_func(input_path, results_path, self.etd_mode):
            raise ProcessFailed(f"Error running MSGF on {input_path.name}")

    def run(self, input_path: Path, line_count: int, entries_per_segment: int, results_path: Path) -> Path:
        """
        Score `input_path` into `results_path`, splitting it when it is large.
        Raises ProcessFailed as soon as one invocation fails.
        """
        self.total_line_count = line_count
        self.lines_previous_segments = 0

        if not should_segment(line_count, entries_per_segment):
            self.logger.debug("Not using MSGF segments (%s lines, %s entries per segment)",
                              line_count, entries_per_segment)
            self.segments = []
            self._run_single(input_path, results_path)
            return results_path

        # 1. Split
        self.segments = split_input_file(input_path, line_count, entries_per_segment)
        self.logger.info("Split %s into %s segment(s)", input_path.name, len(self.segments))

        # 2. Score each segment in turn
        result_files = []
        for segment in self.segments:
            segment_results = add_file_name_suffix(results_path, segment.index)
            self._run_single(segment.path, segment_results)
            result_files.append(segment_results)
            self.lines_previous_segments += segment.entry_count

        # 3. Combine, then clean up
        combine_result_files(results_path, result_files)
        if not self.keep_files:
            self.logger.debug("Deleting MSGF segment files")
            for segment in self.segments:
                delete_file(segment.path, self.logger)
            for path in result_files:
                delete_file(path, self.logger)
        return results_path

    def run_collision_modes(self, input_path: Path, entries_per_segment: int, results_path: Path) -> Path:
        """
        Score CID/HCD and ETD spectra in separate invocations when both are present.
        """
        cid_path, cid_lines, etd_path, etd_lines = split_by_collision_mode(input_path)
        both = cid_lines > 1 and etd_lines > 1

        if not both:
            if not self.keep_files:
                delete_file(cid_path, self.logger)
                delete_file(etd_path, self.logger)
            self.etd_mode = etd_lines > 1
            self.logger.info("Scoring all spectra as %s", "ETD" if self.etd_mode else "CID")
            return self.run(input_path, count_lines(input_path), entries_per_segment, results_path)

        self.logger.info("Input has %s CID and %s ETD rows; scoring each mode separately",
                         cid_lines - 1, etd_lines - 1)
        delete_file(results_path, self.logger)
        self.collision_mode_processing = True
        try:
            for iteration, (mode, mode_input, mode_lines) in enumerate(
                    (("CID", cid_path, cid_lines), ("ETD", etd_path, etd_lines)), start=1):
                self.collision_mode_iteration = iteration
                self.etd_mode = mode == "ETD"
                mode_results = add_file_name_suffix(results_path, mode)
                self.run(mode_input, mode_lines, entries_per_segment, mode_results)

                if not results_path.exists():
                    shutil.move(str(mode_results), str(results_path))
                else:
                    append_results(mode_results, results_path)
                    if not self.keep_files:
                        delete_file(mode_results, self.logger)
                if not self.keep_files:
                    delete_file(mode_input, self.logger)
        finally:
            self.collision_mode_processing = False
            self.etd_mode = False
        return results_path
