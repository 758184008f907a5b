"""
Tab-delimited peptide-hit result reader.

Synopsis and first-hits files have one PSM per row. The identifying columns go by
several names depending on the search tool that produced the file; every other
column is kept as a named score.
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator
import csv
import logging

import pandas as pd

from amplugins.core.errors import MissingInputFile
from amplugins.core.utils import try_int
from amplugins.phrp.formats import DataSource

logger = logging.getLogger(__name__)

# Known column names for the identifying fields, checked in order (case-insensitive)
COLUMN_ALIASES: dict[str, tuple[str, ...]] = {
    "result_id": ("Result_ID", "ResultID", "HitNum"),
    "scan": ("Scan", "ScanNum", "Scan#"),
    "charge": ("Charge", "ChargeState"),
    "peptide": ("Peptide", "Peptide_Sequence"),
    "protein": ("Protein", "Reference", "Protein_Name", "Protein_First"),
    "annotated_peptide": ("PeptideWithNumericMods", "Peptide_With_Mods"),
    "collision_mode": ("Collision_Mode", "CollisionMode", "FragMethod"),
}
REQUIRED_FIELDS = ("scan", "charge", "peptide")

DEFAULT_CHUNK_SIZE = 50000


@dataclass(frozen=True)
class PSMRecord:
    """One peptide-spectrum match. Score names are stored lower-cased."""
    result_id: int
    scan: int
    charge: int
    peptide: str
    protein: str = ""
    data_source: DataSource = DataSource.SYNOPSIS
    annotated_peptide: str = ""
    collision_mode: str = ""
    scores: dict[str, str] = field(default_factory=dict, compare=False)

    @property
    def result_code(self) -> str:
        """Key joining synthesized input rows with tool output: scan_charge_peptide."""
        return f"{self.scan}_{self.charge}_{self.peptide}"

    @property
    def peptide_with_mods(self) -> str:
        return self.annotated_peptide or self.peptide

    def get_text(self, name: str, default: str = "") -> str:
        return self.scores.get(name.lower(), default)

    def get_score(self, name: str, default: float = 0.0) -> float:
        """Numeric score by name; default when missing or not numeric."""
        value = self.scores.get(name.lower())
        if value is None or value == "":
            return default
        try:
            return float(value)
        except ValueError:
            return default

    def get_int(self, name: str, default: int = 0) -> int:
        value = self.scores.get(name.lower())
        if value is None or value == "":
            return default
        return try_int(value, default)


def resolve_columns(header: list[str]) -> dict[str, int]:
    """Map identifying fields to column positions using COLUMN_ALIASES."""
    lookup = {name.strip().lower(): i for i, name in enumerate(header)}
    positions = {}
    for key, aliases in COLUMN_ALIASES.items():
        for alias in aliases:
            if alias.lower() in lookup:
                positions[key] = lookup[alias.lower()]
                break
    return positions


class ResultRecordReader:
    """
    Lazily yields PSMRecords from a synopsis or first-hits file. Each iteration
    re-opens the file, so the reader can be walked more than once.
    """
    def __init__(
        self,
        path: Path | str,
        data_source: DataSource = DataSource.SYNOPSIS,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self.path = Path(path)
        self.data_source = data_source
        self.chunk_size = chunk_size
        if not self.path.exists():
            raise MissingInputFile(f"Result file not found: {self.path}")

    def __iter__(self) -> Iterator[PSMRecord]:
        chunks = pd.read_csv(
            self.path,
            sep="\t",
            dtype=str,
            na_filter=False,
            quoting=csv.QUOTE_NONE,
            chunksize=self.chunk_size,
        )
        positions = None
        row_number = 0
        for chunk in chunks:
            header = [str(c) for c in chunk.columns]
            if positions is None:
                positions = resolve_columns(header)
                missing = [f for f in REQUIRED_FIELDS if f not in positions]
                if missing:
                    raise ValueError(
                        f"{self.path.name} is missing required column(s): {', '.join(missing)}"
                    )
                score_names = [h.strip().lower() for h in header]

            for row in chunk.itertuples(index=False, name=None):
                row_number += 1
                yield self._to_record(row, positions, score_names, row_number)

    def _to_record(self, row: tuple, positions: dict[str, int], score_names: list[str],
                   row_number: int) -> PSMRecord:
        def value(key: str) -> str:
            idx = positions.get(key)
            return "" if idx is None else str(row[idx]).strip()

        result_id = try_int(value("result_id"), row_number) if "result_id" in positions else row_number
        return PSMRecord(
            result_id=result_id,
            scan=try_int(value("scan")),
            charge=try_int(value("charge")),
            peptide=value("peptide"),
            protein=value("protein"),
            data_source=self.data_source,
            annotated_peptide=value("annotated_peptide"),
            collision_mode=value("collision_mode"),
            scores={name: str(v) for name, v in zip(score_names, row)},
        )
