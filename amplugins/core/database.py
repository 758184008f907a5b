"""
Database boundary: stored-procedure calls used to persist summary statistics.

Only the calling convention lives here. What the procedures do with the values
is the database's business.
"""
from contextlib import contextmanager
from functools import lru_cache
from typing import Any, Iterator
import logging
import re
import time
import xml.etree.ElementTree as ET

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session, sessionmaker

from amplugins.core.errors import ReportingFailure
from amplugins.core.utils import try_int

DEFAULT_RETRY_COUNT = 3
DEFAULT_RETRY_DELAY = 5.0

_PROCEDURE_NAME = re.compile(r"^[A-Za-z_][\w.]*$")
_RETURN_CODE_COLUMNS = ("_returncode", "return_code", "returncode")

logger = logging.getLogger(__name__)


@lru_cache(maxsize=None)
def _get_engine(connection_string: str) -> Engine:
    return create_engine(connection_string, pool_pre_ping=True)


@contextmanager
def get_session(connection_string: str) -> Iterator[Session]:
    """Context-managed SQLAlchemy session."""
    engine = _get_engine(connection_string)
    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


class StoredProcedureRunner:
    """
    Calls stored procedures with named parameters, retrying on database errors.
    A procedure reports failure through a non-zero return code.
    """
    def __init__(
        self,
        connection_string: str,
        retry_count: int = DEFAULT_RETRY_COUNT,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        log: logging.Logger | None = None,
    ):
        self.connection_string = connection_string
        self.retry_count = max(1, retry_count)
        self.retry_delay = retry_delay
        self.logger = log or logger

    def _execute(self, procedure: str, params: dict[str, Any]) -> int:
        placeholders = ", ".join(f":{name}" for name in params)
        statement = text(f"CALL {procedure}({placeholders})")
        with get_session(self.connection_string) as session:
            result = session.execute(statement, params)
            if not result.returns_rows:
                return 0
            row = result.mappings().first()
            if row is None:
                return 0
            for key, value in row.items():
                if key.lower() in _RETURN_CODE_COLUMNS:
                    return try_int(value)
            return 0

    def call(self, procedure: str, params: dict[str, Any]) -> int:
        """
        Call `procedure` and return its return code.
        Raises ReportingFailure once every attempt failed with a database error.
        """
        if not _PROCEDURE_NAME.match(procedure):
            raise ValueError(f"Invalid stored procedure name: {procedure}")

        last_error: Exception | None = None
        for attempt in range(1, self.retry_count + 1):
            try:
                return self._execute(procedure, params)
            except DBAPIError as e:
                last_error = e
                self.logger.warning("Error calling %s (attempt %s of %s): %s",
                                    procedure, attempt, self.retry_count, e)
                if attempt < self.retry_count:
                    time.sleep(self.retry_delay)

        raise ReportingFailure(
            f"Stored procedure {procedure} failed after {self.retry_count} attempts: {last_error}"
        )


def build_measurements_xml(root_tag: str, dataset: str, job: int, measurements: dict[str, Any]) -> str:
    """
    Render the XML payload the statistics procedures accept:
    <root><Dataset/><PSM_Source_Job/><Measurements><Measurement Name="...">v</Measurement>...
    """
    root = ET.Element(root_tag)
    ET.SubElement(root, "Dataset").text = dataset
    ET.SubElement(root, "PSM_Source_Job").text = str(job)
    container = ET.SubElement(root, "Measurements")
    for name, value in measurements.items():
        ET.SubElement(container, "Measurement", Name=name).text = "" if value is None else str(value)
    return ET.tostring(root, encoding="unicode")
