"""
Exceptions raised by job steps.

Everything derives from StepError so the executor can tell a step failure with a
known cause apart from a programming error.
"""


class StepError(Exception):
    """Base class for failures of a job step."""


class MissingInputFile(StepError):
    """A required input file (synopsis, first-hits, parameter file, ...) is absent."""


class NoSpectraFound(StepError):
    """An MGF container held no spectra."""


class NoInputProduced(StepError):
    """Input synthesis finished without writing any rows."""


class ProcessFailed(StepError):
    """An external tool exited with an error or produced no usable output."""


class ExcessivePrecursorMassErrors(StepError):
    """Too many result rows carried a precursor mass mismatch diagnostic."""


class ExcessiveMGFLookupFailures(StepError):
    """Too many MGF spectrum indexes could not be mapped back to scan numbers."""


class ResultFileSwapFailed(StepError):
    """The normalized result file could not replace the raw tool output."""


class ReportingFailure(StepError):
    """A summary could not be stored. Callers normally downgrade this to a warning."""


class DuplicateKeyWarning(UserWarning):
    """Two rows of one synthesized input file share a result code."""
