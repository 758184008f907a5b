"""
Typed view of the job parameters used by the MSGF step.
"""
from pydantic import BaseModel, Field, field_validator

from amplugins.core.jobparams import JobParams
from amplugins.phrp.formats import ResultFormat

MSGF_SEGMENT_ENTRY_COUNT = 25000
DEFAULT_JAVA_MEMORY_MB = 2000
MIN_JAVA_MEMORY_MB = 512
# MSGFDB builds from this one on take -m 0 regardless of fragmentation mode
MSGFDB_MODE_AUTO_VERSION = 7097
# Step tool versions that run the standalone MSGF jar instead of MSGF inside MSGFDB
LEGACY_MSGF_VERSIONS = {"v2010-11-16", "v2011-09-02", "v6393", "v6432"}


class MSGFOptions(BaseModel):
    """
    Options for one MSGF run. Built from the manager's job parameters, whose names
    are given in `from_job_params`.
    """
    result_format: ResultFormat
    param_file_name: str = Field("", description="Search parameter file of the upstream job")
    entries_per_segment: int = Field(MSGF_SEGMENT_ENTRY_COUNT,
                                     description="Maximum input lines per MSGF invocation")
    java_memory_mb: int = Field(DEFAULT_JAVA_MEMORY_MB, description="JVM heap size in MB")
    keep_input_files: bool = Field(False, description="Keep MSGF input and segment files")
    ignore_filters: bool = Field(False, description="Score every synopsis row, ignoring filters")
    mgf_instrument_data: bool = Field(False, description="Spectra are packaged as one MGF file")
    msgf_version: str = Field("", description="Step tool version, e.g. v7097; empty for the production MSGFDB")
    use_precomputed_scores: bool = Field(True,
                                         description="Use MODa/MODPlus probabilities instead of running MSGF")
    post_results_to_db: bool = Field(True, description="Store PSM statistics in the database")
    save_stats_file: bool = Field(True, description="Write the _PSM_Stats.txt file")
    fail_on_reporting_error: bool = Field(False,
                                          description="Fail the step if statistics cannot be stored")

    @field_validator('result_format', mode='before')
    @classmethod
    def parse_result_format(cls, value):
        """Accept ResultType strings such as 'XT_Peptide_Hit'."""
        if isinstance(value, str):
            return ResultFormat.from_result_type(value)
        return value

    @field_validator('java_memory_mb')
    @classmethod
    def enforce_min_memory(cls, value: int) -> int:
        """The JVM gets at least 512 MB."""
        return max(value, MIN_JAVA_MEMORY_MB)

    @property
    def uses_msgfdb(self) -> bool:
        """MSGF is run through the MSGFDB jar unless a legacy MSGF version is requested."""
        return self.msgf_version.strip().lower() not in LEGACY_MSGF_VERSIONS

    @property
    def msgfdb_build(self) -> int:
        """Build number from a 'vNNNN' version; unknown versions count as the newest."""
        version = self.msgf_version.strip()
        if version.lower().startswith("v") and version[1:].isdigit():
            return int(version[1:])
        return 2 ** 31 - 1

    @property
    def uses_precomputed(self) -> bool:
        """Whether scores come straight from the search results instead of MSGF."""
        if self.result_format == ResultFormat.MSGFDB:
            return self.uses_msgfdb
        if self.result_format in (ResultFormat.MODA, ResultFormat.MODPLUS):
            return self.use_precomputed_scores
        return False

    @classmethod
    def from_job_params(cls, params: JobParams) -> "MSGFOptions":
        """Read options from the job parameter names the manager uses."""
        return cls(
            result_format=params.get_param("ResultType", ""),
            param_file_name=params.get_param("ParamFileName", ""),
            entries_per_segment=params.get_param("MSGFEntriesPerSegment", MSGF_SEGMENT_ENTRY_COUNT),
            java_memory_mb=params.get_param("MSGFJavaMemorySize", DEFAULT_JAVA_MEMORY_MB),
            keep_input_files=params.get_param("KeepMSGFInputFile", False),
            ignore_filters=params.get_param("MSGFIgnoreFilters", False),
            mgf_instrument_data=params.get_param("MGFInstrumentData", False),
            msgf_version=params.get_param("MSGF_Version", ""),
            use_precomputed_scores=params.get_param("UsePrecomputedProbabilities", True),
            post_results_to_db=params.get_param("PostJobPSMResultsToDB", True),
            save_stats_file=params.get_param("SaveMSGFStatsFile", True),
            fail_on_reporting_error=params.get_param("FailOnReportingError", False),
        )
