from enum import Enum
from typing import Optional


class FailureStage(str, Enum):
    ACQUISITION = "acquisition"
    DISPATCH = "dispatch"
    PROCESS = "process"
    DURATION_PARSE = "duration_parse"


class ConversionError(Exception):
    """Base exception for every classified conversion failure."""

    stage = FailureStage.PROCESS
    status_code = 500

    def __init__(self, detail: str, diagnostics: Optional[str] = None):
        self.detail = detail
        self.diagnostics = diagnostics
        super().__init__(detail)


class InputAcquisitionError(ConversionError):
    """No usable input, undecodable base64, failed fetch or empty payload."""

    stage = FailureStage.ACQUISITION
    status_code = 400

    def __init__(self, detail: str, status_code: Optional[int] = None):
        super().__init__(detail)
        if status_code is not None:
            self.status_code = status_code


class UnsupportedFormatError(ConversionError):
    stage = FailureStage.DISPATCH
    status_code = 400


class ProcessExecutionError(ConversionError):
    """The transcoder could not be started, exited non-zero or produced no output."""

    stage = FailureStage.PROCESS


class ProcessTimeoutError(ProcessExecutionError):
    status_code = 504


class FilesystemError(ConversionError):
    stage = FailureStage.PROCESS


class MetadataExtractionError(ConversionError):
    stage = FailureStage.DURATION_PARSE
