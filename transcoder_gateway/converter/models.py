from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from transcoder_gateway.const import INPUT_PLACEHOLDER, OUTPUT_PLACEHOLDER, IOMode, OutputFormat
from transcoder_gateway.converter.errors import FailureStage, ProcessExecutionError


@dataclass(frozen=True)
class ConversionRequest:
    raw_bytes: bytes
    input_format: str
    output_format: OutputFormat


@dataclass(frozen=True)
class ExecutionPlan:
    """Resolved transcoder arguments and I/O strategy for one conversion."""

    args: tuple[str, ...]
    io_mode: IOMode
    output_format: OutputFormat

    def bind(self, input_path: Path, output_path: Path) -> list[str]:
        """Substitute the artifact placeholders of a temp-file plan with real paths."""
        substitutions = {INPUT_PLACEHOLDER: str(input_path), OUTPUT_PLACEHOLDER: str(output_path)}
        return [substitutions.get(arg, arg) for arg in self.args]


@dataclass
class ProcessOutcome:
    stdout_bytes: bytes
    diagnostic_text: str
    exit_succeeded: bool
    return_code: Optional[int] = None

    def raise_for_status(self) -> None:
        """
        Raise a ProcessExecutionError when the transcoder failed.

        A zero exit with no output is treated as a failure as well.
        """
        if not self.exit_succeeded:
            raise ProcessExecutionError(
                f"Transcoder exited with status {self.return_code}", diagnostics=self.diagnostic_text
            )
        if not self.stdout_bytes:
            raise ProcessExecutionError("Transcoder produced no output", diagnostics=self.diagnostic_text)


class ArtifactRole(str, Enum):
    INPUT = "input"
    OUTPUT = "output"


@dataclass(frozen=True)
class TemporaryArtifact:
    path: Path
    role: ArtifactRole


@dataclass(frozen=True)
class ConversionResult:
    output_bytes: bytes
    output_format: OutputFormat
    duration_seconds: Optional[int] = None

    def __post_init__(self):
        if not self.output_bytes:
            raise ValueError("ConversionResult requires non-empty output")


@dataclass(frozen=True)
class ConversionFailure:
    stage: FailureStage
    detail: str
    diagnostics: Optional[str] = None
    status_code: int = 500
