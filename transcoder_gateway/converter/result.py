from typing import Optional

from transcoder_gateway.const import OutputFormat
from transcoder_gateway.converter.errors import ConversionError
from transcoder_gateway.converter.models import ConversionFailure, ConversionResult, ProcessOutcome


def build_result(outcome: ProcessOutcome, output_format: OutputFormat, duration: Optional[int] = None) -> ConversionResult:
    """Package a successful process outcome. The outcome must already have passed ``raise_for_status``."""
    return ConversionResult(output_bytes=outcome.stdout_bytes, output_format=output_format, duration_seconds=duration)


def to_failure(error: ConversionError) -> ConversionFailure:
    return ConversionFailure(
        stage=error.stage,
        detail=error.detail,
        diagnostics=error.diagnostics,
        status_code=error.status_code,
    )
