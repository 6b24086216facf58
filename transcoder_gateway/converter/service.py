import logging
from typing import Optional, Protocol

from transcoder_gateway.converter.dispatcher import dispatch
from transcoder_gateway.converter.duration import extract_duration
from transcoder_gateway.converter.errors import ConversionError, MetadataExtractionError
from transcoder_gateway.converter.models import (
    ConversionFailure,
    ConversionRequest,
    ConversionResult,
    ExecutionPlan,
    ProcessOutcome,
)
from transcoder_gateway.converter.result import build_result, to_failure

logger = logging.getLogger(__name__)


class Runner(Protocol):
    async def run(self, plan: ExecutionPlan, payload: bytes, input_format: str = "bin") -> ProcessOutcome:
        ...


class ConversionService:
    """
    Orchestrates a single conversion: plan, run the transcoder once, read the
    duration for audio output and package the result.

    Args:
        runner: Executes the transcoder for a plan.
        strict_duration: Fail audio conversions whose duration cannot be read.
            By default the output is returned without a duration.
    """

    def __init__(self, runner: Runner, strict_duration: bool = False):
        self.runner = runner
        self.strict_duration = strict_duration

    async def convert(self, request: ConversionRequest) -> ConversionResult:
        """
        Raises:
            ConversionError: A classified failure from any stage.
        """
        plan = dispatch(request)
        logger.info(
            f"Converting {len(request.raw_bytes)} bytes {request.input_format} -> "
            f"{plan.output_format.value} ({plan.io_mode.value})"
        )

        outcome = await self.runner.run(plan, request.raw_bytes, request.input_format)
        outcome.raise_for_status()

        duration = None
        if plan.output_format.is_audio:
            duration = self._read_duration(outcome)

        result = build_result(outcome, plan.output_format, duration)
        logger.info(f"Conversion to {plan.output_format.value} produced {len(result.output_bytes)} bytes")
        return result

    async def try_convert(self, request: ConversionRequest) -> ConversionResult | ConversionFailure:
        """Like ``convert``, but returns classified failures instead of raising them."""
        try:
            return await self.convert(request)
        except ConversionError as e:
            logger.error(f"Conversion failed at {e.stage.value}: {e.detail}")
            return to_failure(e)

    def _read_duration(self, outcome: ProcessOutcome) -> Optional[int]:
        try:
            return extract_duration(outcome.diagnostic_text)
        except MetadataExtractionError as e:
            if self.strict_duration:
                raise
            logger.warning(f"Returning audio without duration: {e.detail}")
            return None
