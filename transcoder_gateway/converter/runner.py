"""
External transcoder process execution.

Runs the transcoder exactly once per call, either streaming through its
standard streams (pipe mode) or staging input and output through temporary
files (temp-file mode). Output and diagnostic streams are always drained
concurrently with the input write so neither side can stall on a full OS pipe
buffer. The process is killed and reaped on every exit path, and staged
artifacts live in a temporary directory that is removed when the call returns
or raises.
"""

import asyncio
import logging
import re
import shutil
import tempfile
import uuid
from pathlib import Path
from typing import Optional

import aiofiles
import aiofiles.os

from transcoder_gateway.const import IOMode
from transcoder_gateway.converter.errors import FilesystemError, ProcessExecutionError, ProcessTimeoutError
from transcoder_gateway.converter.models import ArtifactRole, ExecutionPlan, ProcessOutcome, TemporaryArtifact
from transcoder_gateway.utils.buffer_pool import BufferPool

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024
_SUFFIX_PATTERN = re.compile(r"[^a-z0-9]")


def _decode_diagnostics(buffer: bytearray) -> str:
    return bytes(buffer).decode("utf-8", errors="replace")


def _artifact_suffix(tag: str) -> str:
    suffix = _SUFFIX_PATTERN.sub("", (tag or "").lower())[:8]
    return suffix or "bin"


class ProcessRunner:
    def __init__(
        self,
        buffer_pool: BufferPool,
        executable: str = "ffmpeg",
        timeout: Optional[float] = None,
        temp_dir: Optional[str] = None,
    ):
        """
        Args:
            buffer_pool: Pool supplying the stdout/stderr capture buffers.
            executable: Transcoder executable name or path.
            timeout: Seconds before a running process is killed. ``None`` waits indefinitely.
            temp_dir: Parent directory for staged artifacts. Defaults to the system temp dir.
        """
        self.buffer_pool = buffer_pool
        self.executable = executable
        self.timeout = timeout
        self.temp_dir = temp_dir

    async def run(self, plan: ExecutionPlan, payload: bytes, input_format: str = "bin") -> ProcessOutcome:
        """
        Execute the transcoder once according to the plan.

        Args:
            plan: The execution plan to run.
            payload: Input bytes fed to the transcoder.
            input_format: Declared input tag, used to name the staged input artifact.

        Returns:
            ProcessOutcome: Captured output, diagnostics and exit status.

        Raises:
            ProcessExecutionError: If the process cannot be started.
            ProcessTimeoutError: If the process outlives the configured deadline.
            FilesystemError: If a staged artifact cannot be created, written or read.
        """
        if plan.io_mode is IOMode.TEMP_FILE:
            outcome = await self._run_with_temp_files(plan, payload, input_format)
        else:
            outcome = await self._run_with_pipes(plan, payload)

        if outcome.exit_succeeded:
            logger.debug(f"Transcoder finished ({len(outcome.stdout_bytes)} bytes): {outcome.diagnostic_text}")
        else:
            logger.error(f"Transcoder exited with status {outcome.return_code}: {outcome.diagnostic_text}")
        return outcome

    async def _spawn(self, args: list[str] | tuple[str, ...], stdin: int) -> asyncio.subprocess.Process:
        logger.debug(f"Starting {self.executable} {' '.join(args)}")
        try:
            return await asyncio.create_subprocess_exec(
                self.executable,
                *args,
                stdin=stdin,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise ProcessExecutionError(f"Transcoder executable not found: {self.executable}") from e
        except OSError as e:
            raise ProcessExecutionError(f"Failed to start transcoder: {e}") from e

    async def _run_with_pipes(self, plan: ExecutionPlan, payload: bytes) -> ProcessOutcome:
        process = await self._spawn(plan.args, asyncio.subprocess.PIPE)
        with self.buffer_pool.borrow() as stdout_buffer, self.buffer_pool.borrow() as stderr_buffer:
            return_code = await self._communicate(process, payload, stdout_buffer, stderr_buffer)
            return ProcessOutcome(
                stdout_bytes=bytes(stdout_buffer),
                diagnostic_text=_decode_diagnostics(stderr_buffer),
                exit_succeeded=return_code == 0,
                return_code=return_code,
            )

    async def _run_with_temp_files(self, plan: ExecutionPlan, payload: bytes, input_format: str) -> ProcessOutcome:
        try:
            workdir = await asyncio.to_thread(tempfile.mkdtemp, prefix="transcode-", dir=self.temp_dir)
        except OSError as e:
            raise FilesystemError(f"Failed to create temporary directory: {e}") from e

        try:
            token = uuid.uuid4().hex
            input_artifact = TemporaryArtifact(
                Path(workdir) / f"input-{token}.{_artifact_suffix(input_format)}", ArtifactRole.INPUT
            )
            # Not created here: the transcoder creates it.
            output_artifact = TemporaryArtifact(
                Path(workdir) / f"output-{token}.{plan.output_format.container}", ArtifactRole.OUTPUT
            )

            await self._write_artifact(input_artifact, payload)

            process = await self._spawn(plan.bind(input_artifact.path, output_artifact.path), asyncio.subprocess.DEVNULL)
            with self.buffer_pool.borrow() as stdout_buffer, self.buffer_pool.borrow() as stderr_buffer:
                return_code = await self._communicate(process, None, stdout_buffer, stderr_buffer)
                diagnostics = _decode_diagnostics(stderr_buffer)

            output_bytes = await self._read_artifact(output_artifact) if return_code == 0 else b""
            return ProcessOutcome(
                stdout_bytes=output_bytes,
                diagnostic_text=diagnostics,
                exit_succeeded=return_code == 0,
                return_code=return_code,
            )
        finally:
            await self._remove_workdir(workdir)

    async def _communicate(
        self,
        process: asyncio.subprocess.Process,
        payload: Optional[bytes],
        stdout_buffer: bytearray,
        stderr_buffer: bytearray,
    ) -> int:
        async def exchange() -> int:
            await asyncio.gather(
                self._feed(process.stdin, payload),
                self._drain(process.stdout, stdout_buffer),
                self._drain(process.stderr, stderr_buffer),
            )
            return await process.wait()

        try:
            if self.timeout is None:
                return await exchange()
            return await asyncio.wait_for(exchange(), self.timeout)
        except asyncio.TimeoutError:
            logger.error(f"Transcoder did not finish within {self.timeout}s, killing pid {process.pid}")
            raise ProcessTimeoutError(
                f"Transcoder did not finish within {self.timeout} seconds",
                diagnostics=_decode_diagnostics(stderr_buffer),
            )
        finally:
            await self._reap(process)

    @staticmethod
    async def _feed(stdin: Optional[asyncio.StreamWriter], payload: Optional[bytes]) -> None:
        if stdin is None:
            return
        try:
            if payload:
                stdin.write(payload)
                await stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            # The exit status decides whether an early close was a failure.
            logger.debug("Transcoder closed its input before the whole payload was written")
        finally:
            stdin.close()

    @staticmethod
    async def _drain(stream: Optional[asyncio.StreamReader], buffer: bytearray) -> None:
        if stream is None:
            return
        while True:
            chunk = await stream.read(_CHUNK_SIZE)
            if not chunk:
                break
            buffer.extend(chunk)

    @staticmethod
    async def _reap(process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        try:
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()

    @staticmethod
    async def _write_artifact(artifact: TemporaryArtifact, payload: bytes) -> None:
        try:
            async with aiofiles.open(artifact.path, "wb") as f:
                await f.write(payload)
        except OSError as e:
            raise FilesystemError(f"Failed to write {artifact.role.value} artifact: {e}") from e

    @staticmethod
    async def _read_artifact(artifact: TemporaryArtifact) -> bytes:
        if not await aiofiles.os.path.exists(artifact.path):
            return b""
        try:
            async with aiofiles.open(artifact.path, "rb") as f:
                return await f.read()
        except OSError as e:
            raise FilesystemError(f"Failed to read {artifact.role.value} artifact: {e}") from e

    @staticmethod
    async def _remove_workdir(workdir: str) -> None:
        try:
            await asyncio.to_thread(shutil.rmtree, workdir)
        except OSError as e:
            logger.warning(f"Failed to remove temporary directory {workdir}: {e}")
