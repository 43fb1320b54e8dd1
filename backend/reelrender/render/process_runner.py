"""Process management for FFmpeg execution."""

import asyncio
import logging
import re
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence, Union

from reelrender.config import get_settings
from reelrender.exceptions import ProcessError, ProcessTimeoutError

logger = logging.getLogger(__name__)

STDERR_TAIL_LINES = 50
STDOUT_TAIL_LINES = 20

ERROR_LINE_PATTERN = re.compile(r"Error:.*", re.IGNORECASE)


def _split_lines(data: bytes) -> list[str]:
    # FFmpeg rewrites its status line with \r, treat it as a line break
    text = data.decode("utf-8", errors="replace").replace("\r", "\n")
    return [line for line in text.split("\n") if line.strip()]


def _tail(lines: list[str], count: int) -> list[str]:
    return lines[-count:] if count > 0 else []


def parse_error_line(lines: Sequence[str]) -> Optional[str]:
    """First ``Error: ...`` line in the output, if any."""
    for line in lines:
        match = ERROR_LINE_PATTERN.search(line)
        if match:
            return match.group(0).strip()
    return None


@dataclass
class ProcessResult:
    """Result of a finished process."""

    args: list[str]
    return_code: int
    stdout: list[str] = field(default_factory=list)
    stderr: list[str] = field(default_factory=list)
    elapsed_s: float = 0.0

    @property
    def stderr_tail(self) -> list[str]:
        return _tail(self.stderr, STDERR_TAIL_LINES)

    @property
    def stdout_tail(self) -> list[str]:
        return _tail(self.stdout, STDOUT_TAIL_LINES)


class ProcessRunner:
    """Runs FFmpeg (or any argv) with a wall-clock timeout.

    Arguments are always passed as a vector; nothing goes through a shell.
    """

    def __init__(self, ffmpeg_path: Optional[str] = None):
        self.ffmpeg_path = ffmpeg_path or get_settings().ffmpeg_path

    async def run_ffmpeg(
        self,
        args: Sequence[str],
        *,
        timeout_s: float,
        label: str = "ffmpeg",
        cwd: Optional[Union[str, Path]] = None,
    ) -> ProcessResult:
        """Run the configured ffmpeg binary with the given arguments."""
        return await self.run(
            [self.ffmpeg_path, "-hide_banner", *args],
            timeout_s=timeout_s,
            label=label,
            cwd=cwd,
        )

    async def run(
        self,
        args: Sequence[str],
        *,
        timeout_s: float,
        label: str = "process",
        cwd: Optional[Union[str, Path]] = None,
    ) -> ProcessResult:
        """Run a process to completion.

        Args:
            args: Program and arguments
            timeout_s: Wall-clock limit; the process is killed when exceeded
            label: Name used in logs and error messages
            cwd: Working directory for the process

        Returns:
            ProcessResult of a zero-exit run

        Raises:
            ProcessTimeoutError: If the timeout elapsed (process killed)
            ProcessError: If the process could not start or exited non-zero
        """
        argv = [str(a) for a in args]
        logger.debug(f"[FFMPEG] {label}: {' '.join(argv)}")
        started = time.monotonic()

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(cwd) if cwd else None,
            )
        except OSError as e:
            raise ProcessError(f"{label} could not be started: {e}") from e

        try:
            stdout_data, stderr_data = await asyncio.wait_for(
                process.communicate(), timeout=timeout_s
            )
        except asyncio.TimeoutError:
            process.kill()
            stdout_data, stderr_data = await process.communicate()
            stderr = _split_lines(stderr_data)
            logger.error(f"[FFMPEG] {label} timed out after {timeout_s}s, process killed")
            raise ProcessTimeoutError(
                f"{label} timed out after {timeout_s}s",
                return_code=process.returncode,
                stderr_tail=_tail(stderr, STDERR_TAIL_LINES),
                stdout_tail=_tail(_split_lines(stdout_data), STDOUT_TAIL_LINES),
            )
        except BaseException:
            # Cancelled or interrupted: never leave the child running
            if process.returncode is None:
                logger.warning(f"[FFMPEG] {label} interrupted, killing process {process.pid}")
                process.kill()
                await process.wait()
            raise

        result = ProcessResult(
            args=argv,
            return_code=process.returncode if process.returncode is not None else -1,
            stdout=_split_lines(stdout_data),
            stderr=_split_lines(stderr_data),
            elapsed_s=time.monotonic() - started,
        )

        if result.return_code != 0:
            if result.return_code < 0:
                reason = f"killed by signal {-result.return_code}"
            else:
                reason = f"exited with code {result.return_code}"
            error_line = parse_error_line(result.stderr)
            message = f"{label} {reason}"
            if error_line:
                message = f"{message}: {error_line}"

            logger.error(f"[FFMPEG] {message}")
            for line in result.stderr_tail[-10:]:
                logger.error(f"[FFMPEG]   {line}")
            raise ProcessError(
                message,
                return_code=result.return_code,
                stderr_tail=result.stderr_tail,
                stdout_tail=result.stdout_tail,
            )

        logger.debug(f"[FFMPEG] {label} finished in {result.elapsed_s:.2f}s")
        return result
