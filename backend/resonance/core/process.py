"""
Child-process runner for ffmpeg invocations.

Arguments are always passed as a list (no shell). Every run has a timeout;
on timeout or when the awaiting task is cancelled the child is killed and
reaped before control returns to the caller.
"""
import asyncio
from dataclasses import dataclass
from typing import Protocol, Sequence

import structlog

log = structlog.get_logger()


@dataclass
class ProcessResult:
    exit_code: int
    stdout: str
    stderr: str


class ProcessTimeoutError(Exception):
    def __init__(self, program: str, timeout: float):
        super().__init__(f"{program} exceeded {timeout:g}s")
        self.program = program
        self.timeout = timeout


class Runner(Protocol):
    async def run(self, args: Sequence[str], timeout: float) -> ProcessResult: ...


class ProcessRunner:
    """
    Default Runner backed by asyncio subprocesses.

    Raises OSError (typically FileNotFoundError) when the program cannot be
    started and ProcessTimeoutError when it runs past `timeout`.
    """

    async def run(self, args: Sequence[str], timeout: float) -> ProcessResult:
        args = [str(a) for a in args]
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            await _kill(proc)
            log.warning("process_timeout", program=args[0], timeout=timeout)
            raise ProcessTimeoutError(args[0], timeout)
        except asyncio.CancelledError:
            await _kill(proc)
            log.warning("process_cancelled", program=args[0])
            raise

        return ProcessResult(
            exit_code=proc.returncode,
            stdout=stdout.decode("utf-8", "replace"),
            stderr=stderr.decode("utf-8", "replace"),
        )


async def _kill(proc: asyncio.subprocess.Process):
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
    await proc.wait()
