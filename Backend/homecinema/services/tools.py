"""
Running ffprobe / ffmpeg as awaited subprocesses.

Cancelling the awaiting task (client disconnect, timeout) stops the process:
SIGTERM first, SIGKILL once the grace period has passed.
"""
import asyncio
import logging
from asyncio.subprocess import Process
from contextlib import suppress
from typing import Sequence

logger = logging.getLogger(__name__)


class ToolError(Exception):
    """An external tool could not be started, timed out or failed."""

    def __init__(self, message: str, returncode: int | None = None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


def _kill_if_running(proc: Process) -> None:
    if proc.returncode is None:
        logger.warning("Process %s ignored SIGTERM, killing it", proc.pid)
        with suppress(ProcessLookupError):
            proc.kill()


def stop_process(proc: Process, grace: float = 2.0) -> None:
    """
    Ask a process to stop now and force it after `grace` seconds.
    Synchronous, so it is safe inside `finally` blocks of cancelled tasks.
    """
    if proc.returncode is not None:
        return
    with suppress(ProcessLookupError):
        proc.terminate()
    asyncio.get_running_loop().call_later(grace, _kill_if_running, proc)


async def spawn(args: Sequence[str], stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE) -> Process:
    try:
        return await asyncio.create_subprocess_exec(
            *args, stdin=asyncio.subprocess.DEVNULL, stdout=stdout, stderr=stderr
        )
    except OSError as e:
        raise ToolError(f"cannot start {args[0]}: {e}")


async def read_tail(stream: asyncio.StreamReader, limit: int = 64 * 1024) -> bytes:
    """Read a stream to EOF, keeping only its last `limit` bytes."""
    tail = b""
    while chunk := await stream.read(limit):
        tail = (tail + chunk)[-limit:]
    return tail


async def run_tool(args: Sequence[str], timeout: float, grace: float = 2.0) -> bytes:
    """
    Run a command to completion and return its stdout.

    Raises:
        ToolError: the command could not start, exceeded `timeout` or exited non-zero.
    """
    logger.debug("Running %s", " ".join(args))
    proc = await spawn(args)
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        raise ToolError(f"{args[0]} timed out after {timeout:.0f}s")
    finally:
        stop_process(proc, grace)

    if proc.returncode != 0:
        message = stderr.decode("utf-8", "replace").strip()
        raise ToolError(f"{args[0]} exited with code {proc.returncode}",
                        returncode=proc.returncode, stderr=message)
    return stdout
