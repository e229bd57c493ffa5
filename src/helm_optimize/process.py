"""Run external programs and capture their standard streams."""
from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from typing import Optional, Sequence, Type

from .types import ExecError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """Captured output of a finished process."""

    stdout: str
    stderr: str
    returncode: int

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def _trim(stream: Optional[str]) -> str:
    if not stream:
        return ""
    return stream[:-1] if stream.endswith("\n") else stream


def run_command(argv: Sequence[str], input_text: Optional[str] = None) -> CommandResult:
    """
    Run a program and capture stdout and stderr.

    A single trailing newline is trimmed from each stream. A missing
    executable is reported with exit status 127, like a shell would.

    Args:
        argv: Program and arguments
        input_text: Optional text written to the program's stdin

    Returns:
        CommandResult with both streams and the exit status
    """
    logger.debug("Running command: %s", shlex.join(argv))
    try:
        completed = subprocess.run(
            list(argv),
            input=input_text,
            capture_output=True,
            text=True,
            check=False,
        )
    except FileNotFoundError as e:
        return CommandResult(stdout="", stderr=str(e), returncode=127)

    return CommandResult(
        stdout=_trim(completed.stdout),
        stderr=_trim(completed.stderr),
        returncode=completed.returncode,
    )


def run_checked(
    argv: Sequence[str],
    input_text: Optional[str] = None,
    error_cls: Type[ExecError] = ExecError,
) -> CommandResult:
    """
    Run a program and fail only when it exits non-zero.

    Stderr output from a program that exits zero is not an error.

    Raises:
        ExecError: (or ``error_cls``) carrying the exit status and stderr
    """
    result = run_command(argv, input_text=input_text)
    if not result.ok:
        message = result.stderr or result.stdout or f"exit status {result.returncode}"
        raise error_cls(
            f"{argv[0]} failed: {message}",
            exit_status=result.returncode,
            stderr=result.stderr,
            command=argv,
        )
    return result


def pipe_commands(producer: Sequence[str], consumer: Sequence[str]) -> str:
    """
    Pipe the stdout of ``producer`` into ``consumer``.

    Returns:
        The consumer's stdout with the trailing newline trimmed

    Raises:
        ExecError: If either program exits non-zero
    """
    logger.debug("Piping %s | %s", shlex.join(producer), shlex.join(consumer))
    try:
        with subprocess.Popen(list(producer), stdout=subprocess.PIPE) as first:
            second = subprocess.run(
                list(consumer),
                stdin=first.stdout,
                capture_output=True,
                text=True,
                check=False,
            )
            if first.stdout is not None:
                first.stdout.close()
            first_status = first.wait()
    except FileNotFoundError as e:
        raise ExecError(str(e), exit_status=127, command=producer) from e

    if first_status != 0:
        raise ExecError(
            f"{producer[0]} failed with exit status {first_status}",
            exit_status=first_status,
            command=producer,
        )
    if second.returncode != 0:
        stderr = _trim(second.stderr)
        raise ExecError(
            f"{consumer[0]} failed: {stderr}",
            exit_status=second.returncode,
            stderr=stderr,
            command=consumer,
        )
    return _trim(second.stdout)


def run_attached(argv: Sequence[str]) -> int:
    """
    Run a program with the caller's stdin, stdout and stderr.

    Returns:
        The program's exit status (127 when it cannot be found)
    """
    logger.debug("Running attached: %s", shlex.join(argv))
    try:
        return subprocess.run(list(argv), check=False).returncode
    except FileNotFoundError as e:
        logger.error("%s", e)
        return 127
