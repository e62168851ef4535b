"""Captured process output and the errors raised when running commands."""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass


def _debug_str(text: str) -> str:
    """Quote a string the way diagnostics show it."""
    return json.dumps(text, ensure_ascii=False)


def _exit_code(returncode: int | None) -> int | None:
    """Exit code of a status; ``None`` when the process was ended by a signal."""
    if returncode is None or returncode < 0:
        return None
    return returncode


class OutputStream(enum.Enum):
    """One of the two output streams of a child process."""

    OUT = "stdout"
    ERR = "stderr"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Output:
    """Everything a finished command produced."""

    command: str
    returncode: int
    stdout: bytes = b""
    stderr: bytes = b""

    @property
    def status(self) -> int:
        return self.returncode

    @property
    def code(self) -> int | None:
        return _exit_code(self.returncode)

    def success(self) -> bool:
        return self.returncode == 0

    def stream(self, stream: OutputStream) -> bytes:
        return self.stdout if stream is OutputStream.OUT else self.stderr

    def stream_str(self, stream: OutputStream) -> str:
        """Decode a stream as UTF-8, raising :class:`InvalidUtf8` on failure."""
        try:
            return self.stream(stream).decode("utf-8")
        except UnicodeDecodeError as cause:
            raise InvalidUtf8(self.command, stream, cause) from cause

    def stdout_str(self) -> str:
        return self.stream_str(OutputStream.OUT)

    def stderr_str(self) -> str:
        return self.stream_str(OutputStream.ERR)


class CommandError(Exception):
    """Base class for every failure to run a command."""

    def __init__(self, command: str, message: str) -> None:
        super().__init__(message)
        self.command = command

    @property
    def status(self) -> int | None:
        return None

    @property
    def code(self) -> int | None:
        return _exit_code(self.status)

    @property
    def output(self) -> Output | None:
        return None

    @property
    def stdout(self) -> bytes | None:
        return None if self.output is None else self.output.stdout

    @property
    def stderr(self) -> bytes | None:
        return None if self.output is None else self.output.stderr

    def stdout_str(self) -> str | None:
        return None if self.output is None else self.output.stdout_str()

    def stderr_str(self) -> str | None:
        return None if self.output is None else self.output.stderr_str()


class SpawnFailed(CommandError):
    """The child process couldn't be started."""

    def __init__(self, command: str, cause: OSError) -> None:
        super().__init__(
            command,
            f"Failed to spawn child process for command {_debug_str(command)}: {cause}",
        )
        self.cause = cause


class WaitFailed(CommandError):
    """Waiting on the child process failed."""

    def __init__(self, command: str, cause: OSError) -> None:
        super().__init__(
            command,
            f"Failed to wait for child process for command {_debug_str(command)} "
            f"to exit: {cause}",
        )
        self.cause = cause


def _failure_message(command: str, returncode: int) -> str:
    message = f"Command {_debug_str(command)} didn't complete successfully, "
    code = _exit_code(returncode)
    if code is not None:
        return message + f"exiting with code {code}."
    return message + "but returned no exit code."


class CommandFailed(CommandError):
    """The command ran but exited unsuccessfully."""

    def __init__(self, command: str, returncode: int) -> None:
        super().__init__(command, _failure_message(command, returncode))
        self.returncode = returncode

    @property
    def status(self) -> int | None:
        return self.returncode


class CommandFailedWithOutput(CommandError):
    """The command exited unsuccessfully; its output was captured."""

    def __init__(self, command: str, output: Output) -> None:
        message = _failure_message(command, output.returncode)
        if output.stderr:
            message += " stderr contents: " + output.stderr.decode("utf-8", errors="replace")
        else:
            message += " stderr was empty."
        super().__init__(command, message)
        self._output = output

    @property
    def status(self) -> int | None:
        return self._output.returncode

    @property
    def output(self) -> Output | None:
        return self._output


class InvalidUtf8(CommandError):
    """A captured stream wasn't valid UTF-8."""

    def __init__(self, command: str, stream: OutputStream, cause: UnicodeDecodeError) -> None:
        super().__init__(
            command,
            f"{stream} for command {_debug_str(command)} contained invalid UTF-8: {cause}",
        )
        self.stream = stream
        self.cause = cause