"""Building, running and waiting on child processes."""

from __future__ import annotations

import logging
import os
import subprocess
import sys
from collections.abc import Callable, Iterable, Mapping
from typing import IO, Any, TypeVar, Union

from .output import (
    CommandFailed,
    CommandFailedWithOutput,
    Output,
    SpawnFailed,
    WaitFailed,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
PathArg = Union[str, bytes, "os.PathLike[str]", "os.PathLike[bytes]"]
StdioConfig = Union[None, int, IO[Any]]


def _to_str(value: PathArg) -> str:
    return os.fsdecode(os.fspath(value))


class Handle:
    """A running child process. Consume it with :meth:`wait`,
    :meth:`wait_for_output` or :meth:`leak`."""

    def __init__(self, command: str, process: subprocess.Popen) -> None:
        self._command = command
        self._process: subprocess.Popen | None = process

    def __del__(self) -> None:
        if getattr(self, "_process", None) is not None:
            logger.error("handle for command %r dropped without being waited on", self._command)

    @property
    def command(self) -> str:
        return self._command

    def _current(self) -> subprocess.Popen:
        if self._process is None:
            raise RuntimeError("developer error: `Handle` vacant")
        return self._process

    def _take(self) -> subprocess.Popen:
        process = self._current()
        self._process = None
        return process

    @property
    def stdin(self) -> IO[bytes] | None:
        return self._current().stdin

    @property
    def stdout(self) -> IO[bytes] | None:
        return self._current().stdout

    @property
    def stderr(self) -> IO[bytes] | None:
        return self._current().stderr

    @property
    def pid(self) -> int:
        return self._current().pid

    def kill(self) -> None:
        self._current().kill()

    def try_wait(self) -> int | None:
        """Return the exit status if the process has finished, else ``None``."""
        try:
            return self._current().poll()
        except OSError as cause:
            raise WaitFailed(self._command, cause) from cause

    def wait(self) -> int:
        """Wait for exit, raising :class:`CommandFailed` on a non-zero status."""
        process = self._take()
        try:
            returncode = process.wait()
        except OSError as cause:
            raise WaitFailed(self._command, cause) from cause
        if returncode != 0:
            raise CommandFailed(self._command, returncode)
        return returncode

    def wait_for_output(self) -> Output:
        """Wait for exit and collect output, raising on a non-zero status."""
        process = self._take()
        try:
            stdout, stderr = process.communicate()
        except OSError as cause:
            raise WaitFailed(self._command, cause) from cause
        output = Output(self._command, process.returncode, stdout or b"", stderr or b"")
        if not output.success():
            raise CommandFailedWithOutput(self._command, output)
        return output

    def leak(self) -> None:
        """Let the process run on without waiting for it."""
        self._take()


class Command:
    """A command builder. The ``with_*`` methods modify the command and return it."""

    def __init__(self, name: PathArg, *, clear_env: bool = False) -> None:
        self._program = _to_str(name)
        self._args: list[str] = []
        self._clear_env = clear_env
        self._env: dict[str, str] = {}
        self._cwd: str | None = None
        self._stdin: StdioConfig = None
        self._stdout: StdioConfig = None
        self._stderr: StdioConfig = None
        self._display = self._program

    def __str__(self) -> str:
        return self._display

    def __repr__(self) -> str:
        return f"Command({self._display!r})"

    @property
    def display(self) -> str:
        """The command as it would be typed in a shell."""
        return self._display

    @classmethod
    def impure(cls, name: PathArg) -> Command:
        """A command that inherits the current environment."""
        return cls(name)

    @classmethod
    def pure(cls, name: PathArg) -> Command:
        """A command that starts from an empty environment."""
        return cls(name, clear_env=True)

    @classmethod
    def try_impure_parse(cls, arg_str: str) -> Command | None:
        parts = arg_str.split()
        if not parts:
            return None
        return cls.impure(parts[0]).with_args(parts[1:])

    @classmethod
    def impure_parse(cls, arg_str: str) -> Command:
        command = cls.try_impure_parse(arg_str)
        if command is None:
            raise ValueError("passed an empty string to `impure_parse`")
        return command

    @classmethod
    def try_pure_parse(cls, arg_str: str) -> Command | None:
        command = cls.try_impure_parse(arg_str)
        if command is not None:
            command._clear_env = True
        return command

    @classmethod
    def pure_parse(cls, arg_str: str) -> Command:
        command = cls.try_pure_parse(arg_str)
        if command is None:
            raise ValueError("passed an empty string to `pure_parse`")
        return command

    def with_stdin(self, cfg: StdioConfig) -> Command:
        logger.debug("setting stdin to %r on command %r", cfg, self._display)
        self._stdin = cfg
        return self

    def with_stdout(self, cfg: StdioConfig) -> Command:
        logger.debug("setting stdout to %r on command %r", cfg, self._display)
        self._stdout = cfg
        return self

    def with_stderr(self, cfg: StdioConfig) -> Command:
        logger.debug("setting stderr to %r on command %r", cfg, self._display)
        self._stderr = cfg
        return self

    def with_current_dir(self, directory: PathArg) -> Command:
        self._cwd = _to_str(directory)
        return self

    def with_env_var(self, key: PathArg, value: PathArg) -> Command:
        key_str, value_str = _to_str(key), _to_str(value)
        logger.debug("adding env var %r = %r to command %r", key_str, value_str, self._display)
        self._env[key_str] = value_str
        return self

    def with_env_vars(
        self, variables: Mapping[Any, Any] | Iterable[tuple[Any, Any]]
    ) -> Command:
        pairs = variables.items() if isinstance(variables, Mapping) else variables
        for key, value in pairs:
            self.with_env_var(key, value)
        return self

    def with_arg(self, arg: PathArg) -> Command:
        arg_str = _to_str(arg)
        logger.debug("adding arg %r to command %r", arg_str, self._display)
        self._args.append(arg_str)
        self._display = f"{self._display} {arg_str}" if self._display else arg_str
        return self

    def with_args(self, args: Iterable[PathArg]) -> Command:
        for arg in args:
            self.with_arg(arg)
        return self

    def with_parsed_args(self, arg_str: str) -> Command:
        return self.with_args(arg_str.split())

    def _environment(self) -> dict[str, str] | None:
        if not self._clear_env and not self._env:
            return None
        environment = {} if self._clear_env else dict(os.environ)
        environment.update(self._env)
        return environment

    def _spawn(self, **extra: Any) -> Handle:
        try:
            process = subprocess.Popen(
                [self._program, *self._args],
                env=self._environment(),
                cwd=self._cwd,
                stdin=self._stdin,
                stdout=self._stdout,
                stderr=self._stderr,
                **extra,
            )
        except OSError as cause:
            raise SpawnFailed(self._display, cause) from cause
        return Handle(self._display, process)

    def run(self) -> Handle:
        """Start the command with stdout and stderr going to ours."""
        logger.info("running command %r", self._display)
        self._stdout = None
        self._stderr = None
        return self._spawn()

    def run_and_detach(self) -> None:
        """Start the command in its own session with all streams discarded."""
        logger.info("running command %r and detaching", self._display)
        self._stdin = subprocess.DEVNULL
        self._stdout = subprocess.DEVNULL
        self._stderr = subprocess.DEVNULL
        if sys.platform == "win32":
            extra = {
                "creationflags": subprocess.CREATE_NEW_PROCESS_GROUP
                | subprocess.CREATE_NO_WINDOW
            }
        else:
            extra = {"start_new_session": True}
        self._spawn(**extra).leak()

    def run_and_wait(self) -> int:
        """Run the command and block until it exits successfully."""
        logger.info("running command %r and waiting for exit", self._display)
        self._stdout = None
        self._stderr = None
        return self._spawn().wait()

    def run_and_wait_for_output(self) -> Output:
        """Run the command with stdout and stderr captured."""
        logger.info("running command %r and waiting for output", self._display)
        self._stdout = subprocess.PIPE
        self._stderr = subprocess.PIPE
        return self._spawn().wait_for_output()

    def run_and_wait_for_str(self, func: Callable[[str], T]) -> T:
        return func(self.run_and_wait_for_output().stdout_str())

    def run_and_wait_for_string(self) -> str:
        return self.run_and_wait_for_output().stdout_str()