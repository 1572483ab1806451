import os
import shlex
import subprocess
from dataclasses import dataclass
from typing import Callable, List, Optional, Union

import click

Command = Union[str, List[str]]


@dataclass(frozen=True)
class CmdResult:
    """Exit status and combined output of a finished command."""

    returncode: int
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def _argv(script: Command) -> List[str]:
    if isinstance(script, str):
        return shlex.split(script)
    return [str(arg) for arg in script]


def _env(extra):
    env = os.environ.copy()
    if extra:
        env.update(extra)
    return env


def _log_sub_out(pipe, echo):
    """Logs output from subprocess, returning everything read."""
    lines = []
    for line in iter(pipe.readline, b""):
        text = line.decode(errors="replace").rstrip("\n")
        lines.append(text)
        echo(text)
    return lines


def capture(
    script: Command,
    echo: Callable[[str], None] = click.echo,
    env: Optional[dict] = None,
    on_start: Optional[Callable[[subprocess.Popen], None]] = None,
    **kwargs,
) -> CmdResult:
    """Stream a command's output through echo and keep a copy of it.

    stderr is folded into stdout so diagnostics keep their ordering. A
    command which cannot be started reports returncode 127.
    """
    argv = _argv(script)
    try:
        process = subprocess.Popen(
            argv,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            env=_env(env),
            **kwargs,
        )
    except OSError as error:
        message = f"Error: Failed to run {shlex.join(argv)}: {error}"
        echo(message)
        return CmdResult(127, message)

    if on_start:
        on_start(process)
    with process.stdout:
        lines = _log_sub_out(process.stdout, echo)
    exitcode = process.wait()
    return CmdResult(exitcode, "\n".join(lines))


def passthrough(script: Command, env: Optional[dict] = None, **kwargs) -> int:
    """Run a command attached to this process' terminal, returning its status."""
    argv = _argv(script)
    try:
        return subprocess.run(argv, env=_env(env), **kwargs).returncode
    except OSError as error:
        click.echo(f"Error: Failed to run {shlex.join(argv)}: {error}", err=True)
        return 127
