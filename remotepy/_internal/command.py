"""Construction of the command that starts the remote interpreter.
"""
from __future__ import annotations

import shlex
import sys

from dataclasses import dataclass, field

from ..errors import ConfigurationError
from .codec import BOOTSTRAP
from ._typing import MYPY_CHECK_RUNNING

if MYPY_CHECK_RUNNING:
    from typing import List, Optional, Sequence, Union


@dataclass
class ConnectionConfig:
    """How to reach the remote interpreter.

    Exactly one of `command` or `host` must be given.
    """
    command: Optional[Union[str, Sequence[str]]] = None
    host: Optional[str] = None
    user: Optional[str] = None
    port: Optional[int] = None
    ssh_path: str = "ssh"
    python_path: str = "python3"
    ssh_options: List[str] = field(default_factory=list)


def build_command(config: ConnectionConfig) -> List[str]:
    """Map a connection configuration into an argument vector.

    Raises:
        ConfigurationError if the configuration is incomplete or contradictory
    """
    if config.command is not None and config.host is not None:
        raise ConfigurationError("Only one of 'command' or 'host' may be given")

    if config.command is not None:
        if config.user is not None or config.port is not None:
            raise ConfigurationError(
                "'user' and 'port' only apply when connecting to a 'host'"
            )
        if isinstance(config.command, str):
            return [config.command]
        command = list(config.command)
        if not command:
            raise ConfigurationError("'command' must not be empty")
        if not all(isinstance(arg, str) for arg in command):
            raise ConfigurationError("'command' arguments must be strings")
        return command

    if not config.host:
        raise ConfigurationError("Need a 'command' or a 'host'")

    command = [config.ssh_path, *config.ssh_options]
    if config.port is not None:
        command.extend(["-p", str(config.port)])
    if config.user is not None:
        command.extend(["-l", config.user])
    # ssh joins the remote arguments into one shell command line.
    command.extend(
        [config.host, config.python_path, "-u", "-c", shlex.quote(BOOTSTRAP)]
    )
    return command


def local_command(python: Optional[str] = None) -> List[str]:
    """Command that runs the interpreter loop in a local child process.

    Args:
        python: interpreter to run, defaults to the current one
    """
    if python is None:
        python = sys.executable
    return [python, "-u", "-c", BOOTSTRAP]
