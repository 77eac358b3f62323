"""CLI for evaluating code in a remote interpreter.

    remotepy --host example.com -e 'args[0].upper()' hello
    remotepy --local --library sysinfo -e 'import os; return os.uname()[1]'
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from ._internal._logging import LOG_ENV_VAR, default_configuration
from ._internal.command import local_command
from ._internal._typing import MYPY_CHECK_RUNNING
from .client import Client
from .errors import (
    ChannelClosedError,
    ConfigurationError,
    LibraryError,
    RemoteError,
    SpawnError,
)

if MYPY_CHECK_RUNNING:
    from typing import List, Optional, TextIO


logger = logging.getLogger(__name__)


def handle_logging_options(args=None):
    log_file = None
    if args:
        log_file = args.log_file

    try:
        default_configuration(log_file)
    except PermissionError:
        raise ConfigurationError(f'Log file "{log_file}" is not writable.')


def add_logging_options(parser):
    parser.add_argument(
        "--log-file",
        help=f"path to file in which to write logs. May also be provided with {LOG_ENV_VAR}.",
    )


def get_arg_parser():
    parser = argparse.ArgumentParser(
        prog="remotepy", description="Evaluate Python code in a remote interpreter."
    )

    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--host", help="host to connect to with ssh")
    target.add_argument(
        "--local",
        action="store_true",
        help="run the interpreter as a local child process",
    )

    parser.add_argument("--user", help="remote user name")
    parser.add_argument("--port", type=int, help="ssh port")
    parser.add_argument("--ssh", default="ssh", help="ssh executable")
    parser.add_argument(
        "--python",
        help="interpreter to run, defaults to python3 remotely and the "
        "current interpreter locally",
    )
    parser.add_argument(
        "--library",
        action="append",
        default=[],
        help="library to load before evaluating, may be repeated",
    )
    add_logging_options(parser)
    parser.add_argument("-e", dest="code", required=True, help="code to evaluate")
    parser.add_argument("args", nargs="*", help="arguments passed as `args`")
    return parser


def _client_options(args) -> dict:
    if args.local:
        if args.user is not None or args.port is not None:
            raise ConfigurationError("--user and --port require --host")
        return {"command": local_command(args.python)}
    options = {
        "host": args.host,
        "user": args.user,
        "port": args.port,
        "ssh_path": args.ssh,
    }
    if args.python:
        options["python_path"] = args.python
    return options


async def _run(args, stdout: TextIO, stderr: TextIO) -> int:
    async with Client(**_client_options(args)) as client:
        try:
            for library in args.library:
                await client.use_library_async(library)
            values = await client.evaluate_async(args.code, args.args)
        except (ChannelClosedError, LibraryError, RemoteError) as e:
            stderr.write(f"{e}\n")
            return 1
    for value in values:
        stdout.write(f"{value}\n")
    return 0


def _main(args, stdout=None, stderr=None) -> int:
    if stdout is None:
        stdout = sys.stdout
    if stderr is None:
        stderr = sys.stderr
    handle_logging_options(args)
    try:
        return asyncio.run(_run(args, stdout, stderr))
    except SpawnError as e:
        logger.error("Failed to start interpreter: %s", e)
        stderr.write(f"{e}\n")
        return 1


def main(argv: Optional[List[str]] = None):
    parser = get_arg_parser()
    args = parser.parse_args(argv)

    try:
        sys.exit(_main(args))
    except ConfigurationError as e:
        parser.error(e.args[0])
