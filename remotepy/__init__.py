"""Asynchronous client for driving a remote Python interpreter over pipes.
"""
from __future__ import annotations

__version__ = "0.1.0"

from ._internal._logging import default_configuration
from ._internal.command import ConnectionConfig, build_command, local_command
from ._internal.library import Library, load_library
from .client import Client
from .errors import (
    ChannelClosedError,
    ConfigurationError,
    LibraryError,
    ProtocolError,
    RemoteError,
    RemotePyError,
    SpawnError,
    UsageError,
)

__all__ = [
    "ChannelClosedError",
    "Client",
    "ConfigurationError",
    "ConnectionConfig",
    "Library",
    "LibraryError",
    "ProtocolError",
    "RemoteError",
    "RemotePyError",
    "SpawnError",
    "UsageError",
    "build_command",
    "default_configuration",
    "load_library",
    "local_command",
]
