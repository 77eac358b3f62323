"""asyncio wrapper for the spawned interpreter process.
"""
from __future__ import annotations

import asyncio
import logging
import os
import subprocess
import threading

from ..errors import SpawnError
from ._typing import MYPY_CHECK_RUNNING

if MYPY_CHECK_RUNNING:
    from typing import Callable, List, Optional, Tuple


logger = logging.getLogger(__name__)


class ChildProcess:
    """A child process whose exit is reported on the event loop.

    The process is reaped by a daemon thread, so nothing ever blocks on its
    exit. Not thread-safe.
    """
    def __init__(self, command: List[str], loop=None):
        self._command = command
        if loop is None:
            loop = asyncio.get_running_loop()
        self._loop = loop
        self._process: subprocess.Popen = None
        self._stopped = asyncio.Event()
        self._on_exit: Optional[Callable[[int], None]] = None

    def start(self, on_exit: Optional[Callable[[int], None]] = None) -> Tuple[int, int]:
        """Spawn the process connected to two new pipes.

        Returns:
            (read_fd, write_fd) parent ends connected to the child's stdout and
            stdin respectively

        Raises:
            SpawnError if the pipes or the process could not be created
        """
        assert self._process is None, "Process was already started"
        self._on_exit = on_exit

        try:
            read_fd, child_write = os.pipe()
        except OSError as e:
            raise SpawnError(f"Unable to create pipe: {e}") from e
        try:
            child_read, write_fd = os.pipe()
        except OSError as e:
            os.close(read_fd)
            os.close(child_write)
            raise SpawnError(f"Unable to create pipe: {e}") from e

        try:
            self._process = subprocess.Popen(
                self._command, stdin=child_read, stdout=child_write
            )
        except BaseException as e:
            os.close(read_fd)
            os.close(write_fd)
            if isinstance(e, OSError):
                raise SpawnError(f"Unable to run {self._command[0]}: {e}") from e
            raise
        finally:
            # The child holds its own copies.
            os.close(child_read)
            os.close(child_write)

        logger.debug(
            "Started %s", self._command[0], extra={"pid": self._process.pid}
        )
        # Clean up to avoid lingering references.
        self._command = None

        watcher = threading.Thread(
            target=self._watch, name=f"remotepy-wait-{self.pid}", daemon=True
        )
        watcher.start()
        return read_fd, write_fd

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self._process.returncode

    async def wait(self) -> int:
        await self._stopped.wait()
        return self.returncode

    def _watch(self):
        self._process.wait()
        try:
            self._loop.call_soon_threadsafe(self._handle_process_stop)
        except RuntimeError:
            # Event loop already closed, nobody left to tell.
            logger.debug("Process exited after loop close", extra={"pid": self.pid})

    def _handle_process_stop(self):
        logger.debug(
            "Process exited with %s", self.returncode, extra={"pid": self.pid}
        )
        self._stopped.set()
        on_exit = self._on_exit
        self._on_exit = None
        if on_exit is not None:
            on_exit(self.returncode)
