"""Byte stream connecting the client to the remote interpreter.
"""
from __future__ import annotations

import asyncio
import errno
import logging
import os

from ..errors import ChannelClosedError, ProtocolError
from .codec import parse_message
from ._typing import MYPY_CHECK_RUNNING

if MYPY_CHECK_RUNNING:
    from typing import Any, Callable, List, Optional

    from ._process import ChildProcess


logger = logging.getLogger(__name__)


READ_SIZE = 65536


def _fileno(handle) -> int:
    if isinstance(handle, int):
        return handle
    return handle.fileno()


class Channel:
    """Owns the read and write endpoints and, optionally, the child process
    on the other end of them.

    Inbound bytes are decoded into frames which are passed to `on_frame` in
    arrival order. Outbound writes never block: whatever the pipe does not
    accept immediately is buffered and flushed when it becomes writable.

    Not thread-safe.
    """
    def __init__(
        self,
        read_handle: Any,
        write_handle: Any,
        process: Optional[ChildProcess] = None,
        loop=None,
    ):
        """
        Args:
            read_handle: file object or descriptor the responses are read from
            write_handle: file object or descriptor the requests are written to
            process: child process the endpoints are connected to, if we
                spawned one
        """
        if loop is None:
            loop = asyncio.get_running_loop()
        self._loop = loop
        self._read_handle = read_handle
        self._write_handle = write_handle
        self._read_fd = _fileno(read_handle)
        self._write_fd = _fileno(write_handle)
        self.process = process

        os.set_blocking(self._read_fd, False)
        os.set_blocking(self._write_fd, False)

        self._read_buffer = bytearray()
        self._write_buffer = bytearray()
        self._on_frame: Optional[Callable[[str, List[str]], None]] = None
        self._on_closed: Optional[Callable[[Exception], None]] = None
        self._reading = False
        self._writing = False
        self._eof = False
        self._closed = False

    @property
    def closed(self) -> bool:
        """True once no further frames can be received."""
        return self._closed or self._eof

    def attach(
        self,
        on_frame: Callable[[str, List[str]], None],
        on_closed: Callable[[Exception], None],
    ) -> None:
        """Start delivering inbound frames.

        Args:
            on_frame: invoked with (tag, values) for each decoded frame
            on_closed: invoked once if the stream ends or becomes unreadable
                before `close` is called
        """
        assert not self._reading, "Channel is already attached"
        self._on_frame = on_frame
        self._on_closed = on_closed
        self._reading = True
        self._loop.add_reader(self._read_fd, self._handle_readable)

    def write(self, data: bytes) -> None:
        """Queue `data` for sending, in order after any earlier writes.

        Raises:
            ChannelClosedError if the channel is closed
        """
        if self.closed:
            raise ChannelClosedError("Channel is closed")

        if self._write_buffer:
            self._write_buffer.extend(data)
            return

        try:
            n = os.write(self._write_fd, data)
        except BlockingIOError:
            n = 0
        except OSError as e:
            self._handle_write_error(e)
            return

        if n < len(data):
            self._write_buffer.extend(data[n:])
            self._start_writing()

    def close(self) -> None:
        """Release both endpoints. Safe to call any number of times.

        Does not wait for the child process to exit.
        """
        if self._closed:
            return
        self._closed = True
        self._stop_reading()
        self._stop_writing()
        self._write_buffer.clear()
        self._on_frame = None
        self._on_closed = None

        self._close_handle(self._read_handle)
        if not self._same_endpoint():
            self._close_handle(self._write_handle)
        logger.debug("Channel closed")

    def _same_endpoint(self) -> bool:
        return (
            self._read_handle is self._write_handle
            or self._read_fd == self._write_fd
        )

    @staticmethod
    def _close_handle(handle):
        if isinstance(handle, int):
            os.close(handle)
        else:
            handle.close()

    def _handle_readable(self):
        try:
            data = os.read(self._read_fd, READ_SIZE)
        except BlockingIOError:
            return
        except OSError as e:
            logger.error("Error reading from channel: %s", e)
            self._handle_eof(ChannelClosedError(f"Channel read failed: {e}"))
            return

        if not data:
            self._handle_eof(ChannelClosedError("Channel closed by remote"))
            return

        self._read_buffer.extend(data)
        self._drain()

    def _drain(self):
        # Deliver every complete frame already buffered, a handler may close
        # the channel part way through.
        while self._reading:
            try:
                frame = parse_message(self._read_buffer)
            except ProtocolError as e:
                logger.error("Undecodable data on channel: %s", e)
                self._handle_eof(ChannelClosedError(f"Protocol error: {e}"))
                return
            if frame is None:
                return
            tag, values = frame
            self._on_frame(tag, values)

    def _handle_eof(self, exc: Exception):
        if self._eof:
            return
        self._eof = True
        self._stop_reading()
        self._stop_writing()
        if self._read_buffer:
            logger.warning(
                "Discarding %d bytes of incomplete frame", len(self._read_buffer)
            )
            self._read_buffer.clear()
        on_closed = self._on_closed
        self._on_closed = None
        if on_closed is not None:
            on_closed(exc)

    def _handle_write_error(self, e: OSError):
        if e.errno not in (errno.EPIPE, errno.ECONNRESET):
            logger.error("Error writing to channel: %s", e)
        # Deferred, the request being written is not queued yet.
        self._loop.call_soon(
            self._handle_eof, ChannelClosedError(f"Channel write failed: {e}")
        )

    def _handle_writable(self):
        try:
            n = os.write(self._write_fd, self._write_buffer)
        except BlockingIOError:
            return
        except OSError as e:
            self._stop_writing()
            self._handle_write_error(e)
            return
        del self._write_buffer[:n]
        if not self._write_buffer:
            self._stop_writing()

    def _start_writing(self):
        if not self._writing:
            self._writing = True
            self._loop.add_writer(self._write_fd, self._handle_writable)

    def _stop_writing(self):
        if self._writing:
            self._writing = False
            if not self._loop.is_closed():
                self._loop.remove_writer(self._write_fd)

    def _stop_reading(self):
        if self._reading:
            self._reading = False
            if not self._loop.is_closed():
                self._loop.remove_reader(self._read_fd)
