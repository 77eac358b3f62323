import asyncio
import os

from typing import List, Tuple

from remotepy import Client
from remotepy._internal.codec import parse_message, write_message


async def wait_for(predicate, timeout=5.0, message="Timed out waiting for condition"):
    """Let the event loop run until `predicate()` is true."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError(message)
        await asyncio.sleep(0.005)


async def run_loop(iterations=5):
    """Give already-readable callbacks a chance to run."""
    for _ in range(iterations):
        await asyncio.sleep(0)


class CountingHandle:
    """File-like wrapper around a descriptor that records close calls."""
    def __init__(self, fd: int):
        self.fd = fd
        self.close_count = 0

    def fileno(self):
        return self.fd

    def close(self):
        self.close_count += 1
        os.close(self.fd)


class FakeRemote:
    """The far end of a client's pipes, driven by the test.

    Requests written by the client are read back with `requests`, responses
    are injected with `respond`.
    """
    def __init__(self):
        self._request_fd, self.client_write = os.pipe()
        self.client_read, self._response_fd = os.pipe()
        os.set_blocking(self._request_fd, False)
        self._buffer = bytearray()
        self.firmware = None
        self._closed = False

    def client(self, **kwargs) -> Client:
        return Client(
            read_handle=self.client_read, write_handle=self.client_write, **kwargs
        )

    def _read_available(self):
        while True:
            try:
                data = os.read(self._request_fd, 65536)
            except BlockingIOError:
                return
            if not data:
                return
            self._buffer.extend(data)

    def _read_firmware(self):
        end = self._buffer.find(b"\n")
        assert end != -1, "Firmware length must be sent first"
        length = int(self._buffer[:end])
        start = end + 1
        assert len(self._buffer) >= start + length, "Firmware must be complete"
        self.firmware = bytes(self._buffer[start:start + length])
        del self._buffer[:start + length]

    def requests(self) -> List[Tuple[str, List[str]]]:
        """Requests written since the last call, oldest first."""
        self._read_available()
        if self.firmware is None:
            self._read_firmware()
        out = []
        while True:
            frame = parse_message(self._buffer)
            if frame is None:
                break
            out.append(frame)
        return out

    async def wait_requests(self, timeout=5.0) -> List[Tuple[str, List[str]]]:
        """Wait until at least one request has been written."""
        received = []

        def poll():
            received.extend(self.requests())
            return received

        await wait_for(poll, timeout, "No request received")
        return received

    def respond(self, tag: str, *values: str):
        self.write(write_message(tag, list(values)))

    def write(self, data: bytes):
        os.write(self._response_fd, data)

    def close(self):
        """Close the remote ends, the client sees end of stream."""
        if self._closed:
            return
        self._closed = True
        os.close(self._request_fd)
        os.close(self._response_fd)
