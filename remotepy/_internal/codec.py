"""Frame encoding shared by the client and the remote interpreter loop.

A frame is::

    TAG\\n
    COUNT\\n
    LENGTH\\n<LENGTH bytes>      (COUNT times)

All values are UTF-8 strings, LENGTH counts encoded bytes.
"""
from __future__ import annotations

from pathlib import Path

from ..errors import ProtocolError
from ._typing import MYPY_CHECK_RUNNING

if MYPY_CHECK_RUNNING:
    from typing import List, Optional, Sequence, Tuple


class RequestTypes:
    evaluate = "EVAL"
    store = "STORE"
    call = "CALL"


class ResponseTypes:
    returned = "RETURNED"
    stored = "OK"
    died = "DIED"


# Run by the remote interpreter with `-c`. Reads the length-prefixed firmware
# from stdin and executes it, the remainder of stdin is then the frame stream.
BOOTSTRAP = (
    "import sys;"
    "exec(compile(sys.stdin.buffer.read(int(sys.stdin.buffer.readline())),"
    "'<remotepy firmware>','exec'))"
)

_firmware_path = Path(__file__).with_name("_firmware.py")


def firmware_payload() -> bytes:
    """The handshake written once, before any request."""
    source = _firmware_path.read_bytes()
    return b"%d\n%s" % (len(source), source)


def write_message(tag: str, values: Sequence[str] = ()) -> bytes:
    """Encode one frame.

    Raises:
        TypeError if any value is not a string
    """
    parts = [tag.encode("ascii"), b"\n", b"%d\n" % len(values)]
    for value in values:
        if not isinstance(value, str):
            raise TypeError(
                f"Only string values are supported, got {type(value).__name__}"
            )
        data = value.encode("utf-8")
        parts.append(b"%d\n" % len(data))
        parts.append(data)
    return b"".join(parts)


def _read_int(buffer: bytearray, pos: int) -> Tuple[Optional[int], int]:
    end = buffer.find(b"\n", pos)
    if end == -1:
        return None, pos
    line = bytes(buffer[pos:end])
    try:
        value = int(line)
    except ValueError:
        raise ProtocolError(f"Expected an integer header, got {line!r}") from None
    if value < 0:
        raise ProtocolError(f"Negative length in header: {value}")
    return value, end + 1


def parse_message(buffer: bytearray) -> Optional[Tuple[str, List[str]]]:
    """Decode one frame from the front of `buffer`.

    The frame's bytes are removed from `buffer` only when the whole frame is
    available, otherwise the buffer is left as-is and None is returned.

    Raises:
        ProtocolError if the buffer does not hold a well-formed frame
    """
    end = buffer.find(b"\n")
    if end == -1:
        return None
    try:
        tag = bytes(buffer[:end]).decode("ascii")
    except UnicodeDecodeError:
        raise ProtocolError(f"Invalid message tag {bytes(buffer[:end])!r}") from None
    pos = end + 1

    count, pos = _read_int(buffer, pos)
    if count is None:
        return None

    values = []
    for _ in range(count):
        length, pos = _read_int(buffer, pos)
        if length is None or len(buffer) < pos + length:
            return None
        try:
            values.append(bytes(buffer[pos:pos + length]).decode("utf-8"))
        except UnicodeDecodeError as e:
            raise ProtocolError(f"Invalid value encoding: {e}") from None
        pos += length

    del buffer[:pos]
    return tag, values
