"""Asynchronous client for a remote Python interpreter.

The client writes requests to the remote interpreter without waiting for
earlier responses. The remote answers strictly in request order, so each
response is handed to the oldest outstanding request.

All methods must be called from the event loop the client was created on.
Arguments and return values are flat sequences of strings, passing anything
else is not supported.
"""
from __future__ import annotations

import asyncio
import logging
import weakref

from ._internal.batch import LibraryLoad
from ._internal.channel import Channel
from ._internal.codec import (
    RequestTypes,
    ResponseTypes,
    firmware_payload,
    write_message,
)
from ._internal.command import ConnectionConfig, build_command
from ._internal.library import load_library
from ._internal.queue import CorrelationQueue, PendingCall
from ._internal._process import ChildProcess
from ._internal._typing import MYPY_CHECK_RUNNING
from .errors import (
    ChannelClosedError,
    ConfigurationError,
    LibraryError,
    ProtocolError,
    RemoteError,
    UsageError,
)

if MYPY_CHECK_RUNNING:
    from typing import Any, Callable, List, Optional, Sequence, Union

    from ._internal._typing import ExceptionCallback, NoneFunction, ResultCallback


logger = logging.getLogger(__name__)


def _check_callable(name: str, value) -> None:
    if not callable(value):
        raise UsageError(f"Expected '{name}' to be callable")


def _check_args(args) -> None:
    if isinstance(args, (str, bytes)):
        raise UsageError("Expected 'args' to be a sequence of strings")


class _FutureContinuations:
    """Continuations that resolve a future, for the coroutine helpers.
    """
    def __init__(self, client: Client):
        self._client = client
        self.future = client._loop.create_future()

    def on_result(self, *values: str):
        if not self.future.done():
            self.future.set_result(list(values))

    def on_loaded(self):
        if not self.future.done():
            self.future.set_result(None)

    def on_exception(self, message: str):
        if self.future.done():
            return
        if self._client.closed:
            self.future.set_exception(ChannelClosedError(message))
        else:
            self.future.set_exception(RemoteError(message))

    def on_abort(self, exc: Exception):
        if not self.future.done():
            self.future.set_exception(exc)

    def on_unrecognized(self, tag: str, _values: List[str]):
        if not self.future.done():
            self.future.set_exception(
                ProtocolError(f"Unknown return result {tag}")
            )


class Client:
    """Drives a remote interpreter over a pair of pipes.

    The channel is given in exactly one of three ways:

    * `read_handle` and `write_handle`: already connected file objects or
      descriptors, owned by the client from now on
    * `command`: an argument vector that starts the interpreter loop, see
      `local_command`
    * `host`: connect with ssh, optionally with `user`, `port`, `ssh_path`,
      `ssh_options` and `python_path` (the remote interpreter)

    Args:
        on_exception: default exception continuation for requests that do not
            pass their own
        loop: event loop to run on, defaults to the running loop

    Raises:
        ConfigurationError if the connection parameters are unusable
        SpawnError if the interpreter process could not be started
    """
    def __init__(
        self,
        *,
        read_handle: Any = None,
        write_handle: Any = None,
        command: Optional[Union[str, Sequence[str]]] = None,
        host: Optional[str] = None,
        user: Optional[str] = None,
        port: Optional[int] = None,
        ssh_path: str = "ssh",
        ssh_options: Optional[Sequence[str]] = None,
        python_path: str = "python3",
        on_exception: Optional[ExceptionCallback] = None,
        loop=None,
    ):
        self._channel: Optional[Channel] = None
        if loop is None:
            loop = asyncio.get_running_loop()
        self._loop = loop
        self.on_exception = on_exception
        self._queue = CorrelationQueue()

        if read_handle is not None or write_handle is not None:
            if read_handle is None or write_handle is None:
                raise ConfigurationError(
                    "Need both 'read_handle' and 'write_handle'"
                )
            if command is not None or host is not None:
                raise ConfigurationError(
                    "Only one of handles, 'command' or 'host' may be given"
                )
            self._channel = Channel(read_handle, write_handle, loop=self._loop)
        else:
            config = ConnectionConfig(
                command=command,
                host=host,
                user=user,
                port=port,
                ssh_path=ssh_path,
                python_path=python_path,
                ssh_options=list(ssh_options or []),
            )
            self._channel = self._spawn(build_command(config))

        # The exit observer and the channel must not keep the client alive,
        # dropping the last reference tears everything down.
        ref = weakref.ref(self)

        def on_closed(exc):
            client = ref()
            if client is not None:
                client._handle_channel_closed(exc)

        self._channel.write(firmware_payload())
        self._channel.attach(self._queue.dispatch, on_closed)

    def _spawn(self, command: List[str]) -> Channel:
        ref = weakref.ref(self)

        def on_exit(returncode):
            client = ref()
            if client is not None:
                client._handle_process_exit(returncode)

        process = ChildProcess(command, loop=self._loop)
        read_fd, write_fd = process.start(on_exit=on_exit)
        return Channel(read_fd, write_fd, process=process, loop=self._loop)

    @property
    def on_exception(self) -> Optional[ExceptionCallback]:
        """Exception continuation used by requests that do not pass one.

        Changing it does not affect requests already sent.
        """
        return self._on_exception

    @on_exception.setter
    def on_exception(self, value: Optional[ExceptionCallback]):
        if value is not None:
            _check_callable("on_exception", value)
        self._on_exception = value

    @property
    def closed(self) -> bool:
        return self._channel is None or self._channel.closed

    @property
    def pending(self) -> int:
        """Number of requests still waiting for a response."""
        return len(self._queue)

    @property
    def pid(self) -> Optional[int]:
        """Process id of the spawned interpreter, if we spawned it."""
        if self._channel is None or self._channel.process is None:
            return None
        return self._channel.process.pid

    def evaluate(
        self,
        code: str,
        args: Sequence[str] = (),
        *,
        on_result: ResultCallback = None,
        on_exception: Optional[ExceptionCallback] = None,
        on_unrecognized: Optional[Callable[[str, List[str]], None]] = None,
    ) -> None:
        """Run `code` remotely as the body of a function called with `args`.

        A single expression is returned as the function's value.

        Args:
            on_result: called with the returned strings as positional arguments
            on_exception: called with the remote error message, defaults to
                `self.on_exception`
            on_unrecognized: called with the tag and values of a response the
                protocol does not define, after it has been logged

        Raises:
            UsageError if a continuation is missing or not callable
            UsageError if `args` is a single string
            ChannelClosedError if the client is closed
        """
        _check_callable("on_result", on_result)
        _check_args(args)
        on_exception = self._resolve_on_exception(on_exception)
        self._send(
            RequestTypes.evaluate,
            [code, *args],
            ResponseTypes.returned,
            on_result,
            on_exception,
            on_unrecognized=on_unrecognized,
        )

    def store(
        self,
        name: str,
        code: str,
        *,
        on_stored: NoneFunction = None,
        on_exception: Optional[ExceptionCallback] = None,
        on_unrecognized: Optional[Callable[[str, List[str]], None]] = None,
    ) -> None:
        """Compile `code` remotely and keep it as the procedure `name`.

        Same continuations as `evaluate`, `on_stored` takes no arguments.
        """
        _check_callable("on_stored", on_stored)
        on_exception = self._resolve_on_exception(on_exception)
        self._send(
            RequestTypes.store,
            [name, code],
            ResponseTypes.stored,
            on_stored,
            on_exception,
            on_unrecognized=on_unrecognized,
        )

    def call(
        self,
        name: str,
        args: Sequence[str] = (),
        *,
        on_result: ResultCallback = None,
        on_exception: Optional[ExceptionCallback] = None,
        on_unrecognized: Optional[Callable[[str, List[str]], None]] = None,
    ) -> None:
        """Invoke the stored procedure `name` with `args`.

        Same continuations as `evaluate`.
        """
        _check_callable("on_result", on_result)
        _check_args(args)
        on_exception = self._resolve_on_exception(on_exception)
        self._send(
            RequestTypes.call,
            [name, *args],
            ResponseTypes.returned,
            on_result,
            on_exception,
            on_unrecognized=on_unrecognized,
        )

    def use_library(
        self,
        library: str,
        funcs: Optional[Sequence[str]] = None,
        *,
        on_loaded: NoneFunction = None,
        on_exception: Optional[ExceptionCallback] = None,
    ) -> None:
        """Store every procedure of `library`, one at a time.

        Args:
            library: built-in library name or importable module path
            funcs: only store these procedures
            on_loaded: called once all procedures are stored
            on_exception: called once, with the message of the library lookup
                failure, of the first store that failed or of an unknown
                response. Remaining procedures are not sent.

        Raises:
            UsageError if a continuation is missing or not callable
            ChannelClosedError if the client is closed
        """
        _check_callable("on_loaded", on_loaded)
        on_exception = self._resolve_on_exception(on_exception)
        if self.closed:
            raise ChannelClosedError("Client is closed")

        try:
            procedures = load_library(library, funcs)
        except LibraryError as e:
            on_exception(str(e))
            return

        LibraryLoad(self, library, procedures, on_loaded, on_exception).start()

    async def evaluate_async(self, code: str, args: Sequence[str] = ()) -> List[str]:
        """Coroutine form of `evaluate`.

        Raises:
            RemoteError if the remote code failed
            ChannelClosedError if the channel closed first
            ProtocolError on an unknown response
        """
        _check_args(args)
        continuations = _FutureContinuations(self)
        self._send(
            RequestTypes.evaluate,
            [code, *args],
            ResponseTypes.returned,
            continuations.on_result,
            continuations.on_exception,
            on_abort=continuations.on_abort,
            on_unrecognized=continuations.on_unrecognized,
        )
        return await continuations.future

    async def store_async(self, name: str, code: str) -> None:
        continuations = _FutureContinuations(self)
        self._send(
            RequestTypes.store,
            [name, code],
            ResponseTypes.stored,
            continuations.on_loaded,
            continuations.on_exception,
            on_abort=continuations.on_abort,
            on_unrecognized=continuations.on_unrecognized,
        )
        await continuations.future

    async def call_async(self, name: str, args: Sequence[str] = ()) -> List[str]:
        _check_args(args)
        continuations = _FutureContinuations(self)
        self._send(
            RequestTypes.call,
            [name, *args],
            ResponseTypes.returned,
            continuations.on_result,
            continuations.on_exception,
            on_abort=continuations.on_abort,
            on_unrecognized=continuations.on_unrecognized,
        )
        return await continuations.future

    async def use_library_async(
        self, library: str, funcs: Optional[Sequence[str]] = None
    ) -> None:
        """Coroutine form of `use_library`.

        Raises:
            LibraryError if the library cannot be resolved
            RemoteError if storing a procedure failed
            ProtocolError on an unknown response
        """
        if self.closed:
            raise ChannelClosedError("Client is closed")
        procedures = load_library(library, funcs)
        continuations = _FutureContinuations(self)
        LibraryLoad(
            self,
            library,
            procedures,
            continuations.on_loaded,
            continuations.on_exception,
            continuations.on_unrecognized,
        ).start()
        await continuations.future

    def close(self) -> None:
        """Close the channel and fail any requests still pending.

        Safe to call more than once. Does not wait for the remote process to
        exit.
        """
        if self._channel is None:
            return
        self._channel.close()
        self._queue.fail_all(ChannelClosedError("Client closed"))

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.close()

    def __del__(self):
        # Continuations are not run from the finalizer.
        channel = getattr(self, "_channel", None)
        if channel is not None:
            channel.close()

    def _resolve_on_exception(
        self, on_exception: Optional[ExceptionCallback]
    ) -> ExceptionCallback:
        if on_exception is None:
            on_exception = self._on_exception
        _check_callable("on_exception", on_exception)
        return on_exception

    def _send(
        self,
        request: str,
        values: List[str],
        success: str,
        on_success: Callable[..., None],
        on_exception: ExceptionCallback,
        on_abort: Optional[Callable[[Exception], None]] = None,
        on_unrecognized: Optional[Callable[[str, List[str]], None]] = None,
    ) -> None:
        """Write one request and queue its response handler.

        Nothing between the write and the push may yield to the event loop.
        """
        if on_abort is None:
            def on_abort(exc):
                on_exception(str(exc))

        def on_response(tag: str, response: List[str]):
            if tag == success:
                on_success(*response)
            elif tag == ResponseTypes.died:
                on_exception(response[0] if response else "")
            else:
                logger.warning("Unknown return result %s to %s", tag, request)
                if on_unrecognized is not None:
                    on_unrecognized(tag, response)

        data = write_message(request, values)
        if self.closed:
            raise ChannelClosedError("Client is closed")
        self._channel.write(data)
        self._queue.push(PendingCall(request, on_response, on_abort))

    def _handle_channel_closed(self, exc: Exception):
        logger.debug("Channel closed: %s", exc)
        self._queue.fail_all(exc)

    def _handle_process_exit(self, returncode: int):
        # Pending calls are failed when the channel reports the end of the
        # stream.
        if len(self._queue):
            logger.warning(
                "Remote process exited early with %s, %d requests outstanding",
                returncode,
                len(self._queue),
            )
        else:
            logger.debug("Remote process exited with %s", returncode)
