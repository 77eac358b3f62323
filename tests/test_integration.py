"""Tests against a real interpreter started with `local_command`.
"""
import asyncio
import logging

from unittest.mock import Mock

import psutil
import pytest

from remotepy import (
    ChannelClosedError,
    Client,
    RemoteError,
    SpawnError,
    local_command,
)

from .utils import wait_for
from .utils.process import open_fd_count
from .utils.pytest import non_windows


logger = logging.getLogger(__name__)


pytestmark = non_windows


def spawn_client(**kwargs) -> Client:
    return Client(command=local_command(), **kwargs)


async def wait_exited(pid, timeout=5.0):
    await wait_for(
        lambda: not psutil.pid_exists(pid),
        timeout,
        f"Interpreter {pid} did not exit",
    )


@pytest.mark.asyncio
async def test_evaluate(children):
    async with spawn_client() as client:
        assert await client.evaluate_async("1 + 1") == ["2"]
        assert await client.evaluate_async("args[0] + args[1]", ["a", "b"]) == ["ab"]
        assert await client.evaluate_async(
            "return [a.upper() for a in args]", ["x", "y"]
        ) == ["X", "Y"]
        assert await client.evaluate_async("x = 1") == []


@pytest.mark.asyncio
async def test_values_are_length_delimited(children):
    async with spawn_client() as client:
        value = "multi\nline ✓ héllo\n"
        assert await client.evaluate_async("args[0]", [value]) == [value]
        assert await client.evaluate_async("args", ["", "b"]) == ["", "b"]


@pytest.mark.asyncio
async def test_remote_failure(children):
    async with spawn_client() as client:
        with pytest.raises(RemoteError) as exc_info:
            await client.evaluate_async("1 / 0")
        assert exc_info.value.message == "ZeroDivisionError: division by zero"

        # The interpreter keeps serving after a failure.
        assert await client.evaluate_async("'still here'") == ["still here"]


@pytest.mark.asyncio
async def test_callback_interface(children):
    async with spawn_client() as client:
        on_result = Mock()
        on_exception = Mock()
        client.evaluate("args[0] * 2", ["ab"], on_result=on_result, on_exception=on_exception)
        client.evaluate("raise KeyError('k')", on_result=on_result, on_exception=on_exception)

        await wait_for(lambda: on_exception.called)
        on_result.assert_called_once_with("abab")
        on_exception.assert_called_once_with("KeyError: 'k'")


@pytest.mark.asyncio
async def test_store_and_call(children):
    async with spawn_client() as client:
        await client.store_async("join", "return '-'.join(args)")
        assert await client.call_async("join", ["a", "b", "c"]) == ["a-b-c"]

        with pytest.raises(RemoteError, match="No such stored function 'missing'"):
            await client.call_async("missing")

        with pytest.raises(RemoteError, match="SyntaxError"):
            await client.store_async("bad", "def (")


@pytest.mark.asyncio
async def test_state_is_shared_between_procedures(children):
    async with spawn_client() as client:
        await client.store_async("incr", """
            state["n"] = state.get("n", 0) + 1
            return str(state["n"])
        """)
        assert await client.call_async("incr") == ["1"]
        assert await client.call_async("incr") == ["2"]
        assert await client.evaluate_async("state['n']") == ["2"]


@pytest.mark.asyncio
async def test_printing_does_not_corrupt_stream(children):
    async with spawn_client() as client:
        result = await client.evaluate_async("print('noise')\nreturn 'ok'")
        assert result == ["ok"]
        assert await client.evaluate_async("'next'") == ["next"]


@pytest.mark.asyncio
async def test_pipelined_requests_keep_order(children):
    async with spawn_client() as client:
        results = []
        on_exception = Mock()
        for i in range(50):
            client.evaluate(
                "args[0]", [str(i)], on_result=results.append, on_exception=on_exception
            )
        assert client.pending == 50

        await wait_for(lambda: len(results) == 50, 10)
        assert results == [str(i) for i in range(50)]
        on_exception.assert_not_called()
        assert client.pending == 0


@pytest.mark.asyncio
async def test_concurrent_coroutines(children):
    async with spawn_client() as client:
        results = await asyncio.gather(
            *(client.evaluate_async("str(int(args[0]) ** 2)", [str(i)]) for i in range(10))
        )
        assert results == [[str(i ** 2)] for i in range(10)]


@pytest.mark.asyncio
async def test_fs_library(children, tmp_path):
    path = tmp_path / "data.txt"
    async with spawn_client() as client:
        await client.use_library_async("fs")

        await client.call_async("write_file", [str(path), "contents ✓"])
        assert path.read_text(encoding="utf-8") == "contents ✓"
        assert await client.call_async("read_file", [str(path)]) == ["contents ✓"]
        assert await client.call_async("readdir", [str(tmp_path)]) == ["data.txt"]
        assert await client.call_async("exists", [str(tmp_path / "nope")]) == [""]

        await client.call_async("mkdir", [str(tmp_path / "sub")])
        assert await client.call_async("isdir", [str(tmp_path / "sub")]) == ["1"]

        stat = await client.call_async("stat", [str(path)])
        assert len(stat) == 10
        assert stat[6] == str(path.stat().st_size)

        with pytest.raises(RemoteError, match="FileNotFoundError"):
            await client.call_async("unlink", [str(tmp_path / "nope")])


@pytest.mark.asyncio
async def test_io_library_keeps_handles(children, tmp_path):
    path = tmp_path / "handle.txt"
    async with spawn_client() as client:
        await client.use_library_async("io")

        [handle] = await client.call_async("open", [str(path), "w+"])
        await client.call_async("write", [handle, "hello"])
        assert await client.call_async("seek", [handle, "0"]) == ["0"]
        assert await client.call_async("read", [handle]) == ["hello"]
        await client.call_async("close", [handle])

        with pytest.raises(RemoteError, match="KeyError"):
            await client.call_async("read", [handle])


@pytest.mark.asyncio
async def test_close_does_not_wait_for_exit(children):
    client = spawn_client()
    pid = client.pid
    assert psutil.pid_exists(pid)

    on_exception = Mock()
    client.evaluate("import time; time.sleep(0.2)", on_result=Mock(), on_exception=on_exception)
    client.close()

    assert client.closed
    on_exception.assert_called_once_with("Client closed")
    await wait_exited(pid)


@pytest.mark.asyncio
async def test_remote_exit_fails_pending(children):
    async with spawn_client() as client:
        with pytest.raises(ChannelClosedError):
            await client.evaluate_async("import os; os._exit(3)")
        assert client.closed

        with pytest.raises(ChannelClosedError):
            client.evaluate("1", on_result=Mock(), on_exception=Mock())


@pytest.mark.asyncio
async def test_spawn_failure_leaks_nothing(children):
    before = open_fd_count()
    with pytest.raises(SpawnError):
        Client(command=["/nonexistent/remotepy-interpreter"])
    assert open_fd_count() == before


@pytest.mark.asyncio
async def test_no_descriptor_leak(children):
    before = open_fd_count()

    client = spawn_client()
    pid = client.pid
    assert await client.evaluate_async("'x'") == ["x"]
    client.close()
    await wait_exited(pid)

    assert open_fd_count() == before
