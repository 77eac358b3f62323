import logging

from unittest.mock import Mock

from remotepy import ChannelClosedError
from remotepy._internal.queue import CorrelationQueue, PendingCall


def make_call(name="EVAL"):
    return PendingCall(name, Mock(), Mock())


def test_responses_go_to_oldest_call():
    queue = CorrelationQueue()
    calls = [make_call() for _ in range(3)]
    for call in calls:
        queue.push(call)

    for i, call in enumerate(calls):
        queue.dispatch("RETURNED", [str(i)])
        call.on_response.assert_called_once_with("RETURNED", [str(i)])

    assert len(queue) == 0


def test_response_without_pending_call_is_discarded(caplog):
    queue = CorrelationQueue()
    with caplog.at_level(logging.ERROR, logger="remotepy"):
        queue.dispatch("RETURNED", ["1"])
    assert "no pending request" in caplog.text

    call = make_call()
    queue.push(call)
    queue.dispatch("OK", [])
    call.on_response.assert_called_once_with("OK", [])


def test_handler_error_does_not_affect_next_call(caplog):
    queue = CorrelationQueue()
    failing = make_call()
    failing.on_response.side_effect = RuntimeError("bad handler")
    following = make_call()
    queue.push(failing)
    queue.push(following)

    with caplog.at_level(logging.ERROR, logger="remotepy"):
        queue.dispatch("RETURNED", [])
    assert "bad handler" in caplog.text

    queue.dispatch("RETURNED", ["2"])
    following.on_response.assert_called_once_with("RETURNED", ["2"])


def test_fail_all_aborts_in_order():
    queue = CorrelationQueue()
    order = []
    for i in range(3):
        queue.push(PendingCall("CALL", Mock(), lambda exc, i=i: order.append((i, exc))))

    exc = ChannelClosedError("gone")
    queue.fail_all(exc)

    assert order == [(0, exc), (1, exc), (2, exc)]
    assert len(queue) == 0
