"""Sequential installation of a set of procedures.
"""
from __future__ import annotations

import logging

from ..errors import ChannelClosedError
from ._typing import MYPY_CHECK_RUNNING

if MYPY_CHECK_RUNNING:
    from typing import Callable, Dict, List, Optional

    from ..client import Client
    from ._typing import ExceptionCallback, NoneFunction


logger = logging.getLogger(__name__)


class LibraryLoad:
    """Stores each procedure of a library batch in turn.

    Only one store is outstanding at any time. The first failure abandons the
    remaining procedures, as does a response of unknown type. Exactly one of
    `on_loaded`, `on_exception` or, if given, `on_unrecognized` is invoked,
    after which the client reference is dropped.
    """
    def __init__(
        self,
        client: Client,
        library: str,
        funcs: Dict[str, str],
        on_loaded: NoneFunction,
        on_exception: ExceptionCallback,
        on_unrecognized: Optional[Callable[[str, List[str]], None]] = None,
    ):
        self._client = client
        self._library = library
        self._remaining = dict(funcs)
        self._on_loaded = on_loaded
        self._on_exception = on_exception
        self._on_unrecognized = on_unrecognized

    @property
    def done(self) -> bool:
        return self._client is None

    def start(self) -> None:
        logger.debug(
            "Loading %d functions from %s", len(self._remaining), self._library
        )
        self._store_next()

    def _store_next(self):
        if self.done:
            return
        if not self._remaining:
            on_loaded, _ = self._finish()
            logger.debug("Loaded %s", self._library)
            on_loaded()
            return

        name = next(iter(self._remaining))
        code = self._remaining.pop(name)
        try:
            self._client.store(
                name,
                code,
                on_stored=self._store_next,
                on_exception=self._fail,
                on_unrecognized=self._unrecognized,
            )
        except ChannelClosedError as e:
            # Closed from inside an earlier continuation.
            self._fail(str(e))

    def _fail(self, message: str):
        if self.done:
            return
        abandoned = len(self._remaining)
        _, on_exception = self._finish()
        logger.debug(
            "Loading %s failed, %d functions not attempted", self._library, abandoned
        )
        on_exception(message)

    def _unrecognized(self, tag: str, values: List[str]):
        if self.done:
            return
        on_unrecognized = self._on_unrecognized
        _, on_exception = self._finish()
        if on_unrecognized is not None:
            on_unrecognized(tag, values)
        else:
            on_exception(f"Unknown return result {tag}")

    def _finish(self):
        callbacks = self._on_loaded, self._on_exception
        self._client = None
        self._remaining.clear()
        self._on_loaded = None
        self._on_exception = None
        self._on_unrecognized = None
        return callbacks
