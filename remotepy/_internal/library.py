"""Named collections of remote procedures.

A library is a module with a module-level `library` attribute::

    from remotepy import Library

    library = Library("example")

    library.func("double", '''
        return str(int(args[0]) * 2)
    ''')

Function bodies receive their arguments as the strings in `args` and may
use the shared `state` dict.
"""
from __future__ import annotations

import importlib
import textwrap

from ..errors import LibraryError
from ._typing import MYPY_CHECK_RUNNING

if MYPY_CHECK_RUNNING:
    from typing import Dict, Optional, Sequence


BUILTIN_PACKAGE = "remotepy.libraries"


class Library:
    def __init__(self, name: str):
        self.name = name
        self._funcs: Dict[str, str] = {}

    def func(self, name: str, code: str) -> None:
        if name in self._funcs:
            raise ValueError(f"Function {name} already declared in {self.name}")
        self._funcs[name] = textwrap.dedent(code).strip("\n")

    @property
    def funcs(self) -> Dict[str, str]:
        return dict(self._funcs)


def _import_library(name: str) -> Library:
    module_name = name if "." in name else f"{BUILTIN_PACKAGE}.{name}"
    try:
        module = importlib.import_module(module_name)
    except ModuleNotFoundError as e:
        # Only a missing library is reported as such, broken imports inside
        # the library module propagate.
        if e.name is None or not module_name.startswith(e.name):
            raise
        raise LibraryError(f"Cannot find library {name}") from e

    library = getattr(module, "library", None)
    if not isinstance(library, Library):
        raise LibraryError(f"Module {module_name} does not define a library")
    return library


def load_library(
    name: str, funcs: Optional[Sequence[str]] = None
) -> Dict[str, str]:
    """Resolve a library into a mapping of procedure name to source.

    Args:
        name: built-in library name or importable module path
        funcs: only load these functions

    Raises:
        LibraryError if the library or a requested function does not exist
    """
    available = _import_library(name).funcs
    if funcs is None:
        return available

    missing = [f for f in funcs if f not in available]
    if missing:
        raise LibraryError(
            f"Library {name} does not define {', '.join(missing)}"
        )
    return {f: available[f] for f in funcs}
