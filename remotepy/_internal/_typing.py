from typing import Callable


# Always False at runtime, lets imports only needed for annotations be
# skipped.
MYPY_CHECK_RUNNING = False

NoneFunction = Callable[[], None]
ResultCallback = Callable[..., None]
ExceptionCallback = Callable[[str], None]
ResponseHandler = Callable[[str, list], None]
