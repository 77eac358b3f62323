import logging

from pathlib import Path

import pytest

from .utils.process import contained_children
from .utils.pytest import current_test_name

from remotepy._internal._logging import DefaultSingleLineLogFormatter


log_dir = Path(__file__).parent.parent / "logs"


logger = logging.getLogger(__name__)


def get_log_file(test_name=None):
    if not test_name:
        test_name = current_test_name()

    return log_dir / f"{test_name}.log"


@pytest.fixture
def log_file_path():
    return get_log_file()


_last_handler = None


def pytest_runtest_setup(item):
    global _last_handler
    path = get_log_file(item.name)
    path.parent.mkdir(parents=True, exist_ok=True)

    class TestNameAdderFilter(logging.Filter):
        def filter(self, record):
            record.test_name = current_test_name()
            return True

    root_logger = logging.getLogger("")
    root_logger.addFilter(TestNameAdderFilter())
    root_logger.setLevel(logging.DEBUG)

    formatter = DefaultSingleLineLogFormatter(["process", "pid", "test_name"])
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    if _last_handler:
        root_logger.removeHandler(_last_handler)
        _last_handler.close()
    _last_handler = handler

    logger.info("---------- Starting test ----------")


@pytest.fixture
def children():
    """Kill any interpreter processes a test leaves behind."""
    with contained_children() as tracked:
        yield tracked
