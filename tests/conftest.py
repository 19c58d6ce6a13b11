import time

import pytest

from stashx import set_error_handler


@pytest.fixture
def reported():
    """Collect errors handed to the reporter instead of logging them."""
    errors = []
    set_error_handler(errors.append)
    try:
        yield errors
    finally:
        set_error_handler(None)


def wait_for(predicate, timeout=1.0):
    """Poll predicate until it is truthy or timeout elapses. Returns its last result."""
    deadline = time.monotonic() + timeout
    result = predicate()
    while not result and time.monotonic() < deadline:
        time.sleep(0.005)
        result = predicate()
    return result
