"""Global test configuration.

Keeps the vigil logger quiet between tests that call configure_logging.
"""

import logging

import pytest


@pytest.fixture(autouse=True)
def _reset_vigil_logger():
    yield
    logger = logging.getLogger("vigil")
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
