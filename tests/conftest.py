import logging

import pytest


@pytest.fixture(autouse=True)
def _restore_package_logger():
    """setup_logging() detaches the package logger from the root; undo it."""
    yield
    logger = logging.getLogger("chip8_vm")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
