"""
Pytest fixtures shared by all TEMPFOCUS tests.
"""

import logging

import pytest


@pytest.fixture(autouse=True)
def reset_tempfocus_loggers():
    """Drop handlers installed by setup_logging() so tests stay isolated."""
    yield
    for name in ("tempfocus", "TEMPFOCUS", "TEMPFOCUS.Guiding", "TEMPFOCUS.Focus"):
        logger = logging.getLogger(name)
        for handler in logger.handlers:
            handler.close()
        logger.handlers.clear()
        logger.setLevel(logging.NOTSET)
