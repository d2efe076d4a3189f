"""
Test Configuration Module
"""

import logging

import pytest

from protocol_bridge.config import reset_settings


@pytest.fixture(autouse=True)
def fresh_settings():
    """Re-read configuration for every test so env overrides never leak"""
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def restore_package_logger():
    """Undo handler/propagation changes made by setup_logging()"""
    package_logger = logging.getLogger("protocol_bridge")
    handlers = list(package_logger.handlers)
    level = package_logger.level
    propagate = package_logger.propagate
    yield package_logger
    package_logger.handlers = handlers
    package_logger.setLevel(level)
    package_logger.propagate = propagate
