"""
Tests for settings validation and the logging helpers.
"""

import json
import logging

import pytest
from pydantic import ValidationError

from userstore.core.config import Settings, validate_settings
from userstore.core.logging import (
    ContextFilter,
    DevelopmentFormatter,
    LogContext,
    StructuredFormatter,
    get_logger,
    setup_logging,
)


# ==================== settings ====================

def test_defaults():
    config = Settings(_env_file=None)

    assert config.USERS_COLLECTION == "users"
    assert config.BATCH_QUERY_CHUNK_SIZE == 10
    assert config.DEFAULT_SEARCH_LIMIT == 20
    assert config.DEFAULT_PREMIUM_LIMIT == 100


@pytest.mark.parametrize("size", [0, 31])
def test_chunk_size_bounds(size):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, BATCH_QUERY_CHUNK_SIZE=size)


def test_production_refuses_localhost():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, ENVIRONMENT="production", MONGODB_URL="mongodb://localhost:27017")


def test_environment_flags():
    config = Settings(_env_file=None, ENVIRONMENT="production", MONGODB_URL="mongodb+srv://cluster.example.net")

    assert config.is_production
    assert not config.is_development


def test_validate_settings_reports_pool_misconfiguration():
    config = Settings(_env_file=None, MONGODB_MIN_POOL_SIZE=20, MONGODB_MAX_POOL_SIZE=5)

    with pytest.raises(ValueError, match="MONGODB_MIN_POOL_SIZE"):
        validate_settings(config)


def test_validate_settings_accepts_defaults():
    assert validate_settings(Settings(_env_file=None)) is True


# ==================== logging ====================

def test_get_logger_namespaces_under_userstore():
    assert get_logger("scripts.init_db").name == "userstore.scripts.init_db"
    assert get_logger("userstore.db.mongo").name == "userstore.db.mongo"


class _Collector(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []
        self.addFilter(ContextFilter())

    def emit(self, record):
        self.records.append(record)


def test_log_context_attaches_and_resets():
    logger = get_logger("tests.context")
    collector = _Collector()
    logger.addHandler(collector)
    logger.setLevel(logging.INFO)

    try:
        with LogContext(user_id="u1", operation="block_user"):
            logger.info("inside")
            logger.info("explicit", extra={"user_id": "u2"})
        logger.info("outside")
    finally:
        logger.removeHandler(collector)

    inside, explicit, outside = collector.records
    assert inside.user_id == "u1"
    assert inside.operation == "block_user"
    assert explicit.user_id == "u2"
    assert explicit.operation == "block_user"
    assert not hasattr(outside, "user_id")


def test_structured_formatter_emits_json_with_context():
    record = logging.LogRecord("userstore.test", logging.ERROR, __file__, 10, "failed", None, None)
    record.user_id = "u1"

    data = json.loads(StructuredFormatter().format(record))

    assert data["level"] == "ERROR"
    assert data["message"] == "failed"
    assert data["user_id"] == "u1"


def test_development_formatter_shows_context():
    record = logging.LogRecord("userstore.test", logging.INFO, __file__, 10, "hello", None, None)
    record.user_id = "u1"

    line = DevelopmentFormatter().format(record)

    assert "hello" in line
    assert "user_id=u1" in line


def test_setup_logging_picks_formatter_by_environment():
    production = Settings(_env_file=None, ENVIRONMENT="production", MONGODB_URL="mongodb+srv://cluster.example.net")

    logger = setup_logging(production)
    assert isinstance(logger.handlers[0].formatter, StructuredFormatter)

    logger = setup_logging(Settings(_env_file=None, LOG_LEVEL="WARNING"))
    assert isinstance(logger.handlers[0].formatter, DevelopmentFormatter)
    assert logger.level == logging.WARNING
    assert len(logger.handlers) == 1
