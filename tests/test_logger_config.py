import io
import json
import logging

import pytest

from configai.logger_config import LOGGER_NAME, setup_logging


@pytest.fixture
def clean_logger():
    logger = logging.getLogger(LOGGER_NAME)
    saved = logger.handlers[:], logger.level
    logger.handlers = []
    yield logger
    logger.handlers, level = saved
    logger.setLevel(level)


def test_setup_logging_emits_json(clean_logger):
    stream = io.StringIO()
    setup_logging("debug", stream=stream)

    logging.getLogger("configai.store").info("reloaded", extra={'component': 'ConfigStore'})

    record = json.loads(stream.getvalue().splitlines()[-1])
    assert record["message"] == "reloaded"
    assert record["level"] == "INFO"
    assert record["logger"] == "configai.store"
    assert record["service"] == "configai"
    assert record["component"] == "ConfigStore"
    assert "timestamp" in record


def test_setup_logging_is_idempotent(clean_logger):
    setup_logging()
    logger = setup_logging("WARNING")

    assert len(logger.handlers) == 1
    assert logger.level == logging.WARNING
