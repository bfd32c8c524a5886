"""Tests for structured log formatting."""

import json
import logging

from specsynth.utils.logging import StructuredFormatter, log, log_context


class Capture(logging.Handler):
    def __init__(self):
        super().__init__(level=logging.DEBUG)
        self.setFormatter(StructuredFormatter())
        self.lines = []

    def emit(self, record):
        self.lines.append(self.format(record))


def capture_logger(name):
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    handler = Capture()
    logger.handlers = [handler]
    return logger, handler


def test_structured_record_fields():
    logger, handler = capture_logger("specsynth.test.fields")
    log.info(logger, "synthesis", "generate_start", "Generating", sources=3, skipped=None)

    data = json.loads(handler.lines[0])
    assert data["level"] == "INFO"
    assert data["module"] == "synthesis"
    assert data["action"] == "generate_start"
    assert data["msg"] == "Generating"
    assert data["sources"] == 3
    assert "skipped" not in data
    assert data["ts"].endswith("Z")


def test_error_fields():
    logger, handler = capture_logger("specsynth.test.error")
    log.error(logger, "llm.client", "completion_failed", "Failed",
              error="boom", error_type="RuntimeError")

    data = json.loads(handler.lines[0])
    assert data["error"] == "boom"
    assert data["error_type"] == "RuntimeError"


def test_bound_context_applies_inside_block_only():
    logger, handler = capture_logger("specsynth.test.context")
    with log_context(shopify_handle="acme-snuff", operation="generate"):
        log.info(logger, "synthesis", "generate_start", "inside")
    log.info(logger, "synthesis", "generate_done", "outside")

    inside, outside = (json.loads(line) for line in handler.lines)
    assert inside["shopify_handle"] == "acme-snuff"
    assert inside["operation"] == "generate"
    assert "shopify_handle" not in outside


def test_plain_record_is_wrapped():
    logger, handler = capture_logger("specsynth.test.plain")
    logger.warning("plain %s", "message")

    data = json.loads(handler.lines[0])
    assert data["module"] == "specsynth.test.plain"
    assert data["action"] == "log"
    assert data["msg"] == "plain message"


def test_pretty_line():
    formatter = StructuredFormatter(pretty=True)
    record = logging.makeLogRecord({
        "levelname": "INFO", "msg": "Generating", "name": "specsynth",
        "_module": "synthesis", "_action": "generate_start", "_extra": {"sources": 2},
    })
    line = formatter.format(record)
    assert " I [synthesis     ] generate_start: Generating | sources=2" in line
