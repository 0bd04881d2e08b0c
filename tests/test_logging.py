"""
Tests for structured logging.
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

from edgecdn.logging import (
    JSONFormatter,
    get_logger,
    get_node,
    get_request_id,
    get_resource_id,
    log_context,
    setup_logging,
)


class TestLogContext:
    """Tests for log_context."""

    def test_sets_and_restores(self) -> None:
        with log_context(request_id="req_1", resource_id="a.jpg", node="edge"):
            assert get_request_id() == "req_1"
            assert get_resource_id() == "a.jpg"
            assert get_node() == "edge"

            with log_context(resource_id="b.jpg"):
                assert get_resource_id() == "b.jpg"
                assert get_request_id() == "req_1"

            assert get_resource_id() == "a.jpg"

        assert get_request_id() is None
        assert get_node() is None


class TestJSONLogging:
    """Tests for the JSON file handler."""

    def test_file_lines_carry_context_and_fields(self, temp_dir: Path) -> None:
        log_file = temp_dir / "logs" / "edge.jsonl"
        setup_logging("DEBUG", log_file, console_output=False)
        try:
            logger = get_logger("tests.logging")
            with log_context(request_id="req_1", resource_id="a.jpg", node="edge"):
                logger.info("Cache MISS", key="a.jpg:v1")
        finally:
            for handler in logging.getLogger("edgecdn").handlers:
                handler.close()
            setup_logging("INFO")

        line = json.loads(log_file.read_text().strip().splitlines()[-1])

        assert line["message"] == "Cache MISS"
        assert line["logger"] == "edgecdn.tests.logging"
        assert line["request_id"] == "req_1"
        assert line["node"] == "edge"
        assert line["extra"]["key"] == "a.jpg:v1"

    def test_formatter_includes_exception(self) -> None:
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = logging.LogRecord(
                "edgecdn.x", logging.ERROR, __file__, 1, "failed", None, sys.exc_info()
            )

        payload = json.loads(JSONFormatter().format(record))

        assert payload["level"] == "ERROR"
        assert "RuntimeError: boom" in payload["exception"]
