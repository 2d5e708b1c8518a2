"""Tests for request-scoped logging."""

from __future__ import annotations

import logging
import os
import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient

from inbox.main import create_app
from inbox.utils.logging_config import JSON_FORMAT, RequestIdFilter, request_id_var, setup_logging


class _ListHandler(logging.Handler):
    def __init__(self) -> None:
        super().__init__()
        self.records: list[logging.LogRecord] = []
        self.addFilter(RequestIdFilter())

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


class RequestIdFilterTests(unittest.TestCase):
    def _record(self) -> logging.LogRecord:
        return logging.LogRecord("inbox", logging.INFO, __file__, 1, "hello", None, None)

    def test_placeholder_outside_requests(self) -> None:
        record = self._record()

        RequestIdFilter().filter(record)

        self.assertEqual(record.request_id, "-")

    def test_current_request_id_is_stamped(self) -> None:
        token = request_id_var.set("req-42")
        self.addCleanup(request_id_var.reset, token)
        record = self._record()

        self.assertTrue(RequestIdFilter().filter(record))
        self.assertEqual(record.request_id, "req-42")

    def test_setup_logging_installs_filter_and_format(self) -> None:
        setup_logging(level="debug", formatter="json")
        self.addCleanup(setup_logging)

        root = logging.getLogger()
        handler = next(h for h in root.handlers if h.filters)
        self.assertEqual(root.level, logging.DEBUG)
        self.assertEqual(handler.formatter._fmt, JSON_FORMAT)
        self.assertTrue(any(isinstance(f, RequestIdFilter) for f in handler.filters))


class RequestLoggingTests(unittest.TestCase):
    def setUp(self) -> None:
        env = patch.dict(os.environ, {"LOG_LEVEL": "INFO"})
        env.start()
        self.addCleanup(env.stop)

        self.client = TestClient(create_app())
        self.handler = _ListHandler()
        logger = logging.getLogger("inbox.core.middleware")
        logger.addHandler(self.handler)
        self.addCleanup(logger.removeHandler, self.handler)

    def test_request_log_carries_caller_request_id(self) -> None:
        response = self.client.get("/health", headers={"X-Request-ID": "abc-123"})

        self.assertEqual(response.headers["X-Request-ID"], "abc-123")
        self.assertEqual(len(self.handler.records), 1)
        record = self.handler.records[0]
        self.assertEqual(record.request_id, "abc-123")
        self.assertIn("status=200", record.getMessage())
        self.assertIn("path=/health", record.getMessage())
        self.assertEqual(request_id_var.get(), "-")

    def test_request_id_is_generated_when_missing(self) -> None:
        response = self.client.get("/health")

        generated = response.headers["X-Request-ID"]
        self.assertTrue(generated)
        self.assertEqual(self.handler.records[0].request_id, generated)


if __name__ == "__main__":
    unittest.main()
