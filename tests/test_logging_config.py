"""Structured logging setup and the pipeline event logger."""

import json
import logging
import tempfile
import unittest
from pathlib import Path

from inventoryd.logging_config import (
    EventLogger,
    configure_logging,
    correlation_id_var,
    get_correlation_id,
)


class TestConfigureLogging(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = logging.getLogger()
        self._saved_handlers = self.root.handlers[:]
        self._saved_level = self.root.level

    def tearDown(self):
        for handler in self.root.handlers[:]:
            self.root.removeHandler(handler)
            if handler not in self._saved_handlers:
                handler.close()
        for handler in self._saved_handlers:
            self.root.addHandler(handler)
        self.root.setLevel(self._saved_level)
        self._tmp.cleanup()

    def test_log_file_receives_json_events(self):
        path = Path(self._tmp.name) / "inventoryd.log"
        configure_logging("debug", json_format=True, log_file=str(path))
        self.assertEqual(self.root.level, logging.DEBUG)

        token = correlation_id_var.set("cycle-1")
        try:
            EventLogger("inventoryd.test.events").report_persisted("sha256:abc", "/tmp/report.json")
        finally:
            correlation_id_var.reset(token)
        for handler in self.root.handlers:
            handler.flush()

        line = path.read_text(encoding="utf-8").strip().splitlines()[-1]
        data = json.loads(line)
        self.assertEqual(data["event_type"], "REPORT_PERSISTED")
        self.assertEqual(data["checksum"], "sha256:abc")
        self.assertEqual(data["correlation_id"], "cycle-1")
        self.assertEqual(data["level"], "INFO")

    def test_replaces_existing_handlers(self):
        configure_logging("warning", json_format=False)
        self.assertEqual(len(self.root.handlers), 1)
        self.assertEqual(self.root.level, logging.WARNING)


class TestCorrelationId(unittest.TestCase):

    def test_default_is_empty(self):
        self.assertEqual(get_correlation_id(), "")

    def test_reads_current_value(self):
        token = correlation_id_var.set("req-7")
        try:
            self.assertEqual(get_correlation_id(), "req-7")
        finally:
            correlation_id_var.reset(token)


if __name__ == "__main__":
    unittest.main()
