"""
Tests for the antpulse log formatter and level handling.
"""

import logging
import sys
import threading

from antpulse.log import PulseFormatter, get_logger, set_level


def make_record(name, level, msg):
    return logging.LogRecord(name, level, __file__, 1, msg, None, None)


class TestPulseFormatter:

    def test_prefix_layout(self):
        line = PulseFormatter().format(make_record("antpulse.decoder", logging.WARNING, "Skipped 1 beat(s)"))

        assert line.startswith("[W ")
        assert " decoder  ] Skipped 1 beat(s)" in line

    def test_long_module_name_truncated(self):
        line = PulseFormatter().format(make_record("antpulse.sensors.emulator", logging.INFO, "hi"))

        assert " emulator ] hi" in line

    def test_worker_thread_tagged(self):
        records = []
        worker = threading.Thread(
            target=lambda: records.append(make_record("antpulse.poller", logging.INFO, "Sensor thread started")),
            name="SensorPoller",
        )
        worker.start()
        worker.join()

        line = PulseFormatter().format(records[0])

        assert " poller   @SensorPoller] Sensor thread started" in line

    def test_exception_appended(self):
        try:
            raise RuntimeError("rx failed")
        except RuntimeError:
            record = logging.LogRecord("antpulse.poller", logging.ERROR, __file__, 1,
                                       "Sensor thread failed", None, sys.exc_info())

        line = PulseFormatter().format(record)

        assert line.splitlines()[0].endswith("] Sensor thread failed")
        assert "RuntimeError: rx failed" in line


class TestLevels:

    def test_explicit_level(self):
        logger = get_logger("antpulse.test_explicit", level="DEBUG")

        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1

    def test_env_level(self, monkeypatch):
        monkeypatch.setenv("ANTPULSE_LOG_LEVEL", "ERROR")

        assert get_logger("antpulse.test_env").level == logging.ERROR

    def test_set_level_applies_to_existing_loggers(self):
        first = get_logger("antpulse.test_a", level="INFO")
        second = get_logger("antpulse.test_b", level="INFO")

        set_level("WARNING")
        try:
            assert first.level == logging.WARNING
            assert second.level == logging.WARNING
        finally:
            set_level("INFO")
