"""
Tests for the sensor polling loop.

Uses a scripted sensor so every poll result is known in advance.
"""

import time
from unittest.mock import patch

import pytest

from antpulse.bridge import LatestValue, ShutdownSignal
from antpulse.events import DecodedBeatEvent, RawBeatSample
from antpulse.poller import SensorPoller
from antpulse.sensors import (
    ChannelConfig,
    DeviceNotFoundError,
    HeartRateSensor,
    SensorDevice,
    SensorError,
    SensorSetupError,
)
from antpulse.stats import RunStatistics


class ScriptedSensor(HeartRateSensor):
    """Returns scripted poll results in order, then None forever.

    Items that are exceptions are raised instead of returned.
    """

    def __init__(self, script=(), fail_open=None):
        super().__init__(SensorDevice("Scripted"), ChannelConfig())
        self.script = list(script)
        self.fail_open = fail_open
        self.opened = False
        self.closed = False
        self.polls = 0

    @classmethod
    def discover(cls, settings):
        return [SensorDevice("Scripted")]

    def open(self):
        if self.fail_open is not None:
            raise self.fail_open
        self.opened = True

    def poll(self):
        self.polls += 1
        if not self.script:
            return None
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def close(self):
        self.closed = True


def make_poller(sensor, **kwargs):
    channel = LatestValue()
    shutdown = ShutdownSignal()
    poller = SensorPoller(sensor, channel, shutdown.subscribe(), poll_interval_s=0.001,
                          stats=RunStatistics(), **kwargs)
    return poller, channel, shutdown


class TestPollOnce:

    def test_no_data_publishes_nothing(self):
        poller, channel, _ = make_poller(ScriptedSensor([None]))

        assert poller.poll_once() is False
        assert channel.version == 0

    def test_new_beat_published(self):
        poller, channel, _ = make_poller(ScriptedSensor([RawBeatSample(70, 1, 0)]))

        assert poller.poll_once() is True
        assert channel.get() == DecodedBeatEvent(bpm=70)
        assert poller.stats.get('beat_events') == 1

    def test_duplicate_page_not_republished(self):
        sensor = ScriptedSensor([RawBeatSample(70, 1, 0), RawBeatSample(70, 1, 0)])
        poller, channel, _ = make_poller(sensor)

        poller.poll_once()
        poller.poll_once()

        assert channel.version == 1
        assert poller.stats.get('samples') == 2

    def test_zero_bpm_counted_as_dropped(self):
        poller, channel, _ = make_poller(ScriptedSensor([RawBeatSample(0, 1, 0)]))

        poller.poll_once()

        assert channel.version == 0
        assert poller.stats.get('dropped_samples') == 1

    def test_skipped_beats_counted(self):
        sensor = ScriptedSensor([RawBeatSample(70, 1, 0), RawBeatSample(70, 4, 900)])
        poller, channel, _ = make_poller(sensor)

        poller.poll_once()
        poller.poll_once()

        assert poller.stats.get('skipped_beats') == 1
        assert channel.get().skipped is True


class TestRunLoop:

    def test_exits_on_shutdown_and_closes_sensor(self):
        sensor = ScriptedSensor()
        poller, _, shutdown = make_poller(sensor)

        poller.start()
        time.sleep(0.05)
        shutdown.trigger()

        assert poller.join(timeout=1.0) is True
        assert sensor.opened is True
        assert sensor.closed is True
        assert sensor.polls > 0

    def test_shutdown_before_start_polls_nothing(self):
        sensor = ScriptedSensor([RawBeatSample(70, 1, 0)])
        poller, channel, shutdown = make_poller(sensor)
        shutdown.trigger()

        poller.run()

        assert sensor.polls == 0
        assert channel.version == 0

    def test_protocol_error_propagates_from_run(self):
        sensor = ScriptedSensor([SensorError("rx failed")])
        poller, _, _ = make_poller(sensor)

        with pytest.raises(SensorError):
            poller.run()
        assert sensor.closed is True

    def test_protocol_error_ends_thread_and_is_recorded(self):
        sensor = ScriptedSensor([RawBeatSample(70, 1, 0), SensorError("rx failed")])
        poller, channel, shutdown = make_poller(sensor)

        with patch('antpulse.poller.logger') as mock_logger:
            poller.start()
            assert poller.join(timeout=1.0) is True

        assert isinstance(poller.error, SensorError)
        assert channel.get() == DecodedBeatEvent(bpm=70)
        assert shutdown.triggered is False
        errors = [c[0][0] for c in mock_logger.error.call_args_list]
        assert any('rx failed' in m for m in errors)

    def test_setup_failure_ends_thread(self):
        sensor = ScriptedSensor(fail_open=SensorSetupError("Failed to add channel"))
        poller, _, _ = make_poller(sensor)

        poller.start()
        poller.join(timeout=1.0)

        assert isinstance(poller.error, SensorSetupError)
        assert sensor.polls == 0

    def test_sensor_factory_runs_on_polling_thread(self):
        def factory():
            raise DeviceNotFoundError("No ANT+ USB devices found")

        channel = LatestValue()
        shutdown = ShutdownSignal()
        poller = SensorPoller(None, channel, shutdown.subscribe(), sensor_factory=factory)

        poller.start()
        poller.join(timeout=1.0)

        assert isinstance(poller.error, DeviceNotFoundError)

    def test_factory_value_error_recorded_as_setup_error(self):
        def factory():
            raise ValueError("Unknown sensor backend: 'bogus'")

        channel = LatestValue()
        shutdown = ShutdownSignal()
        poller = SensorPoller(None, channel, shutdown.subscribe(), sensor_factory=factory)

        with patch('antpulse.poller.logger') as mock_logger:
            poller.start()
            assert poller.join(timeout=1.0) is True

        assert isinstance(poller.error, SensorSetupError)
        assert isinstance(poller.error.__cause__, ValueError)
        errors = [c[0][0] for c in mock_logger.error.call_args_list]
        assert any('bogus' in m for m in errors)

    def test_requires_sensor_or_factory(self):
        with pytest.raises(ValueError):
            SensorPoller(None, LatestValue(), ShutdownSignal().subscribe())
