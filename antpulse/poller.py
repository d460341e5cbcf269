#!/usr/bin/env python3
"""
Sensor Poller - blocking heart rate polling loop on a dedicated thread

Owns the sensor handle and the beat decoder. Nothing else touches either;
the only thing that leaves this thread is the DecodedBeatEvent published to
the LatestValue channel.

LOOP:
    open sensor
    until shutdown:
        sample = sensor.poll()          (non-blocking)
        event = decoder.decode(sample)  (synchronously, right after receipt)
        channel.publish(event)          (if a new heartbeat)
        sleep POLL_INTERVAL_S
    close sensor

ERRORS:
    SensorError (setup or protocol) ends the loop. run() raises it; start()
    runs the loop on a thread that logs it and records it in self.error, so
    the consumer side keeps running and simply stops receiving beats.

USAGE:
    poller = SensorPoller(sensor, channel, shutdown.subscribe())
    poller.start()
    ...
    shutdown.trigger()
    poller.join()
"""

import threading
import time
from typing import Callable, Optional

from antpulse.bridge import LatestValue, ShutdownListener
from antpulse.config import DEFAULT_POLL_INTERVAL_S
from antpulse.decoder import BeatDecoder
from antpulse.log import get_logger
from antpulse.sensors import HeartRateSensor, SensorError, SensorSetupError
from antpulse.stats import RunStatistics

logger = get_logger(__name__)


class SensorPoller:
    """Blocking poll/decode/publish loop for one sensor session.

    Attributes:
        sensor (HeartRateSensor): Sensor backend, owned exclusively by this loop
        sensor_factory (callable or None): Builds the sensor on the polling thread
        channel (LatestValue): Where decoded beat events are published
        shutdown (ShutdownListener): This loop's own shutdown subscription
        decoder (BeatDecoder): Decoder state for this session
        poll_interval_s (float): Idle time between polls
        stats (RunStatistics): Shared counters
        error (SensorError or None): Fatal error that ended the thread, if any
    """

    def __init__(self, sensor: Optional[HeartRateSensor], channel: LatestValue,
                 shutdown: ShutdownListener,
                 poll_interval_s: float = DEFAULT_POLL_INTERVAL_S,
                 decoder: Optional[BeatDecoder] = None,
                 stats: Optional[RunStatistics] = None,
                 sensor_factory: Optional[Callable[[], HeartRateSensor]] = None):
        if sensor is None and sensor_factory is None:
            raise ValueError("SensorPoller needs a sensor or a sensor_factory")
        self.sensor = sensor
        self.sensor_factory = sensor_factory
        self.channel = channel
        self.shutdown = shutdown
        self.poll_interval_s = poll_interval_s
        self.decoder = decoder if decoder is not None else BeatDecoder()
        self.stats = stats if stats is not None else RunStatistics()

        self.thread: Optional[threading.Thread] = None
        self.error: Optional[SensorError] = None

    def run(self) -> None:
        """Open the sensor and poll until shutdown.

        Device discovery and selection run here too when the poller was
        built from a sensor_factory, so a missing radio only ends this thread.

        Raises:
            SensorError: On setup or protocol failure (sensor is closed first).
                A factory rejecting its settings with ValueError is raised
                as SensorSetupError
        """
        if self.sensor is None:
            try:
                self.sensor = self.sensor_factory()
            except ValueError as e:
                raise SensorSetupError(str(e)) from e

        try:
            logger.info("Opening heart rate monitor channel")
            self.sensor.open()
            logger.info("Sensor setup complete, listening for heart rate data")

            while True:
                if self.shutdown.is_set():
                    logger.info("Shutting down sensor session")
                    break

                self.poll_once()
                time.sleep(self.poll_interval_s)
        finally:
            self.sensor.close()

    def poll_once(self) -> bool:
        """Poll the sensor once and publish a new heartbeat if there is one.

        Returns:
            True if an event was published

        Raises:
            SensorError: On protocol failure
        """
        sample = self.sensor.poll()
        if sample is None:
            return False

        self.stats.increment('samples')
        if sample.computed_bpm == 0:
            self.stats.increment('dropped_samples')

        event = self.decoder.decode(sample)
        if event is None:
            return False

        self.stats.increment('beat_events')
        if event.skipped:
            self.stats.increment('skipped_beats')
        self.channel.publish(event)
        return True

    def start(self) -> None:
        """Run the loop on a dedicated daemon thread."""
        if self.thread is not None and self.thread.is_alive():
            return
        self.thread = threading.Thread(target=self._thread_main, name="SensorPoller", daemon=True)
        self.thread.start()

    def join(self, timeout: float = 2.0) -> bool:
        """Wait for the polling thread to exit.

        Returns:
            True if the thread has stopped
        """
        if self.thread is None:
            return True
        self.thread.join(timeout=timeout)
        if self.thread.is_alive():
            logger.warning(f"Sensor thread did not stop within {timeout:.0f}s")
            return False
        return True

    def _thread_main(self) -> None:
        logger.info("Sensor thread started")
        try:
            self.run()
        except SensorError as e:
            self.error = e
            logger.error(f"Sensor thread failed: {e}")
        logger.info("Sensor thread finished")
