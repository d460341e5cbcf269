#!/usr/bin/env python3
"""
Heart Rate Monitor Emulator - hardware-free sensor backend

Emulates a chest-strap heart rate monitor seen through a USB radio. A
simulated heart beats at a controllable BPM with Gaussian interval jitter;
the channel delivers one heart rate data page per channel period (~4 Hz),
carrying the same counters a real strap reports:

- computed_bpm: average of the last few intervals (0 until the first beat)
- beat_count: 8-bit counter of detected beats, wraps at 256
- event_time: time of the last detected beat in ms, wraps at 1024

Faults can be injected at runtime (thread-safe), which is what the
integration tests use to exercise the outlier paths:

- trigger_missed_beat(): strap fails to detect a beat (interval doubles)
- trigger_doubled_beat(): strap counts a spurious extra beat mid-interval
- trigger_dropout(pages): pages report computed_bpm = 0 (no skin contact)
- inject_error(message): next poll raises SensorError

USAGE:
    sensor = EmulatedHeartRateMonitor(SensorDevice("Emulated radio"), ChannelConfig(), bpm=72)
    sensor.open()
    sample = sensor.poll()  # None until the next page is due
"""

import threading
import time
from collections import deque
from typing import Callable, List, Optional

import numpy as np

from antpulse.events import BEAT_COUNT_MODULUS, EVENT_TIME_MODULUS, BPM_MAX, RawBeatSample
from antpulse.log import get_logger
from antpulse.sensors.base import (
    ChannelConfig,
    HeartRateSensor,
    SensorDevice,
    SensorError,
    SensorSetupError,
)

logger = get_logger(__name__)


BPM_MIN = 60.0                 # Longer intervals would alias in the 1024 ms event time
BPM_LIMIT = 200.0
# Jittered intervals stay under the event-time window; rounding to whole ms
# can add one more
MAX_INTERVAL_MS = EVENT_TIME_MODULUS - 2
DEFAULT_JITTER_MS = 15.0
AVERAGE_WINDOW = 4             # Intervals averaged into computed_bpm

# USB ids reported for emulated radios (Dynastream ANT USB-m)
EMULATED_VENDOR_ID = 0x0fcf
EMULATED_PRODUCT_ID = 0x1009


class EmulatedHeartRateMonitor(HeartRateSensor):
    """Emulated heart rate monitor with controllable rate and fault injection.

    Args:
        device: Radio picked during discovery
        channel: Channel configuration (period sets the page rate)
        bpm: Initial heart rate (clamped 60-200)
        jitter_ms: Std dev of beat-to-beat interval noise
        clock: Monotonic time source in seconds (injectable for tests)
        seed: Random seed for reproducible jitter
    """

    def __init__(
        self,
        device: SensorDevice,
        channel: ChannelConfig,
        bpm: float = 72.0,
        jitter_ms: float = DEFAULT_JITTER_MS,
        clock: Callable[[], float] = time.monotonic,
        seed: Optional[int] = None,
    ):
        super().__init__(device, channel)
        self.bpm = _clamp_bpm(bpm)
        self.jitter_ms = max(0.0, jitter_ms)
        self.clock = clock
        self.rng = np.random.default_rng(seed)

        self.lock = threading.Lock()
        self.is_open = False

        # Simulated heart
        self.origin: Optional[float] = None
        self.upcoming_beats: deque = deque()
        self.beat_count = 0
        self.last_beat_time: Optional[float] = None
        self.event_time = 0
        self.intervals_ms: deque = deque(maxlen=AVERAGE_WINDOW)

        # Channel
        self.next_page_time: Optional[float] = None
        self.page_count = 0

        # Fault injection
        self.missed_beats_pending = 0
        self.doubled_beats_pending = 0
        self.dropout_pages_remaining = 0
        self.pending_error: Optional[str] = None

    @classmethod
    def discover(cls, settings) -> List[SensorDevice]:
        """Report settings.emulated_radios emulated USB radios."""
        return [
            SensorDevice(
                label=f"Emulated USB {EMULATED_VENDOR_ID:04x}:{EMULATED_PRODUCT_ID:04x} #{i}",
                handle=i,
            )
            for i in range(settings.emulated_radios)
        ]

    @classmethod
    def from_settings(cls, device: SensorDevice, channel: ChannelConfig, settings) -> "EmulatedHeartRateMonitor":
        return cls(device, channel, bpm=settings.emulated_bpm)

    # ------------------------------------------------------------------
    # Runtime controls
    # ------------------------------------------------------------------

    def set_bpm(self, bpm: float) -> None:
        """Set heart rate (thread-safe); takes effect from the next beat."""
        with self.lock:
            self.bpm = _clamp_bpm(bpm)

    def trigger_missed_beat(self, beats: int = 1) -> None:
        """Drop detection of the next `beats` heartbeats (thread-safe)."""
        with self.lock:
            self.missed_beats_pending += beats

    def trigger_doubled_beat(self, beats: int = 1) -> None:
        """Count a spurious beat halfway through the next `beats` intervals (thread-safe)."""
        with self.lock:
            self.doubled_beats_pending += beats

    def trigger_dropout(self, pages: int = 4) -> None:
        """Report computed_bpm = 0 for the next `pages` pages (thread-safe)."""
        with self.lock:
            self.dropout_pages_remaining = max(self.dropout_pages_remaining, pages)

    def inject_error(self, message: str = "Emulated radio transfer error") -> None:
        """Make the next poll() raise SensorError (thread-safe)."""
        with self.lock:
            self.pending_error = message

    # ------------------------------------------------------------------
    # HeartRateSensor interface
    # ------------------------------------------------------------------

    def open(self) -> None:
        if len(self.channel.network_key) != 8:
            raise SensorSetupError(
                f"Failed to set network key: expected 8 bytes, got {len(self.channel.network_key)}"
            )
        if self.channel.channel_period <= 0:
            raise SensorSetupError(f"Failed to add channel: invalid period {self.channel.channel_period}")

        with self.lock:
            if self.is_open:
                return
            now = self.clock()
            self.origin = now
            self.next_page_time = now + self.channel.period_s
            self.upcoming_beats.clear()
            self.upcoming_beats.append(now + self._next_interval_s())
            self.is_open = True

        logger.info(f"{self.device.label}: channel open (device_number={self.channel.device_number}, "
                    f"period={self.channel.period_s * 1000:.0f}ms, {self.bpm:.0f} BPM)")

    def poll(self) -> Optional[RawBeatSample]:
        with self.lock:
            if not self.is_open:
                raise SensorError("Heart rate channel is not open")

            if self.pending_error is not None:
                message, self.pending_error = self.pending_error, None
                raise SensorError(message)

            now = self.clock()
            self._advance_heart(now)

            if now < self.next_page_time:
                return None

            self.next_page_time += self.channel.period_s
            if self.next_page_time <= now:
                # Poller stalled for more than a period; don't burst old pages
                self.next_page_time = now + self.channel.period_s
            self.page_count += 1

            return RawBeatSample(
                computed_bpm=self._computed_bpm(),
                beat_count=self.beat_count,
                event_time=self.event_time,
            )

    def close(self) -> None:
        with self.lock:
            if not self.is_open:
                return
            self.is_open = False
        logger.info(f"{self.device.label}: channel closed after {self.page_count} pages")

    # ------------------------------------------------------------------
    # Simulated heart (call with self.lock held)
    # ------------------------------------------------------------------

    def _next_interval_s(self) -> float:
        interval_ms = 60000.0 / self.bpm
        if self.jitter_ms > 0:
            interval_ms += float(self.rng.normal(0.0, self.jitter_ms))
        interval_ms = min(max(interval_ms, 60000.0 / BPM_LIMIT), MAX_INTERVAL_MS)
        return interval_ms / 1000.0

    def _advance_heart(self, now: float) -> None:
        while self.upcoming_beats and self.upcoming_beats[0] <= now:
            beat_time = self.upcoming_beats.popleft()
            if not self.upcoming_beats:
                self._schedule_after(beat_time)

            if self.missed_beats_pending > 0:
                self.missed_beats_pending -= 1
                continue
            self._detect_beat(beat_time)

    def _schedule_after(self, beat_time: float) -> None:
        interval_s = self._next_interval_s()
        if self.doubled_beats_pending > 0:
            self.doubled_beats_pending -= 1
            self.upcoming_beats.append(beat_time + interval_s / 2.0)
        self.upcoming_beats.append(beat_time + interval_s)

    def _detect_beat(self, beat_time: float) -> None:
        if self.last_beat_time is not None:
            self.intervals_ms.append((beat_time - self.last_beat_time) * 1000.0)
        self.last_beat_time = beat_time
        self.beat_count = (self.beat_count + 1) % BEAT_COUNT_MODULUS
        elapsed_ms = int(round((beat_time - self.origin) * 1000.0))
        self.event_time = elapsed_ms % EVENT_TIME_MODULUS

    def _computed_bpm(self) -> int:
        if self.dropout_pages_remaining > 0:
            self.dropout_pages_remaining -= 1
            return 0
        if self.last_beat_time is None:
            return 0
        if not self.intervals_ms:
            return int(round(self.bpm))
        mean_interval = float(np.mean(self.intervals_ms))
        return int(np.clip(round(60000.0 / mean_interval), 1, BPM_MAX))


def _clamp_bpm(bpm: float) -> float:
    return max(BPM_MIN, min(BPM_LIMIT, float(bpm)))
