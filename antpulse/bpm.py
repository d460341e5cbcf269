#!/usr/bin/env python3
"""
BPM Processor - Output BPM Selection and Outlier Rejection

Turns decoded beat events into the BPM value sent to the output, according to
the configured BpmMode:

- computed: the sensor's own averaged BPM (smooth, lags a few beats)
- intra-beat: 60000 / interval, with adaptive-threshold outlier rejection
- intra-beat-unfiltered: 60000 / interval, every beat, no checks

OUTLIER REJECTION (intra-beat):
    Compared against the previous interval p:
    - t > p * 1.6  -> potential missed beat (true period closer to t / 2)
    - t < p * 0.6  -> potential doubled beat (spurious extra count)
    Bounds are inclusive. The previous interval is updated on every event
    carrying an interval, including rejected ones, so a genuine tempo change
    is only rejected once.
"""

from typing import Optional

from antpulse.events import BPM_MAX, MS_PER_MINUTE, BpmMode, DecodedBeatEvent
from antpulse.log import get_logger

logger = get_logger(__name__)


# A missed beat doubles the interval, a doubled beat halves it; the margins
# keep ordinary beat-to-beat variability inside the bounds
MISSED_BEAT_MARGIN = 0.8   # upper bound: (p * 2) * 0.8 = p * 1.6
DOUBLED_BEAT_MARGIN = 1.2  # lower bound: (p / 2) * 1.2 = p * 0.6


def bpm_from_interval(intra_beat_time: int) -> int:
    """Whole BPM for an interval, saturated to the unsigned 8-bit range.

    Examples:
        >>> bpm_from_interval(1000)
        60
        >>> bpm_from_interval(850)
        70
    """
    if intra_beat_time <= 0:
        return BPM_MAX
    return min(BPM_MAX, int(MS_PER_MINUTE / intra_beat_time))


class BpmProcessor:
    """Selects the output BPM per event and tracks the previous interval.

    Attributes:
        prev_intra_beat_time (int or None): Last interval seen, used for the
            adaptive thresholds of the next event
    """

    def __init__(self) -> None:
        self.prev_intra_beat_time: Optional[int] = None

    def process(self, event: DecodedBeatEvent, mode: BpmMode) -> Optional[int]:
        """Compute the output BPM for one event.

        Args:
            event: Decoded heartbeat
            mode: Active BpmMode

        Returns:
            BPM to emit, or None when the caller should skip this beat
            (no interval available, or interval rejected as an outlier)
        """
        if mode is BpmMode.COMPUTED:
            return event.bpm

        intra_beat_time = event.intra_beat_time
        if intra_beat_time is None:
            return None

        if mode is BpmMode.INTRA_BEAT:
            should_skip = self.check_threshold(intra_beat_time)
            self.prev_intra_beat_time = intra_beat_time
            if should_skip:
                return None
            return bpm_from_interval(intra_beat_time)

        # BpmMode.INTRA_BEAT_UNFILTERED
        self.prev_intra_beat_time = intra_beat_time
        return bpm_from_interval(intra_beat_time)

    def check_threshold(self, intra_beat_time: int) -> bool:
        """Return True if the interval is implausible next to the previous one."""
        prev_time = self.prev_intra_beat_time
        if prev_time is None:
            return False

        upper_threshold = (prev_time * 2.0) * MISSED_BEAT_MARGIN
        lower_threshold = (prev_time / 2.0) * DOUBLED_BEAT_MARGIN

        if intra_beat_time > upper_threshold:
            logger.warning(f"Skipping {MS_PER_MINUTE / intra_beat_time:.1f} BPM - potential missed beat "
                           f"({intra_beat_time} ms > {upper_threshold:.1f} ms threshold)")
            return True
        if intra_beat_time < lower_threshold:
            unfiltered_bpm = MS_PER_MINUTE / intra_beat_time if intra_beat_time else float("inf")
            logger.warning(f"Skipping {unfiltered_bpm:.1f} BPM - potential doubled beat "
                           f"({intra_beat_time} ms < {lower_threshold:.1f} ms threshold)")
            return True
        return False
