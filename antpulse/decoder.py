#!/usr/bin/env python3
"""
Beat Event Decoder - Heartbeat Events from Rolling Sensor Counters

Turns raw heart-rate data pages into at most one DecodedBeatEvent per new
heartbeat. Sensors repeat the same page several times per beat (the channel
period is faster than the heart), so the rolling beat counter is what decides
whether a page carries news.

ALGORITHM:
- computed_bpm == 0: no valid reading, page dropped, state untouched
- First beat of the run (prev_beat_count == 0): record counters, emit event
  without an interval
- Otherwise:
    count_diff = (beat_count - prev_beat_count) mod 256
    time_diff  = event_time - prev_event_time, or with wraparound
                 event_time + (1024 - prev_event_time) when the timestamp rolled
    skipped    = count_diff > 1  (sampler missed intermediate beats, warn only)
    intra_beat_time = time_diff // count_diff  (averaged over missed beats)
- State is always updated; an event is emitted only if beat_count changed

USAGE:
    decoder = BeatDecoder()
    event = decoder.decode(RawBeatSample(computed_bpm=72, beat_count=5, event_time=812))
    if event is not None:
        channel.publish(event)

The decoder owns its DecoderState; one instance per sensor session.
"""

from dataclasses import dataclass
from typing import Optional

from antpulse.events import (
    BEAT_COUNT_MODULUS,
    EVENT_TIME_MODULUS,
    U16_MASK,
    RawBeatSample,
    DecodedBeatEvent,
)
from antpulse.log import get_logger

logger = get_logger(__name__)


@dataclass
class DecoderState:
    """Counters from the last accepted sample.

    prev_beat_count == 0 doubles as "no prior beat observed this run".
    """
    prev_beat_count: int = 0
    prev_event_time: int = 0


def count_delta(beat_count: int, prev_beat_count: int) -> int:
    """Beats elapsed between two 8-bit counter readings (wrapping)."""
    return (beat_count - prev_beat_count) % BEAT_COUNT_MODULUS


def time_delta(event_time: int, prev_event_time: int,
               modulus: int = EVENT_TIME_MODULUS) -> int:
    """Time elapsed between two rolling event timestamps.

    Examples:
        >>> time_delta(850, 0)
        850
        >>> time_delta(50, 1000)
        74
    """
    if event_time >= prev_event_time:
        return event_time - prev_event_time
    return (event_time + (modulus - prev_event_time)) & U16_MASK


def decode(sample: RawBeatSample, state: DecoderState) -> Optional[DecodedBeatEvent]:
    """Decode one raw sample against (and update) the decoder state.

    Args:
        sample: Heart-rate data page from the sensor
        state: Decoder state owned by the caller, mutated in place

    Returns:
        DecodedBeatEvent for a new heartbeat, None for zero-BPM or repeated pages
    """
    bpm = sample.computed_bpm
    if bpm == 0:
        return None

    if state.prev_beat_count == 0:
        state.prev_beat_count = sample.beat_count
        state.prev_event_time = sample.event_time
        logger.debug(f"HR sample: bpm={bpm}, beat_count={sample.beat_count}, "
                     f"event_time={sample.event_time}, first beat")
        return DecodedBeatEvent(bpm=bpm, intra_beat_time=None)

    count_diff = count_delta(sample.beat_count, state.prev_beat_count)
    time_diff = time_delta(sample.event_time, state.prev_event_time)

    skipped = count_diff > 1
    intra_beat_time = time_diff // count_diff if count_diff > 0 else None
    is_new = sample.beat_count != state.prev_beat_count

    if skipped:
        logger.warning(f"Skipped {count_diff - 1} beat(s): count "
                       f"{state.prev_beat_count} -> {sample.beat_count}, "
                       f"averaging interval over {count_diff} beats")

    state.prev_beat_count = sample.beat_count
    state.prev_event_time = sample.event_time

    logger.debug(f"HR sample: bpm={bpm}, beat_count={sample.beat_count}, "
                 f"event_time={sample.event_time}, intra_beat_time={intra_beat_time}, "
                 f"skipped={skipped}")

    if not is_new:
        return None

    return DecodedBeatEvent(bpm=bpm, intra_beat_time=intra_beat_time, skipped=skipped)


class BeatDecoder:
    """Stateful wrapper that owns a DecoderState for one sensor session.

    Attributes:
        state (DecoderState): Counters from the last accepted sample
    """

    def __init__(self, state: Optional[DecoderState] = None):
        self.state = state if state is not None else DecoderState()

    def decode(self, sample: RawBeatSample) -> Optional[DecodedBeatEvent]:
        return decode(sample, self.state)
