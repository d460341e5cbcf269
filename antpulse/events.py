"""
Heart-rate data types shared by the decoder, bridge and BPM processor.

RawBeatSample is what the sensor hands over for every heart-rate data page.
DecodedBeatEvent is what crosses from the polling thread to the async
consumer: one per genuinely new heartbeat, passed by value.
BpmMode and OutputMode select what the consumer does with it.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


# Hardware counter widths
BEAT_COUNT_MODULUS = 256       # 8-bit rolling beat counter
EVENT_TIME_MODULUS = 1024      # Rolling beat event timestamp wraps here
U16_MASK = 0xFFFF

# 60 s * 1000 ms: interval (ms) -> BPM
MS_PER_MINUTE = 60000.0

# Largest value representable in the unsigned 8-bit BPM fields
BPM_MAX = 255


@dataclass(frozen=True)
class RawBeatSample:
    """One heart-rate data page as reported by the sensor firmware.

    Attributes:
        computed_bpm (int): Instantaneous BPM from the sensor, 0 = no valid reading
        beat_count (int): 8-bit counter incremented once per detected heartbeat
        event_time (int): Rolling timestamp of the most recent beat
    """
    computed_bpm: int
    beat_count: int
    event_time: int


@dataclass(frozen=True)
class DecodedBeatEvent:
    """A new heartbeat, decoded from a RawBeatSample.

    Attributes:
        bpm (int): Passthrough of computed_bpm, always > 0
        intra_beat_time (int or None): Time between the previous and this beat,
            None for the first beat of a run
        skipped (bool): True when the beat counter advanced by more than one
    """
    bpm: int
    intra_beat_time: Optional[int] = None
    skipped: bool = False


class BpmMode(Enum):
    """How the output BPM is derived from each heartbeat."""
    COMPUTED = "computed"
    INTRA_BEAT = "intra-beat"
    INTRA_BEAT_UNFILTERED = "intra-beat-unfiltered"

    def __str__(self):
        return self.value


class OutputMode(Enum):
    """Where output BPM values go."""
    LOG = "log"
    VRCHAT = "vrchat"

    def __str__(self):
        return self.value
