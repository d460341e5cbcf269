"""
Tests for the beat event decoder.

Covers first-beat handling, zero-BPM drops, duplicate pages, 8-bit beat
counter wraparound and event time wraparound.
"""

from unittest.mock import patch

import pytest

from antpulse.decoder import BeatDecoder, DecoderState, count_delta, decode, time_delta
from antpulse.events import DecodedBeatEvent, RawBeatSample


def sample(bpm, count, t):
    return RawBeatSample(computed_bpm=bpm, beat_count=count, event_time=t)


class TestCounterArithmetic:
    """count_delta / time_delta wraparound."""

    def test_count_delta_simple(self):
        assert count_delta(5, 4) == 1
        assert count_delta(7, 4) == 3

    def test_count_delta_wraps_at_256(self):
        assert count_delta(3, 250) == 9
        assert count_delta(0, 255) == 1

    def test_count_delta_same_value_is_zero(self):
        assert count_delta(42, 42) == 0

    def test_time_delta_forward(self):
        assert time_delta(850, 0) == 850

    def test_time_delta_wraps_at_1024(self):
        assert time_delta(50, 1000) == 74

    def test_time_delta_equal_is_zero(self):
        assert time_delta(512, 512) == 0


class TestDecode:
    """decode() against an explicit DecoderState."""

    def test_zero_bpm_dropped_and_state_unchanged(self):
        state = DecoderState(prev_beat_count=12, prev_event_time=300)

        assert decode(sample(0, 13, 900), state) is None
        assert state == DecoderState(prev_beat_count=12, prev_event_time=300)

    def test_zero_bpm_before_first_beat_leaves_initial_state(self):
        state = DecoderState()

        assert decode(sample(0, 1, 100), state) is None
        assert state.prev_beat_count == 0
        assert state.prev_event_time == 0

    def test_first_beat_has_no_interval(self):
        state = DecoderState()

        event = decode(sample(70, 1, 0), state)

        assert event == DecodedBeatEvent(bpm=70, intra_beat_time=None)
        assert state.prev_beat_count == 1
        assert state.prev_event_time == 0

    def test_second_beat_has_interval(self):
        state = DecoderState()
        decode(sample(70, 1, 0), state)

        event = decode(sample(72, 2, 850), state)

        assert event.bpm == 72
        assert event.intra_beat_time == 850
        assert event.skipped is False

    def test_duplicate_page_yields_no_event(self):
        state = DecoderState()
        decode(sample(70, 1, 0), state)

        first = decode(sample(72, 2, 850), state)
        second = decode(sample(72, 2, 850), state)

        assert first is not None
        assert second is None
        assert state.prev_beat_count == 2

    def test_beat_count_wraparound_flags_skipped(self):
        state = DecoderState(prev_beat_count=250, prev_event_time=0)

        event = decode(sample(80, 3, 900), state)

        # 9 beats elapsed across the 8-bit wrap
        assert event.skipped is True
        assert event.intra_beat_time == 900 // 9

    def test_skipped_beat_logs_warning_but_still_emits(self):
        state = DecoderState(prev_beat_count=10, prev_event_time=0)

        with patch('antpulse.decoder.logger') as mock_logger:
            event = decode(sample(75, 12, 850), state)

        assert event is not None
        assert event.intra_beat_time == 425
        mock_logger.warning.assert_called_once()
        assert 'Skipped' in mock_logger.warning.call_args[0][0]

    def test_event_time_wraparound(self):
        state = DecoderState(prev_beat_count=5, prev_event_time=1000)

        event = decode(sample(72, 6, 50), state)

        assert event.intra_beat_time == 74

    def test_counter_advances_every_sample_without_repeat(self):
        state = DecoderState()
        events = [decode(sample(70, count, (count * 800) % 1024), state) for count in range(1, 20)]

        assert events[0].intra_beat_time is None
        assert all(e is not None and e.intra_beat_time is not None for e in events[1:])

    def test_counter_wrapping_to_zero_restarts_as_first_beat(self):
        # prev_beat_count == 0 is the "no prior beat" sentinel
        state = DecoderState(prev_beat_count=255, prev_event_time=0)

        wrapped = decode(sample(70, 0, 800), state)
        after = decode(sample(70, 1, 1600 % 1024), state)

        assert wrapped.intra_beat_time == 800
        assert after.intra_beat_time is None


class TestBeatDecoder:
    """BeatDecoder owns its state."""

    def test_defaults_to_fresh_state(self):
        decoder = BeatDecoder()
        assert decoder.state == DecoderState()

    def test_independent_sessions_do_not_share_state(self):
        a = BeatDecoder()
        b = BeatDecoder()

        a.decode(sample(70, 1, 0))

        assert a.state.prev_beat_count == 1
        assert b.state.prev_beat_count == 0

    def test_decode_sequence(self):
        decoder = BeatDecoder()
        results = [decoder.decode(s) for s in [
            sample(70, 1, 0),
            sample(72, 2, 850),
            sample(0, 2, 850),
            sample(75, 4, 1700 % 1024),
        ]]

        assert results[0] == DecodedBeatEvent(bpm=70)
        assert results[1] == DecodedBeatEvent(bpm=72, intra_beat_time=850)
        assert results[2] is None
        assert results[3] == DecodedBeatEvent(bpm=75, intra_beat_time=425, skipped=True)
