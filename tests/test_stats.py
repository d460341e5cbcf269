"""
Tests for run statistics and the shutdown summary.
"""

import threading

import pytest

from antpulse.stats import RunStatistics


class FakeClock:
    def __init__(self, start=50.0):
        self.now = start

    def __call__(self):
        return self.now


class TestCounters:

    def test_unknown_counter_is_zero(self):
        assert RunStatistics().get('samples') == 0

    def test_concurrent_increments(self):
        stats = RunStatistics()

        def worker():
            for _ in range(1000):
                stats.increment('samples')

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert stats.get('samples') == 4000


class TestOutputSummary:

    def test_no_outputs(self):
        stats = RunStatistics()

        assert stats.bpm_summary() is None
        assert stats.rejection_rate() is None

    def test_min_mean_max(self):
        stats = RunStatistics()
        for bpm in (60, 72, 90):
            stats.record_output(bpm)

        assert stats.get('outputs') == 3
        assert stats.bpm_summary() == {'min': 60, 'mean': pytest.approx(74.0), 'max': 90}

    def test_rejection_rate(self):
        stats = RunStatistics()
        stats.increment('beat_events', 20)
        stats.increment('rejected_beats', 3)

        assert stats.rejection_rate() == pytest.approx(0.15)


class TestPrintStats:

    def test_report(self, capsys):
        clock = FakeClock()
        stats = RunStatistics(bpm_mode="intra-beat", clock=clock)
        stats.increment('beat_events', 4)
        stats.increment('rejected_beats')
        stats.record_output(70)
        stats.record_output(75)
        clock.now += 12.5

        stats.print_stats("ANTPULSE STATISTICS")

        out = capsys.readouterr().out
        assert "ANTPULSE STATISTICS" in out
        assert "Beat Events: 4" in out
        assert "Runtime: 12.5s" in out
        assert "Output BPM (intra-beat): min 70 / mean 72.5 / max 75" in out
        assert "Rejected: 25.0% of beat events" in out

    def test_report_without_outputs(self, capsys):
        RunStatistics().print_stats()

        out = capsys.readouterr().out
        assert "Output BPM: none delivered" in out
        assert "Rejected:" not in out
