"""
Run statistics, shared by the poller thread and the consumer.

Counters (samples, beat events, rejections, failed sends) plus a running
summary of the BPM values that actually reached the output. Everything is
printed once on shutdown:

    ============================================================
    ANTPULSE STATISTICS
    ============================================================
    Beat Events: 212
    Outputs: 205
    Rejected Beats: 6
    Samples: 860
    ------------------------------------------------------------
    Runtime: 214.3s
    Output BPM (intra-beat): min 58 / mean 71.4 / max 93
    Rejected: 2.8% of beat events
    ============================================================
"""

import threading
import time
from typing import Callable, Dict, Optional


class RunStatistics:
    """Thread-safe counters and output BPM summary for one run.

    Counters in use:
        - samples: Heart rate pages received from the sensor
        - dropped_samples: Pages with no valid reading (computed_bpm == 0)
        - beat_events: New heartbeats published to the bridge
        - skipped_beats: Heartbeats where the counter advanced by more than one
        - outputs: BPM values handed to the output (via record_output)
        - rejected_beats: Heartbeats the BPM processor skipped
        - failed_sends: Output sends that raised

    Args:
        bpm_mode: Label for the BPM summary line (usually the active BpmMode)
        clock: Monotonic time source for the runtime line
    """

    def __init__(self, bpm_mode: Optional[str] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.bpm_mode = bpm_mode
        self.clock = clock
        self.started = clock()

        self.counters: Dict[str, int] = {}
        self.lock = threading.Lock()

        self.bpm_min: Optional[int] = None
        self.bpm_max: Optional[int] = None
        self.bpm_total = 0

    def increment(self, counter_name: str, amount: int = 1) -> None:
        with self.lock:
            self.counters[counter_name] = self.counters.get(counter_name, 0) + amount

    def record_output(self, bpm: int) -> None:
        """Count one delivered output and fold its BPM into the summary."""
        with self.lock:
            self.counters['outputs'] = self.counters.get('outputs', 0) + 1
            self.bpm_total += bpm
            self.bpm_min = bpm if self.bpm_min is None else min(self.bpm_min, bpm)
            self.bpm_max = bpm if self.bpm_max is None else max(self.bpm_max, bpm)

    def get(self, counter_name: str) -> int:
        """Current value of a counter, 0 if never incremented."""
        with self.lock:
            return self.counters.get(counter_name, 0)

    def snapshot(self) -> dict:
        with self.lock:
            return dict(self.counters)

    def bpm_summary(self) -> Optional[dict]:
        """min/mean/max of delivered BPM values, None before the first output."""
        with self.lock:
            outputs = self.counters.get('outputs', 0)
            if self.bpm_min is None or outputs == 0:
                return None
            return {
                'min': self.bpm_min,
                'mean': self.bpm_total / outputs,
                'max': self.bpm_max,
            }

    def rejection_rate(self) -> Optional[float]:
        """Fraction of beat events the BPM processor rejected."""
        with self.lock:
            events = self.counters.get('beat_events', 0)
            if events == 0:
                return None
            return self.counters.get('rejected_beats', 0) / events

    def print_stats(self, title: str = "STATISTICS") -> None:
        print("\n" + "=" * 60)
        print(title)
        print("=" * 60)

        snapshot = self.snapshot()
        for name in sorted(snapshot.keys()):
            display_name = name.replace('_', ' ').title()
            print(f"{display_name}: {snapshot[name]}")

        print("-" * 60)
        print(f"Runtime: {self.clock() - self.started:.1f}s")

        summary = self.bpm_summary()
        label = f" ({self.bpm_mode})" if self.bpm_mode else ""
        if summary is None:
            print(f"Output BPM{label}: none delivered")
        else:
            print(f"Output BPM{label}: min {summary['min']} / mean {summary['mean']:.1f} "
                  f"/ max {summary['max']}")

        rate = self.rejection_rate()
        if rate is not None:
            print(f"Rejected: {rate * 100:.1f}% of beat events")

        print("=" * 60)
