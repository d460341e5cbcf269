"""
antpulse - Heart rate monitor to VRChat OSC bridge.

Modules:
    decoder: Heartbeat events from rolling sensor counters
    bpm: Output BPM selection and outlier rejection
    bridge: Latest-value channel and shutdown broadcast between thread and asyncio
    poller: Blocking sensor polling loop
    consumer: Async BPM processing and output
    sensors: Sensor interface and emulated heart rate monitor
    app: Command-line entry point
"""

__version__ = "0.1.0"

# Note: Modules are imported on-demand; use: from antpulse import decoder, bpm, etc.
