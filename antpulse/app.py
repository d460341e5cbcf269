#!/usr/bin/env python3
"""
antpulse - heart rate monitor to VRChat avatar parameter bridge

Polls a heart rate monitor on a dedicated thread, decodes new heartbeats and
hands the latest one to an asyncio consumer, which derives the output BPM and
sends it (normalized to [-1.0, 1.0]) to /avatar/parameters/Heartrate over OSC,
or just logs it.

ARCHITECTURE:
    [SensorPoller thread]                    [asyncio loop]
    sensor.poll() -> decoder.decode() --LatestValue--> HeartRateConsumer
                                                        -> BpmProcessor
                                                        -> send_output()
    ShutdownSignal (SIGINT/SIGTERM) is broadcast to both sides.

USAGE:
    python3 -m antpulse
    python3 -m antpulse --bpm computed --output log
    python3 -m antpulse --config antpulse.yaml --verbose
"""

import argparse
import asyncio
import os
import signal
import sys
from typing import Optional

from antpulse import osc
from antpulse.bridge import LatestValue, ShutdownSignal
from antpulse.config import (
    BpmMode,
    OutputMode,
    Settings,
    build_settings,
    load_config,
    parse_bpm_mode,
    parse_output_mode,
)
from antpulse.consumer import HeartRateConsumer
from antpulse.log import LOG_LEVEL_ENV, get_logger, set_level
from antpulse.poller import SensorPoller
from antpulse.sensors import SENSORS, create_sensor
from antpulse.stats import RunStatistics

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Heart rate monitor to VRChat OSC bridge"
    )
    parser.add_argument(
        "--bpm",
        type=parse_bpm_mode,
        default=None,
        metavar="{" + ",".join(m.value for m in BpmMode) + "}",
        help="How output BPM is derived (default: intra-beat)"
    )
    parser.add_argument(
        "--output",
        type=parse_output_mode,
        default=None,
        metavar="{" + ",".join(m.value for m in OutputMode) + "}",
        help="Where BPM values go (default: vrchat)"
    )
    parser.add_argument(
        "--sensor",
        choices=sorted(SENSORS.keys()),
        default=None,
        help="Sensor backend (default: emulator)"
    )
    parser.add_argument(
        "--device-number",
        type=int,
        default=None,
        help="Heart rate monitor device number to pair with, 0 = any (default: 0)"
    )
    parser.add_argument(
        "--osc-host",
        default=None,
        help=f"OSC target host (default: {osc.VRCHAT_OSC_HOST})"
    )
    parser.add_argument(
        "--osc-port",
        type=int,
        default=None,
        help=f"OSC target port (default: {osc.VRCHAT_OSC_PORT})"
    )
    parser.add_argument(
        "--osc-address",
        default=None,
        help=f"OSC parameter address (default: {osc.HEARTRATE_ADDRESS})"
    )
    parser.add_argument(
        "--emulated-bpm",
        type=float,
        default=None,
        help="Heart rate of the emulated sensor (default: 72)"
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to YAML config file (CLI flags override it)"
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable per-sample debug logging"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=os.getenv(LOG_LEVEL_ENV, "INFO"),
        help="Logging verbosity (default: INFO)"
    )
    return parser


def settings_from_args(args: argparse.Namespace) -> Settings:
    """Combine defaults, the optional config file and CLI flags.

    Raises:
        FileNotFoundError: If --config points nowhere
        ValueError: If any setting is invalid
    """
    file_values = load_config(args.config) if args.config else None
    overrides = {
        'bpm_mode': args.bpm,
        'output_mode': args.output,
        'sensor': args.sensor,
        'device_number': args.device_number,
        'osc_host': args.osc_host,
        'osc_port': args.osc_port,
        'osc_address': args.osc_address,
        'emulated_bpm': args.emulated_bpm,
    }
    return build_settings(file_values, overrides)


def connect_output(settings: Settings) -> Optional[osc.HeartRateOscClient]:
    """Create the OSC client when output mode needs one.

    Raises:
        ValueError: If the host cannot be resolved
        OSError: If the socket cannot be created
    """
    if settings.output_mode is not OutputMode.VRCHAT:
        logger.info("Log-only mode enabled, skipping VRChat OSC connection")
        return None

    logger.info("Connecting to VRChat OSC service")
    host = osc.resolve_host(settings.osc_host)
    client = osc.HeartRateOscClient(host, settings.osc_port, settings.osc_address)
    logger.info(f"Connected to VRChat OSC service at {host}:{settings.osc_port} ({settings.osc_address})")
    return client


def _install_signal_handlers(loop: asyncio.AbstractEventLoop, shutdown: ShutdownSignal) -> None:
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, shutdown.trigger)
        except (NotImplementedError, RuntimeError):
            # No loop signal support (Windows): fall back to a plain handler
            signal.signal(sig, lambda signum, frame: loop.call_soon_threadsafe(shutdown.trigger))


async def run_async(settings: Settings, stats: RunStatistics,
                    osc_client: Optional[osc.HeartRateOscClient] = None,
                    shutdown: Optional[ShutdownSignal] = None,
                    sensor_factory=None) -> SensorPoller:
    """Run poller thread and consumer task until shutdown.

    Args:
        settings: Run configuration
        stats: Shared counters
        osc_client: Live sink, if output mode is vrchat
        shutdown: Shutdown broadcast (created and wired to SIGINT/SIGTERM if None)
        sensor_factory: Builds the sensor on the polling thread
            (default: discovery + selection via create_sensor)

    Returns:
        The finished SensorPoller (its .error holds a fatal sensor error, if any)
    """
    channel = LatestValue()
    if shutdown is None:
        shutdown = ShutdownSignal()
        _install_signal_handlers(asyncio.get_running_loop(), shutdown)

    if sensor_factory is None:
        sensor_factory = lambda: create_sensor(settings)

    poller = SensorPoller(
        None,
        channel,
        shutdown.subscribe(),
        poll_interval_s=settings.poll_interval_s,
        stats=stats,
        sensor_factory=sensor_factory,
    )
    consumer = HeartRateConsumer(
        channel.subscribe(),
        shutdown.subscribe(),
        bpm_mode=settings.bpm_mode,
        output_mode=settings.output_mode,
        osc_client=osc_client,
        stats=stats,
    )

    poller.start()
    logger.info("Application started. Press Ctrl+C to exit")

    await consumer.run()

    logger.info("Shutting down...")
    shutdown.trigger()
    await asyncio.get_running_loop().run_in_executor(None, poller.join)
    return poller


def main(argv=None):
    """Main entry point with command-line argument parsing.

    Exits with status 1 on invalid configuration or when the OSC sink
    cannot be set up.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    # --verbose wins over --log-level
    if args.verbose:
        args.log_level = "DEBUG"
    set_level(args.log_level)

    try:
        settings = settings_from_args(args)
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    if settings.sensor not in SENSORS:
        logger.error(f"Unknown sensor backend: '{settings.sensor}' "
                     f"(available: {', '.join(SENSORS.keys())})")
        sys.exit(1)

    logger.info("Starting antpulse")
    logger.info(f"BPM mode: {settings.bpm_mode}")
    logger.info(f"Output mode: {settings.output_mode}")

    try:
        osc_client = connect_output(settings)
    except (ValueError, OSError) as e:
        logger.error(f"Failed to connect to VRChat OSC service: {e}")
        sys.exit(1)

    stats = RunStatistics(bpm_mode=str(settings.bpm_mode))
    try:
        asyncio.run(run_async(settings, stats, osc_client))
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        if osc_client is not None:
            osc_client.close()
        stats.print_stats("ANTPULSE STATISTICS")


if __name__ == "__main__":
    main()
