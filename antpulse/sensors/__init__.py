"""Sensor factory for heart rate monitor backends."""

from typing import Callable

from .base import (
    ANT_PLUS_NETWORK_KEY,
    ChannelConfig,
    DeviceNotFoundError,
    DeviceSelectionError,
    HeartRateSensor,
    SensorDevice,
    SensorError,
    SensorSetupError,
    select_device,
)
from .emulator import EmulatedHeartRateMonitor

SENSORS = {}

# Emulator (always available - no hardware needed)
SENSORS['emulator'] = EmulatedHeartRateMonitor


def create_sensor(settings, prompt: Callable[[str], str] = input) -> HeartRateSensor:
    """
    Discover radios for the configured backend, select one and build the sensor.

    The returned sensor is not opened yet; the poller opens it on its own thread.

    Args:
        settings: antpulse.config.Settings
        prompt: Input function used when several radios are found

    Returns:
        Sensor instance bound to the selected radio

    Raises:
        ValueError: If the backend name is unknown
        SensorSetupError: If no radio is found or selection fails
    """
    backend_name = settings.sensor

    if backend_name not in SENSORS:
        available = ', '.join(SENSORS.keys())
        raise ValueError(
            f"Unknown sensor backend: '{backend_name}'\n"
            f"Available backends: {available}"
        )

    backend_class = SENSORS[backend_name]
    device = select_device(backend_class.discover(settings), prompt=prompt)
    channel = ChannelConfig(device_number=settings.device_number)
    return backend_class.from_settings(device, channel, settings)


__all__ = [
    'ANT_PLUS_NETWORK_KEY',
    'ChannelConfig',
    'DeviceNotFoundError',
    'DeviceSelectionError',
    'EmulatedHeartRateMonitor',
    'HeartRateSensor',
    'SENSORS',
    'SensorDevice',
    'SensorError',
    'SensorSetupError',
    'create_sensor',
    'select_device',
]
