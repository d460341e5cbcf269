"""Sensor interface, channel configuration and device selection."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence

from antpulse.events import RawBeatSample
from antpulse.log import get_logger

logger = get_logger(__name__)


# ANT+ heart rate monitor channel parameters
ANT_PLUS_NETWORK_KEY = bytes([0xB9, 0xA5, 0x21, 0xFB, 0xBD, 0x72, 0xC3, 0x45])
HRM_DEVICE_TYPE = 120
HRM_RF_FREQUENCY = 57          # 2457 MHz
HRM_CHANNEL_PERIOD = 8070      # 32768 / 8070 = ~4.06 Hz message rate
CHANNEL_PERIOD_CLOCK = 32768


class SensorError(Exception):
    """Protocol error from the sensor. Fatal to the polling loop."""


class SensorSetupError(SensorError):
    """Channel or profile setup failed."""


class DeviceNotFoundError(SensorSetupError):
    """No usable radio was found."""


class DeviceSelectionError(SensorSetupError):
    """Several radios were found and none could be selected."""


@dataclass(frozen=True)
class ChannelConfig:
    """Logical channel to a heart rate monitor.

    Attributes:
        device_number (int): Device to pair with, 0 = any
        device_type (int): ANT+ device profile (120 = heart rate)
        rf_frequency (int): Offset from 2400 MHz
        channel_period (int): Message period in 1/32768 s
        network_key (bytes): 8-byte network key
    """
    device_number: int = 0
    device_type: int = HRM_DEVICE_TYPE
    rf_frequency: int = HRM_RF_FREQUENCY
    channel_period: int = HRM_CHANNEL_PERIOD
    network_key: bytes = ANT_PLUS_NETWORK_KEY

    @property
    def period_s(self) -> float:
        return self.channel_period / CHANNEL_PERIOD_CLOCK


@dataclass(frozen=True)
class SensorDevice:
    """A radio found during discovery.

    Attributes:
        label (str): Human-readable name shown during selection
        handle (Any): Backend-specific handle used to open the device
    """
    label: str
    handle: Any = None


class HeartRateSensor(ABC):
    """
    Interface that all heart rate sensor backends must implement.

    A backend owns one radio and one logical channel to a heart rate monitor.
    It is only ever used from the polling thread.
    """

    def __init__(self, device: SensorDevice, channel: ChannelConfig):
        self.device = device
        self.channel = channel

    @classmethod
    @abstractmethod
    def discover(cls, settings) -> List[SensorDevice]:
        """
        List radios this backend can use.

        Raises:
            SensorSetupError: If enumeration itself fails
        """

    @classmethod
    def from_settings(cls, device: SensorDevice, channel: ChannelConfig, settings) -> "HeartRateSensor":
        """Build the backend for a selected device; backends add their own settings."""
        return cls(device, channel)

    @abstractmethod
    def open(self) -> None:
        """
        Set the network key and open the heart rate channel.

        Raises:
            SensorSetupError: On channel/profile setup failure
        """

    @abstractmethod
    def poll(self) -> Optional[RawBeatSample]:
        """
        Check for the next heart rate data page without blocking.

        Returns:
            RawBeatSample if a page arrived, None if no data yet

        Raises:
            SensorError: On protocol errors
        """

    @abstractmethod
    def close(self) -> None:
        """Close the channel and release the radio. Safe to call twice."""

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def select_device(devices: Sequence[SensorDevice],
                  prompt: Callable[[str], str] = input) -> SensorDevice:
    """Pick the radio to use.

    One device is used directly; several are listed and the user is asked.

    Args:
        devices: Discovered radios
        prompt: Function asking the user for a line of input

    Returns:
        The selected device

    Raises:
        DeviceNotFoundError: If devices is empty
        DeviceSelectionError: If the answer is not a listed number
    """
    if not devices:
        raise DeviceNotFoundError("No ANT+ USB devices found")

    logger.info(f"Found {len(devices)} ANT+ device(s)")

    if len(devices) == 1:
        return devices[0]

    print("Multiple devices found, please select a radio to use:")
    for i, device in enumerate(devices):
        print(f"  [{i}] {device.label}")

    try:
        answer = prompt(f"Radio [0-{len(devices) - 1}]: ")
    except (EOFError, KeyboardInterrupt) as e:
        raise DeviceSelectionError("Failed to get device selection") from e

    try:
        index = int(answer.strip())
    except ValueError:
        raise DeviceSelectionError(f"Failed to get device selection: '{answer}' is not a number") from None

    if not (0 <= index < len(devices)):
        raise DeviceSelectionError(f"Failed to get device selection: {index} is out of range")

    return devices[index]
