"""
Run configuration for antpulse.

Settings come from three layers, highest priority first: command-line flags,
an optional YAML file, and the defaults below. Once built, Settings is frozen
for the lifetime of the process.

YAML layout (every key optional):

    bpm: intra-beat            # computed | intra-beat | intra-beat-unfiltered
    output: vrchat             # log | vrchat
    sensor:
      backend: emulator
      device_number: 0         # 0 = pair with any heart rate monitor
      poll_interval_ms: 10
    osc:
      host: 127.0.0.1
      port: 9000
      address: /avatar/parameters/Heartrate
    emulator:
      bpm: 72
      radios: 1
"""

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from antpulse import osc
from antpulse.events import BpmMode, OutputMode


DEFAULT_BPM_MODE = BpmMode.INTRA_BEAT
DEFAULT_OUTPUT_MODE = OutputMode.VRCHAT
DEFAULT_SENSOR = "emulator"
DEFAULT_POLL_INTERVAL_S = 0.010
DEFAULT_EMULATED_BPM = 72.0

DEVICE_NUMBER_MAX = 0xFFFF


@dataclass(frozen=True)
class Settings:
    """Immutable run configuration.

    Attributes:
        bpm_mode (BpmMode): Output BPM derivation
        output_mode (OutputMode): Log only, or send to the OSC sink
        sensor (str): Sensor backend name (see antpulse.sensors.SENSORS)
        device_number (int): Sensor device number to pair with, 0 = wildcard
        poll_interval_s (float): Idle time between sensor polls
        osc_host (str): OSC sink host
        osc_port (int): OSC sink UDP port
        osc_address (str): OSC parameter address
        emulated_bpm (float): Heart rate of the emulated sensor
        emulated_radios (int): Number of radios the emulator reports
    """
    bpm_mode: BpmMode = DEFAULT_BPM_MODE
    output_mode: OutputMode = DEFAULT_OUTPUT_MODE
    sensor: str = DEFAULT_SENSOR
    device_number: int = 0
    poll_interval_s: float = DEFAULT_POLL_INTERVAL_S
    osc_host: str = osc.VRCHAT_OSC_HOST
    osc_port: int = osc.VRCHAT_OSC_PORT
    osc_address: str = osc.HEARTRATE_ADDRESS
    emulated_bpm: float = DEFAULT_EMULATED_BPM
    emulated_radios: int = 1

    def validate(self) -> "Settings":
        """Check value ranges.

        Returns:
            self, for chaining

        Raises:
            ValueError: On the first invalid setting
        """
        osc.validate_port(self.osc_port)
        osc.validate_address(self.osc_address)
        if not (0 <= self.device_number <= DEVICE_NUMBER_MAX):
            raise ValueError(f"device_number must be 0-{DEVICE_NUMBER_MAX}, got {self.device_number}")
        if self.poll_interval_s <= 0:
            raise ValueError(f"poll interval must be > 0, got {self.poll_interval_s}")
        if self.emulated_bpm <= 0:
            raise ValueError(f"emulated bpm must be > 0, got {self.emulated_bpm}")
        if self.emulated_radios < 0:
            raise ValueError(f"emulated radios must be >= 0, got {self.emulated_radios}")
        return self


def parse_bpm_mode(value: Any) -> BpmMode:
    """Parse a BpmMode from its CLI/YAML spelling (underscores accepted)."""
    if isinstance(value, BpmMode):
        return value
    text = str(value).strip().lower().replace("_", "-")
    try:
        return BpmMode(text)
    except ValueError:
        choices = ", ".join(m.value for m in BpmMode)
        raise ValueError(f"Unknown bpm mode '{value}' (choose from: {choices})") from None


def parse_output_mode(value: Any) -> OutputMode:
    """Parse an OutputMode from its CLI/YAML spelling."""
    if isinstance(value, OutputMode):
        return value
    text = str(value).strip().lower()
    try:
        return OutputMode(text)
    except ValueError:
        choices = ", ".join(m.value for m in OutputMode)
        raise ValueError(f"Unknown output mode '{value}' (choose from: {choices})") from None


def load_config(config_path: str) -> Dict[str, Any]:
    """Load a YAML config file and flatten it into Settings field names.

    Args:
        config_path: Path to the YAML file

    Returns:
        Dict of Settings field name -> value, only for keys present in the file

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If the file is not a mapping or a value has the wrong type
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path, 'r') as f:
        config = yaml.safe_load(f) or {}

    if not isinstance(config, dict):
        raise ValueError(f"Config must be a mapping, got {type(config).__name__}")

    values: Dict[str, Any] = {}

    if 'bpm' in config:
        values['bpm_mode'] = parse_bpm_mode(config['bpm'])
    if 'output' in config:
        values['output_mode'] = parse_output_mode(config['output'])

    sensor = _section(config, 'sensor')
    if 'backend' in sensor:
        values['sensor'] = str(sensor['backend'])
    if 'device_number' in sensor:
        values['device_number'] = _as_int(sensor['device_number'], 'sensor.device_number')
    if 'poll_interval_ms' in sensor:
        values['poll_interval_s'] = _as_float(sensor['poll_interval_ms'], 'sensor.poll_interval_ms') / 1000.0

    osc_cfg = _section(config, 'osc')
    if 'host' in osc_cfg:
        values['osc_host'] = str(osc_cfg['host'])
    if 'port' in osc_cfg:
        values['osc_port'] = _as_int(osc_cfg['port'], 'osc.port')
    if 'address' in osc_cfg:
        values['osc_address'] = str(osc_cfg['address'])

    emulator = _section(config, 'emulator')
    if 'bpm' in emulator:
        values['emulated_bpm'] = _as_float(emulator['bpm'], 'emulator.bpm')
    if 'radios' in emulator:
        values['emulated_radios'] = _as_int(emulator['radios'], 'emulator.radios')

    return values


def build_settings(file_values: Optional[Dict[str, Any]] = None,
                   overrides: Optional[Dict[str, Any]] = None) -> Settings:
    """Layer defaults < file values < overrides and validate the result.

    None values in overrides mean "not given" and are ignored.

    Raises:
        ValueError: If the combined settings are invalid
    """
    settings = Settings()
    if file_values:
        settings = replace(settings, **file_values)
    if overrides:
        given = {k: v for k, v in overrides.items() if v is not None}
        settings = replace(settings, **given)
    return settings.validate()


def _section(config: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = config.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"Config section '{name}' must be a mapping")
    return section


def _as_int(value: Any, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer, got {value!r}")
    return value


def _as_float(value: Any, key: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number, got {value!r}")
    return float(value)
