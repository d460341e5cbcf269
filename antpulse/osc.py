#!/usr/bin/env python3
"""
antpulse OSC output - heart rate to an avatar parameter over OSC.

The live sink is a VRChat client listening for OSC on localhost. Heart rate
is sent as a single float parameter normalized into [-1.0, 1.0], which is the
range float avatar parameters accept.

Classes:
    - HeartRateOscClient: UDP OSC client bound to one parameter address

Functions:
    - normalize_bpm(bpm): Map 0-255 BPM linearly onto [-1.0, 1.0]
    - validate_port(port): Validate port in range 1-65535
    - validate_address(address): Validate OSC address pattern

Constants:
    - VRCHAT_OSC_HOST, VRCHAT_OSC_PORT: Default OSC input of a local VRChat client
    - HEARTRATE_ADDRESS: Avatar parameter receiving the normalized heart rate
"""

import re
import socket
from pythonosc import udp_client


# ============================================================================
# CONSTANTS
# ============================================================================

VRCHAT_OSC_HOST = "127.0.0.1"
VRCHAT_OSC_PORT = 9000         # VRChat listens for OSC input here
HEARTRATE_ADDRESS = "/avatar/parameters/Heartrate"

# Normalization input range (unsigned 8-bit BPM)
BPM_RANGE_MAX = 255.0

# Port validation range
PORT_MIN = 1
PORT_MAX = 65535

OSC_ADDRESS_PATTERN = re.compile(r'^(/[A-Za-z0-9_\-.]+)+$')


# ============================================================================
# NORMALIZATION
# ============================================================================

def normalize_bpm(bpm: int) -> float:
    """Map BPM 0-255 linearly onto [-1.0, 1.0].

    Examples:
        >>> normalize_bpm(0)
        -1.0
        >>> normalize_bpm(255)
        1.0
    """
    return (bpm / BPM_RANGE_MAX) * 2.0 - 1.0


# ============================================================================
# OSC CLIENT
# ============================================================================

class HeartRateOscClient(udp_client.SimpleUDPClient):
    """UDP OSC client that sends heart rate to a fixed parameter address.

    Extends pythonosc's SimpleUDPClient with the parameter address baked in
    and explicit socket cleanup.

    Args:
        host: Target IP address (default: local VRChat client)
        port: Target UDP port (default: 9000)
        address: OSC address of the heart rate parameter
    """

    def __init__(self, host: str = VRCHAT_OSC_HOST, port: int = VRCHAT_OSC_PORT,
                 address: str = HEARTRATE_ADDRESS):
        validate_port(port)
        validate_address(address)
        super().__init__(host, port)
        self.host = host
        self.port = port
        self.address = address

    def send_heartbeat(self, normalized_bpm: float) -> None:
        """Send one normalized heart rate value.

        Raises:
            OSError: If the datagram could not be sent
        """
        self.send_message(self.address, float(normalized_bpm))

    def close(self):
        """Close the UDP socket."""
        if hasattr(self, '_sock') and self._sock:
            self._sock.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


# ============================================================================
# VALIDATION FUNCTIONS
# ============================================================================

def validate_port(port: int) -> None:
    """Validate UDP port number is in valid range.

    Raises:
        ValueError: If port is outside range 1-65535

    Examples:
        >>> validate_port(9000)  # OK
        >>> validate_port(0)  # Raises ValueError
    """
    if port < PORT_MIN or port > PORT_MAX:
        raise ValueError(f"Port must be in range {PORT_MIN}-{PORT_MAX}, got {port}")


def validate_address(address: str) -> None:
    """Validate an OSC address such as /avatar/parameters/Heartrate.

    Raises:
        ValueError: If the address is not a slash-separated OSC path
    """
    if not OSC_ADDRESS_PATTERN.match(address):
        raise ValueError(f"Invalid OSC address: {address}")


def resolve_host(host: str) -> str:
    """Resolve a host name to an IPv4 address for the OSC client.

    Raises:
        ValueError: If the host cannot be resolved
    """
    try:
        return socket.gethostbyname(host)
    except socket.gaierror as e:
        raise ValueError(f"Cannot resolve OSC host '{host}': {e}") from e
