"""Output dispatch: log the BPM, or send it normalized to the OSC sink."""

from typing import Optional

from antpulse.events import BpmMode, OutputMode
from antpulse.log import get_logger
from antpulse.osc import HeartRateOscClient, normalize_bpm

logger = get_logger(__name__)


class OutputError(Exception):
    """An output value could not be delivered. The sample is dropped."""


def send_output(mode: OutputMode, bpm: int, bpm_mode: BpmMode,
                osc_client: Optional[HeartRateOscClient] = None) -> None:
    """Deliver one BPM value according to the output mode.

    Args:
        mode: OutputMode.LOG or OutputMode.VRCHAT
        bpm: Heart rate to deliver
        bpm_mode: Mode that produced the value (for the log line)
        osc_client: Connected OSC client, required for OutputMode.VRCHAT

    Raises:
        OutputError: If the OSC client is missing or the send fails
    """
    if mode is OutputMode.LOG:
        logger.info(f"Heart rate: {bpm} BPM (mode: {bpm_mode})")
        return

    if osc_client is None:
        raise OutputError("VRChat OSC not connected but output mode is vrchat")

    normalized_bpm = normalize_bpm(bpm)
    logger.info(f"Sending to VRChat: {bpm} BPM (mode: {bpm_mode})")
    try:
        osc_client.send_heartbeat(normalized_bpm)
    except OSError as e:
        raise OutputError(f"Failed to send OSC message to VRChat: {e}") from e
