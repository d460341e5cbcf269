#!/usr/bin/env python3
"""
Heart Rate Consumer - async side of the bridge

Waits for whichever comes first, a new beat event on the LatestValue channel
or the shutdown broadcast, then runs the event through the BpmProcessor and
the output. Owns the processor's adaptive-threshold state.

A failed send is logged and the beat dropped; the loop carries on with the
next value. Only shutdown ends the loop.
"""

import asyncio
from typing import Optional

from antpulse.bpm import BpmProcessor
from antpulse.bridge import LatestValueReceiver, ShutdownListener
from antpulse.events import BpmMode, DecodedBeatEvent, OutputMode
from antpulse.log import get_logger
from antpulse.osc import HeartRateOscClient
from antpulse.output import OutputError, send_output
from antpulse.stats import RunStatistics

logger = get_logger(__name__)


class HeartRateConsumer:
    """Bridge receiver -> BpmProcessor -> output, until shutdown.

    Attributes:
        receiver (LatestValueReceiver): Consumer handle on the beat channel
        shutdown (ShutdownListener): This task's own shutdown subscription
        bpm_mode (BpmMode): Output BPM derivation
        output_mode (OutputMode): Log or OSC
        osc_client (HeartRateOscClient or None): Live sink for OutputMode.VRCHAT
        processor (BpmProcessor): Adaptive-threshold state
        stats (RunStatistics): Shared counters
    """

    def __init__(self, receiver: LatestValueReceiver, shutdown: ShutdownListener,
                 bpm_mode: BpmMode, output_mode: OutputMode,
                 osc_client: Optional[HeartRateOscClient] = None,
                 processor: Optional[BpmProcessor] = None,
                 stats: Optional[RunStatistics] = None):
        self.receiver = receiver
        self.shutdown = shutdown
        self.bpm_mode = bpm_mode
        self.output_mode = output_mode
        self.osc_client = osc_client
        self.processor = processor if processor is not None else BpmProcessor()
        self.stats = stats if stats is not None else RunStatistics()

    async def run(self) -> None:
        logger.info("Heart rate processing task started")

        shutdown_task = asyncio.ensure_future(self.shutdown.wait_async())
        try:
            while True:
                changed_task = asyncio.ensure_future(self.receiver.changed())
                done, _ = await asyncio.wait(
                    {changed_task, shutdown_task},
                    return_when=asyncio.FIRST_COMPLETED,
                )

                if changed_task in done:
                    self.handle_event(changed_task.result())
                else:
                    changed_task.cancel()
                    await asyncio.gather(changed_task, return_exceptions=True)

                if shutdown_task in done:
                    logger.info("Heart rate processing task shutting down")
                    break
        finally:
            if not shutdown_task.done():
                shutdown_task.cancel()
                await asyncio.gather(shutdown_task, return_exceptions=True)

        logger.info("Heart rate processing task finished")

    def handle_event(self, event: Optional[DecodedBeatEvent]) -> Optional[int]:
        """Process one event and deliver the result.

        Returns:
            The BPM handed to the output, or None if the beat was skipped
            or the send failed
        """
        if event is None:
            return None

        selected_bpm = self.processor.process(event, self.bpm_mode)
        if selected_bpm is None:
            self.stats.increment('rejected_beats')
            logger.debug("Skipping heartbeat")
            return None

        try:
            send_output(self.output_mode, selected_bpm, self.bpm_mode, self.osc_client)
        except OutputError as e:
            self.stats.increment('failed_sends')
            logger.error(f"Failed to send output: {e}")
            return None

        self.stats.record_output(selected_bpm)
        return selected_bpm
