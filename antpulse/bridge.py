#!/usr/bin/env python3
"""
Thread-to-asyncio bridge: latest-value channel and broadcast shutdown.

The sensor poller runs on a plain thread (its hardware calls block), the
consumer runs on an asyncio event loop. Two primitives connect them:

LatestValue
    Single slot guarded by a lock plus a version counter. publish() overwrites
    whatever is there and wakes waiting receivers; receivers only ever see the
    newest value, never a backlog. A value published and overwritten before the
    receiver looked is simply never observed.

ShutdownSignal
    One-shot broadcast. Each execution unit subscribes for its own
    ShutdownListener; trigger() sets every listener at once. Threads poll
    listener.is_set() (or block in wait()), coroutines await wait_async().

Wakeups into an event loop always go through loop.call_soon_threadsafe, so
publish() and trigger() are safe from any thread.

USAGE:
    channel = LatestValue()
    shutdown = ShutdownSignal()

    # poller thread
    listener = shutdown.subscribe()
    while not listener.is_set():
        channel.publish(event)

    # consumer coroutine
    receiver = channel.subscribe()
    event = await receiver.changed()
"""

import asyncio
import threading
from typing import Generic, List, Optional, Tuple, TypeVar

T = TypeVar("T")


def _wake(future: asyncio.Future) -> None:
    if not future.done():
        future.set_result(None)


class _AsyncWaiters:
    """Futures parked on other event loops, woken from any thread.

    Not locked itself; owners call it under their own lock.
    """

    def __init__(self) -> None:
        self._waiters: List[Tuple[asyncio.AbstractEventLoop, asyncio.Future]] = []

    def add(self, loop: asyncio.AbstractEventLoop) -> asyncio.Future:
        future = loop.create_future()
        self._waiters.append((loop, future))
        return future

    def discard(self, future: asyncio.Future) -> None:
        self._waiters = [(l, f) for (l, f) in self._waiters if f is not future]

    def take_all(self) -> List[Tuple[asyncio.AbstractEventLoop, asyncio.Future]]:
        waiters, self._waiters = self._waiters, []
        return waiters


def _wake_all(waiters) -> None:
    for loop, future in waiters:
        if loop.is_closed():
            continue
        loop.call_soon_threadsafe(_wake, future)


# ============================================================================
# LATEST-VALUE CHANNEL
# ============================================================================

class LatestValue(Generic[T]):
    """Lossy single-slot channel: a new value replaces any unread one.

    Attributes:
        version (int): Number of publishes so far (0 = no value yet)
    """

    def __init__(self, initial: Optional[T] = None):
        self._lock = threading.Lock()
        self._value: Optional[T] = initial
        self._version = 0
        self._waiters = _AsyncWaiters()

    def publish(self, value: T) -> None:
        """Replace the current value and wake every waiting receiver."""
        with self._lock:
            self._value = value
            self._version += 1
            waiters = self._waiters.take_all()
        _wake_all(waiters)

    def get(self) -> Optional[T]:
        """Current value, None before the first publish."""
        with self._lock:
            return self._value

    @property
    def version(self) -> int:
        with self._lock:
            return self._version

    def subscribe(self) -> "LatestValueReceiver[T]":
        """New receiver; values published before this call count as seen."""
        return LatestValueReceiver(self)

    def _snapshot(self) -> Tuple[Optional[T], int]:
        with self._lock:
            return self._value, self._version

    def _park(self, loop: asyncio.AbstractEventLoop,
              seen_version: int) -> Optional[asyncio.Future]:
        # None means a newer value is already there
        with self._lock:
            if self._version != seen_version:
                return None
            return self._waiters.add(loop)

    def _unpark(self, future: asyncio.Future) -> None:
        with self._lock:
            self._waiters.discard(future)


class LatestValueReceiver(Generic[T]):
    """Consumer handle tracking which version of a LatestValue it has seen."""

    def __init__(self, channel: LatestValue[T]):
        self._channel = channel
        self._seen_version = channel.version

    def borrow(self) -> Optional[T]:
        """Current value without marking it seen."""
        return self._channel.get()

    def has_changed(self) -> bool:
        return self._channel.version != self._seen_version

    async def changed(self) -> Optional[T]:
        """Wait for a value newer than the last one seen and return it.

        The returned value and the seen-version are taken atomically, so the
        same publish is never reported twice.
        """
        loop = asyncio.get_running_loop()
        while True:
            future = self._channel._park(loop, self._seen_version)
            if future is None:
                break
            try:
                await future
            finally:
                self._channel._unpark(future)

        value, version = self._channel._snapshot()
        self._seen_version = version
        return value


# ============================================================================
# SHUTDOWN BROADCAST
# ============================================================================

class ShutdownListener:
    """One subscriber's view of a ShutdownSignal."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._waiters = _AsyncWaiters()

    def is_set(self) -> bool:
        """Non-blocking check, for polling loops."""
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block the calling thread until shutdown (or timeout).

        Returns:
            True if shutdown was signalled
        """
        return self._event.wait(timeout)

    async def wait_async(self) -> None:
        """Suspend the calling coroutine until shutdown is signalled."""
        loop = asyncio.get_running_loop()
        with self._lock:
            if self._event.is_set():
                return
            future = self._waiters.add(loop)
        try:
            await future
        finally:
            with self._lock:
                self._waiters.discard(future)

    def _deliver(self) -> None:
        with self._lock:
            self._event.set()
            waiters = self._waiters.take_all()
        _wake_all(waiters)


class ShutdownSignal:
    """One-shot shutdown broadcast to every subscribed listener."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._triggered = False
        self._listeners: List[ShutdownListener] = []

    def subscribe(self) -> ShutdownListener:
        """New listener; already set if shutdown happened before subscribing."""
        listener = ShutdownListener()
        with self._lock:
            self._listeners.append(listener)
            triggered = self._triggered
        if triggered:
            listener._deliver()
        return listener

    def trigger(self) -> None:
        """Signal every listener. Calls after the first are no-ops."""
        with self._lock:
            if self._triggered:
                return
            self._triggered = True
            listeners = list(self._listeners)
        for listener in listeners:
            listener._deliver()

    @property
    def triggered(self) -> bool:
        with self._lock:
            return self._triggered
