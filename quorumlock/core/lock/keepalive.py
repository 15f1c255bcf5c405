# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

"""
Background renewal of a held lock.
"""

import asyncio
import logging
import threading
from typing import Optional

import quorumlock


class KeepaliveThread:
    """Daemon thread that renews a held lock every ``interval`` seconds.

    Each tick runs while holding ``_thread_lock``, and ``stop()`` takes the same
    lock, so once ``stop()`` returns no tick is running and none will start.
    ``stop()`` also joins the thread, bounded by ``KEEPALIVE_STOP_TIMEOUT``.
    A failed renewal marks the lock as not acquired but keeps the thread alive.

    Args:
        lock: The ``RedLock`` to renew; its ``_renew()`` is called on every tick.
        interval: Seconds between ticks (half the lock expiry).
    """

    def __init__(self, lock, interval: float):
        self.lock = lock
        self.interval = interval
        self._thread_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and not self._stop_event.is_set()

    def start(self):
        logging.debug(f"Starting auto extend timer with {self.interval * 1000:g}ms interval")
        self._thread = threading.Thread(
            target=self._keepalive_loop,
            daemon=True,
            name=f"redlock-keepalive-{self.lock.lock_id}",
        )
        self._thread.start()

    def stop(self):
        with self._thread_lock:
            if not self._stop_event.is_set():
                logging.debug("Stopping auto extend timer")
            self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(quorumlock.constants.KEEPALIVE_STOP_TIMEOUT)

    def _keepalive_loop(self):
        while not self._stop_event.wait(self.interval):
            with self._thread_lock:
                if self._stop_event.is_set():
                    return
                try:
                    self.lock._renew()
                except Exception:
                    logging.exception(f"Lock renewal timer thread failed: {self.lock.resource} ({self.lock.lock_id})")


class AsyncKeepalive:
    """asyncio task that renews a held ``AsyncRedLock`` every ``interval`` seconds."""

    def __init__(self, lock, interval: float):
        self.lock = lock
        self.interval = interval
        self._tick_lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        self._stopped = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._stopped

    def start(self):
        logging.debug(f"Starting auto extend task with {self.interval * 1000:g}ms interval")
        self._task = asyncio.ensure_future(self._keepalive_loop())

    async def stop(self):
        async with self._tick_lock:
            if self._stopped:
                return
            logging.debug("Stopping auto extend task")
            self._stopped = True
            task = self._task
            if task is not None:
                task.cancel()
        if task is not None:
            await asyncio.wait([task])

    async def _keepalive_loop(self):
        while True:
            await asyncio.sleep(self.interval)
            async with self._tick_lock:
                if self._stopped:
                    return
                try:
                    await self.lock._renew()
                except Exception:
                    logging.exception(f"Lock renewal task failed: {self.lock.resource} ({self.lock.lock_id})")
