# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

"""
Redlock over N independent Redis instances, in a blocking and an asyncio flavour.
"""

import asyncio
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from quorumlock.core.lock.base import BaseRedLock, SleepStep
from quorumlock.core.lock.fanout import fan_out, fan_out_async
from quorumlock.core.lock.keepalive import AsyncKeepalive, KeepaliveThread
from quorumlock.util.exceptions import LockCancelledError


class RedLock(BaseRedLock):
    """Blocking Redlock. Fans out with threads and sleeps on the calling thread.

    Example:
        >>> factory = RedLockFactory.create(["localhost:6379", "localhost:6380", "localhost:6381"])
        >>> with factory.create_lock("orders:42", expiry_time=30) as lock:
        ...     if lock.is_acquired:
        ...         pass  # Critical section

    ``cancel_event`` must be a ``threading.Event``.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._keepalive = None
        self._executor: Optional[ThreadPoolExecutor] = None

    @classmethod
    def create(cls, connections, resource, expiry_time, wait_time=None, retry_time=None,
               cancel_event=None, rng=None) -> "RedLock":
        redis_lock = cls(connections, resource, expiry_time, wait_time, retry_time, cancel_event, rng)
        redis_lock.start()
        return redis_lock

    def __enter__(self):
        return self

    def __exit__(self, *args, **kwargs):
        self.release()

    def start(self):
        try:
            acquired = self._drive(self._start_steps())
        except LockCancelledError:
            self._drive(self._release_steps())
            self._shutdown_executor()
            raise
        if acquired:
            self._keepalive = KeepaliveThread(self, self.expiry_time / 2)
            self._keepalive.start()
        else:
            self._shutdown_executor()
        return acquired

    def release(self):
        logging.debug(f"Disposing {self.resource} ({self.lock_id})")
        if self._released:
            return
        if self._keepalive is not None:
            self._keepalive.stop()
        self._drive(self._release_steps())
        self._shutdown_executor()
        self._released = True

    def stop_keepalive(self):
        if self._keepalive is not None:
            self._keepalive.stop()

    def _renew(self) -> bool:
        return self._drive(self._extend_steps())

    def _drive(self, steps):
        try:
            step = next(steps)
            while True:
                step = steps.send(self._execute(step))
        except StopIteration as stop:
            return stop.value

    def _execute(self, step):
        if isinstance(step, SleepStep):
            self._sleep(step.seconds)
            return None
        return fan_out(
            step.operation, self.connections, self.resource, self.lock_id, self.expiry_time,
            executor=self._get_executor(),
        )

    def _get_executor(self) -> ThreadPoolExecutor:
        # Shared by the acquisition, every keepalive tick and the release.
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=max(1, len(self.connections)),
                thread_name_prefix=f"redlock-{self.lock_id}",
            )
        return self._executor

    def _shutdown_executor(self):
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def _sleep(self, seconds: float):
        if self.cancel_event is None:
            time.sleep(seconds)
        elif self.cancel_event.wait(seconds):
            raise LockCancelledError(self.resource, self.lock_id)


class AsyncRedLock(BaseRedLock):
    """asyncio Redlock. Fans out with ``asyncio.gather`` over ``redis.asyncio`` clients.

    Example:
        >>> lock = await factory.create_lock_async("orders:42", expiry_time=30)
        >>> async with lock:
        ...     if lock.is_acquired:
        ...         pass  # Critical section

    ``cancel_event`` must be an ``asyncio.Event``. Cancelling the task running
    ``start()`` also unlocks every instance before ``CancelledError`` propagates.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._keepalive = None

    @classmethod
    async def create(cls, connections, resource, expiry_time, wait_time=None, retry_time=None,
                     cancel_event=None, rng=None) -> "AsyncRedLock":
        redis_lock = cls(connections, resource, expiry_time, wait_time, retry_time, cancel_event, rng)
        await redis_lock.start()
        return redis_lock

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args, **kwargs):
        await self.release()

    async def start(self):
        try:
            acquired = await self._drive(self._start_steps())
        except (LockCancelledError, asyncio.CancelledError):
            await asyncio.shield(self._drive(self._release_steps()))
            raise
        if acquired:
            self._keepalive = AsyncKeepalive(self, self.expiry_time / 2)
            self._keepalive.start()
        return acquired

    async def release(self):
        logging.debug(f"Disposing {self.resource} ({self.lock_id})")
        if self._released:
            return
        if self._keepalive is not None:
            await self._keepalive.stop()
        await self._drive(self._release_steps())
        self._released = True

    async def stop_keepalive(self):
        if self._keepalive is not None:
            await self._keepalive.stop()

    async def _renew(self) -> bool:
        return await self._drive(self._extend_steps())

    async def _drive(self, steps):
        try:
            step = next(steps)
            while True:
                step = steps.send(await self._execute(step))
        except StopIteration as stop:
            return stop.value

    async def _execute(self, step):
        if isinstance(step, SleepStep):
            await self._sleep(step.seconds)
            return None
        return await fan_out_async(step.operation, self.connections, self.resource, self.lock_id, self.expiry_time)

    async def _sleep(self, seconds: float):
        if self.cancel_event is None:
            await asyncio.sleep(seconds)
            return
        try:
            await asyncio.wait_for(self.cancel_event.wait(), seconds)
        except asyncio.TimeoutError:
            return
        raise LockCancelledError(self.resource, self.lock_id)
