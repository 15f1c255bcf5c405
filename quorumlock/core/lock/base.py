# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

"""
State and algorithm shared by the blocking and the asyncio Redlock.

The acquisition, renewal and release algorithms are written once as generators
of steps. A step is either a fan-out of one per-instance operation (the
generator receives the list of ``InstanceResult``) or a sleep (the generator
receives None). ``RedLock`` runs the steps with threads and blocking sleeps,
``AsyncRedLock`` runs them with asyncio.
"""

import collections
import logging
import random
import time
import uuid
from abc import ABC, abstractmethod
from typing import Optional, Sequence

import quorumlock
from quorumlock.core.connection.redis_connection import RedisConnection
from quorumlock.core.lock.fanout import count_successes
from quorumlock.core.lock.utils import (
    clamp_expiry_time,
    clamp_retry_time,
    get_quorum,
    get_remaining_validity,
    is_quorum_valid,
)
from quorumlock.util.exceptions import LockCancelledError

FanOutStep = collections.namedtuple("FanOutStep", ["operation"])
SleepStep = collections.namedtuple("SleepStep", ["seconds"])


class BaseRedLock(ABC):
    """Abstract base class for Redlock implementations.

    Attributes:
        resource: The locked resource.
        lock_id: Unique token stored as the value of the lock keys.
        is_acquired: Whether a quorum of instances currently holds the lock.
        extend_count: How many times the lock was successfully renewed.

    Args:
        connections: One store handle per Redis instance.
        resource: The resource to lock.
        expiry_time: Lock validity in seconds, at least 10ms.
        wait_time: Keep retrying for this many seconds (needs ``retry_time``).
        retry_time: Seconds to sleep between retries, at least 10ms.
        cancel_event: Event checked at every wait and retry boundary.
        rng: Random source for the retry jitter (default: a private ``random.Random``).
    """

    def __init__(
        self,
        connections: Sequence[RedisConnection],
        resource: str,
        expiry_time: float,
        wait_time: Optional[float] = None,
        retry_time: Optional[float] = None,
        cancel_event=None,
        rng: Optional[random.Random] = None,
    ):
        self.connections = list(connections)
        self.quorum = get_quorum(len(self.connections))
        self.expiry_time = clamp_expiry_time(expiry_time)
        self.wait_time = wait_time
        self.retry_time = clamp_retry_time(retry_time)
        self.cancel_event = cancel_event
        self._rng = rng if rng is not None else random.Random()
        self._resource = resource
        self._lock_id = str(uuid.uuid4())
        self._acquired = False
        self._extend_count = 0
        self._released = False

    @property
    def resource(self) -> str:
        return self._resource

    @property
    def lock_id(self) -> str:
        return self._lock_id

    @property
    def is_acquired(self) -> bool:
        return self._acquired

    @property
    def extend_count(self) -> int:
        return self._extend_count

    def __repr__(self):
        return (
            f"{type(self).__name__}(resource={self._resource!r}, lock_id={self._lock_id!r}, "
            f"is_acquired={self._acquired})"
        )

    @abstractmethod
    def start(self):
        """Try to acquire the lock, retrying as configured, and start the keepalive on success.

        Raises:
            LockCancelledError: If ``cancel_event`` was set at a wait or retry boundary.
        """

    @abstractmethod
    def release(self):
        """Stop the keepalive and unlock every instance.

        Always attempted, whatever ``is_acquired`` says. Safe to call more than once.
        """

    @abstractmethod
    def stop_keepalive(self):
        """Stop renewing without unlocking. Simulates a crashed holder in tests."""

    def _should_wait(self) -> bool:
        return (
            self.wait_time is not None
            and self.retry_time is not None
            and self.wait_time > 0
            and self.retry_time > 0
        )

    def _throw_if_cancelled(self):
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise LockCancelledError(self._resource, self._lock_id)

    def _start_steps(self):
        if self._should_wait():
            started = time.monotonic()
            while not self._acquired and time.monotonic() - started <= self.wait_time:
                self._throw_if_cancelled()
                self._acquired = yield from self._acquire_steps()
                if not self._acquired:
                    yield SleepStep(self.retry_time)
        else:
            self._acquired = yield from self._acquire_steps()

        if self._acquired:
            logging.info(f"Acquired lock: {self._resource} ({self._lock_id})")
        else:
            logging.info(f"Could not acquire lock: {self._resource} ({self._lock_id})")
        return self._acquired

    def _acquire_steps(self):
        constants = quorumlock.constants
        retry_count = constants.QUORUM_RETRY_COUNT

        for i in range(retry_count):
            self._throw_if_cancelled()
            logging.debug(
                f"Lock attempt {i + 1}/{retry_count}: {self._resource} ({self._lock_id}), "
                f"expiry: {self.expiry_time}s"
            )

            started = time.monotonic()
            results = yield FanOutStep("lock")
            locks_acquired = count_successes(results)
            validity = get_remaining_validity(self.expiry_time, time.monotonic() - started)

            logging.debug(
                f"Acquired locks for {self._resource} ({self._lock_id}) in "
                f"{locks_acquired}/{len(self.connections)} instances, quorum: {self.quorum}, "
                f"validity: {validity:.4f}s"
            )
            if is_quorum_valid(locks_acquired, self.quorum, validity):
                return True

            # No quorum: unlock everything before trying again.
            yield from self._release_steps()

            if i < retry_count - 1:
                sleep_ms = self._rng.randrange(constants.QUORUM_RETRY_DELAY_MS)
                logging.debug(f"Sleeping {sleep_ms}ms")
                yield SleepStep(sleep_ms / 1000)

        logging.debug(
            f"Could not acquire quorum after {retry_count} attempts, giving up: "
            f"{self._resource} ({self._lock_id})"
        )
        return False

    def _extend_steps(self):
        logging.debug(f"Lock renewal timer fired: {self._resource} ({self._lock_id})")

        started = time.monotonic()
        results = yield FanOutStep("extend")
        locks_extended = count_successes(results)
        validity = get_remaining_validity(self.expiry_time, time.monotonic() - started)

        if is_quorum_valid(locks_extended, self.quorum, validity):
            self._acquired = True
            self._extend_count += 1
            logging.debug(f"Extended lock: {self._resource} ({self._lock_id})")
        else:
            self._acquired = False
            logging.warning(f"Failed to extend lock: {self._resource} ({self._lock_id})")
        return self._acquired

    def _release_steps(self):
        yield FanOutStep("unlock")
        self._acquired = False
