# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

"""
Factory holding the Redis connections and vending locks.
"""

import random
from typing import Any, Optional, Sequence

from quorumlock.core.connection import ExistingClientsConnectionProvider, RedLockConfiguration
from quorumlock.core.lock.redlock import AsyncRedLock, RedLock
from quorumlock.util.exceptions import ConfigurationError


class RedLockFactory:
    """Creates the store handles once and hands out ``RedLock`` / ``AsyncRedLock`` objects.

    Example:
        >>> factory = RedLockFactory.create(["localhost:6379", "localhost:6380", "localhost:6381"])
        >>> lock = factory.create_lock("orders:42", expiry_time=30)
        >>> lock.is_acquired
        True
        >>> lock.release()
        >>> factory.close()

    Args:
        configuration: Where the connections come from.

    Raises:
        ConfigurationError: If no Redis instance is configured.
    """

    def __init__(self, configuration: RedLockConfiguration):
        if configuration is None:
            raise ConfigurationError("Configuration must not be None")
        self.configuration = configuration
        self.connections = configuration.connection_provider.create_connections()

    @classmethod
    def create(cls, endpoints: Sequence[Any]) -> "RedLockFactory":
        """Factory whose connections are internally managed, built from endpoints."""
        return cls(RedLockConfiguration(endpoints))

    @classmethod
    def from_clients(cls, clients: Sequence[Any]) -> "RedLockFactory":
        """Factory over existing redis-py clients owned by the caller."""
        return cls(RedLockConfiguration(connection_provider=ExistingClientsConnectionProvider(clients)))

    def __enter__(self):
        return self

    def __exit__(self, *args, **kwargs):
        self.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args, **kwargs):
        await self.aclose()

    def create_lock(
        self,
        resource: str,
        expiry_time: float,
        wait_time: Optional[float] = None,
        retry_time: Optional[float] = None,
        cancel_event=None,
        rng: Optional[random.Random] = None,
    ) -> RedLock:
        """Create a lock and try to acquire it before returning.

        Args:
            resource: The resource to lock.
            expiry_time: Lock validity in seconds; renewed automatically while held.
            wait_time: Keep retrying for this many seconds (needs ``retry_time``).
            retry_time: Seconds to sleep between retries.
            cancel_event: A ``threading.Event`` that aborts waiting when set.
            rng: Random source for the retry jitter.

        Returns:
            RedLock: Check ``is_acquired``; failing to get a quorum is not an error.

        Raises:
            LockCancelledError: If ``cancel_event`` was set while waiting.
        """
        return RedLock.create(
            self.connections, resource, expiry_time, wait_time, retry_time, cancel_event, rng
        )

    async def create_lock_async(
        self,
        resource: str,
        expiry_time: float,
        wait_time: Optional[float] = None,
        retry_time: Optional[float] = None,
        cancel_event=None,
        rng: Optional[random.Random] = None,
    ) -> AsyncRedLock:
        """Same as ``create_lock`` but suspends instead of blocking; ``cancel_event`` is an ``asyncio.Event``."""
        return await AsyncRedLock.create(
            self.connections, resource, expiry_time, wait_time, retry_time, cancel_event, rng
        )

    def close(self):
        """Dispose the blocking connections."""
        self.configuration.connection_provider.dispose_connections()

    async def aclose(self):
        """Dispose every connection, asyncio clients included."""
        await self.configuration.connection_provider.adispose_connections()
