# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

"""
Connection providers: produce the store handles a factory locks against, and
tear them down again.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Sequence

import redis
import redis.asyncio

import quorumlock
from quorumlock.core.connection.config import RedLockClient, RedLockEndPoint
from quorumlock.core.connection.redis_connection import RedisConnection, describe_client
from quorumlock.util.exceptions import ConfigurationError


class RedLockConnectionProvider(ABC):
    """Capability interface for creating and disposing store handles."""

    @abstractmethod
    def create_connections(self) -> List[RedisConnection]:
        """Create one handle per Redis instance.

        Raises:
            ConfigurationError: If no instance is configured.
        """

    @abstractmethod
    def dispose_connections(self) -> None:
        """Release the blocking resources held by the handles."""

    async def adispose_connections(self) -> None:
        """Release every resource held by the handles, asyncio clients included."""
        self.dispose_connections()


class InternallyManagedConnectionProvider(RedLockConnectionProvider):
    """Builds and owns one blocking and one asyncio client per endpoint.

    Args:
        endpoints: ``RedLockEndPoint`` objects, URLs, "host:port" strings or
            (host, port) pairs.
    """

    def __init__(self, endpoints: Optional[Sequence[Any]] = None):
        self.endpoints = [RedLockEndPoint.parse(e) for e in (endpoints or [])]
        self._connections: List[RedisConnection] = []

    def create_connections(self) -> List[RedisConnection]:
        if not self.endpoints:
            raise ConfigurationError("No endpoints specified")

        self._connections = [self._connect(endpoint) for endpoint in self.endpoints]
        return self._connections

    def dispose_connections(self) -> None:
        for connection in self._connections:
            try:
                connection.client.close()
            except Exception as e:
                logging.warning(f"Error closing connection to {connection.name}: {e}")

    async def adispose_connections(self) -> None:
        self.dispose_connections()
        for connection in self._connections:
            try:
                await connection.async_client.aclose()
            except Exception as e:
                logging.warning(f"Error closing async connection to {connection.name}: {e}")

    @staticmethod
    def _connect(endpoint: RedLockEndPoint) -> RedisConnection:
        constants = quorumlock.constants
        database = (
            endpoint.redis_database
            if endpoint.redis_database is not None
            else constants.DEFAULT_REDIS_DATABASE
        )
        options = {
            "db": database,
            "password": endpoint.password,
            "socket_connect_timeout": (
                endpoint.connection_timeout
                if endpoint.connection_timeout is not None
                else constants.DEFAULT_CONNECTION_TIMEOUT
            ),
            "socket_timeout": (
                endpoint.socket_timeout
                if endpoint.socket_timeout is not None
                else constants.DEFAULT_SOCKET_TIMEOUT
            ),
        }

        if endpoint.url:
            if endpoint.ssl:
                raise ConfigurationError(
                    f"ssl=True is not supported together with a URL ({endpoint.describe()}), use a rediss:// URL"
                )
            # Options encoded in the URL (database, credentials, TLS) win over the defaults.
            client = redis.Redis.from_url(endpoint.url, **options)
            async_client = redis.asyncio.Redis.from_url(endpoint.url, **options)
            name = describe_client(client)
        else:
            client = redis.Redis(host=endpoint.host, port=endpoint.port, ssl=endpoint.ssl, **options)
            async_client = redis.asyncio.Redis(
                host=endpoint.host, port=endpoint.port, ssl=endpoint.ssl, **options
            )
            name = f"{endpoint.describe()}/{database}"

        logging.debug(f"Configured redis connection {name}")
        return RedisConnection(
            client=client,
            async_client=async_client,
            redis_key_format=endpoint.redis_key_format,
            name=name,
        )


class ExistingClientsConnectionProvider(RedLockConnectionProvider):
    """Wraps clients owned by the caller. They are never closed by this provider.

    Args:
        clients: ``RedLockClient`` objects, or bare ``redis.Redis`` /
            ``redis.asyncio.Redis`` clients.
    """

    def __init__(self, clients: Optional[Sequence[Any]] = None):
        self.clients = [self._wrap(c) for c in (clients or [])]

    def create_connections(self) -> List[RedisConnection]:
        if not self.clients:
            raise ConfigurationError("No redis clients specified")

        connections = []
        for existing in self.clients:
            if existing.client is None and existing.async_client is None:
                raise ConfigurationError("RedLockClient needs a client or an async_client")
            connections.append(
                RedisConnection(
                    client=existing.client,
                    async_client=existing.async_client,
                    redis_key_format=existing.redis_key_format,
                    name=existing.name,
                )
            )
        return connections

    def dispose_connections(self) -> None:
        pass

    @staticmethod
    def _wrap(client) -> RedLockClient:
        if isinstance(client, RedLockClient):
            return client
        if isinstance(client, redis.asyncio.Redis):
            return RedLockClient(async_client=client)
        return RedLockClient(client=client)
