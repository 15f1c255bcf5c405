# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

"""
Configuration objects describing the Redis instances a lock factory talks to.
"""

import dataclasses
from typing import Any, List, Optional, Sequence, Union

from quorumlock.constants import DEFAULT_REDIS_PORT
from quorumlock.util.exceptions import ConfigurationError


@dataclasses.dataclass
class RedLockEndPoint:
    """One independent Redis instance taking part in the quorum.

    Args:
        host: Host name of the instance (ignored when ``url`` is given).
        port: Port of the instance (ignored when ``url`` is given).
        url: Optional ``redis://`` / ``rediss://`` URL.
        password: Optional password.
        ssl: Whether to connect over TLS. Not allowed with ``url``, use a ``rediss://`` URL instead.
        connection_timeout: Connect timeout in seconds (default: 0.1).
        socket_timeout: Command timeout in seconds (default: 1.0).
        redis_database: Database index (default: 0).
        redis_key_format: Key template with a ``{resource}`` placeholder
            (default: "redlock:{resource}").
    """
    host: str = "localhost"
    port: int = DEFAULT_REDIS_PORT
    url: Optional[str] = None
    password: Optional[str] = None
    ssl: bool = False
    connection_timeout: Optional[float] = None
    socket_timeout: Optional[float] = None
    redis_database: Optional[int] = None
    redis_key_format: Optional[str] = None

    @classmethod
    def parse(cls, value: Union["RedLockEndPoint", str, Sequence[Any]]) -> "RedLockEndPoint":
        """Builds an endpoint from an endpoint, a URL, a "host:port" string or a (host, port) pair."""
        if isinstance(value, RedLockEndPoint):
            return value
        if isinstance(value, str):
            if "://" in value:
                return cls(url=value)
            host, _, port = value.rpartition(":")
            if not host:
                return cls(host=value)
            return cls(host=host, port=int(port))
        if isinstance(value, (tuple, list)) and len(value) == 2:
            return cls(host=value[0], port=int(value[1]))
        raise ConfigurationError(f"Unsupported endpoint: {value!r}")

    def describe(self) -> str:
        if self.url:
            # Never log credentials embedded in the URL.
            return self.url.split("@")[-1]
        return f"{self.host}:{self.port}"


@dataclasses.dataclass
class RedLockClient:
    """An existing, caller-owned Redis client pair.

    At least one of ``client`` (``redis.Redis``) or ``async_client``
    (``redis.asyncio.Redis``) must be set. Both must talk to the same instance.
    """
    client: Any = None
    async_client: Any = None
    redis_key_format: Optional[str] = None
    name: Optional[str] = None


class RedLockConfiguration:
    """Holds the connection provider a factory builds its store handles from.

    Either a list of endpoints (connections are internally managed) or an
    explicit connection provider must be given.
    """

    def __init__(self, endpoints: Optional[List[Any]] = None, connection_provider=None):
        if connection_provider is not None and endpoints is not None:
            raise ConfigurationError("Pass either endpoints or a connection provider, not both")
        if connection_provider is None:
            if endpoints is None:
                raise ConfigurationError("Connection provider must not be None")
            from quorumlock.core.connection.provider import InternallyManagedConnectionProvider
            connection_provider = InternallyManagedConnectionProvider(endpoints)
        self.connection_provider = connection_provider
