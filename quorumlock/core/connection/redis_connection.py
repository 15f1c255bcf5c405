# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

"""
Store handle: one configured connection to one Redis instance.
"""

import threading
from typing import Dict, Optional

from quorumlock.constants import DEFAULT_REDIS_KEY_FORMAT
from quorumlock.util.exceptions import ConfigurationError


def describe_client(client) -> str:
    """Returns "host:port/db" for a redis-py client, as far as it is known."""
    pool = getattr(client, "connection_pool", None)
    kwargs = getattr(pool, "connection_kwargs", None) or {}
    host = kwargs.get("host", "localhost")
    port = kwargs.get("port", 6379)
    return f"{host}:{port}/{kwargs.get('db', 0)}"


class RedisConnection:
    """A connection to a single Redis instance shared by every lock of a factory.

    The blocking lock uses ``client`` (a ``redis.Redis``), the asyncio lock uses
    ``async_client`` (a ``redis.asyncio.Redis``). Handles are never mutated once
    built apart from the lazily registered script objects.

    Args:
        client: Blocking redis-py client, or None.
        async_client: Asyncio redis-py client, or None.
        redis_key_format: Key template with a ``{resource}`` placeholder.
        name: Human readable description used in logs.

    Raises:
        ConfigurationError: If ``redis_key_format`` cannot be formatted with a
            ``resource`` keyword alone.
    """

    def __init__(
        self,
        client=None,
        async_client=None,
        redis_key_format: Optional[str] = None,
        name: Optional[str] = None,
    ):
        self.client = client
        self.async_client = async_client
        self.redis_key_format = redis_key_format or DEFAULT_REDIS_KEY_FORMAT
        try:
            self.redis_key_format.format(resource="resource")
        except (AttributeError, KeyError, IndexError, ValueError) as e:
            raise ConfigurationError(
                f"Invalid redis key format {self.redis_key_format!r}, only a {{resource}} placeholder is allowed: {e}"
            ) from e
        self.name = name or describe_client(client if client is not None else async_client)
        self._scripts: Dict[str, object] = {}
        self._async_scripts: Dict[str, object] = {}
        self._script_lock = threading.Lock()

    def __repr__(self):
        return f"RedisConnection({self.name})"

    def get_key(self, resource: str) -> str:
        return self.redis_key_format.format(resource=resource)

    def get_script(self, source: str):
        """Get or register a Lua script on the blocking client."""
        with self._script_lock:
            script = self._scripts.get(source)
            if script is None:
                script = self._require(self.client, "client").register_script(source)
                self._scripts[source] = script
        return script

    def get_async_script(self, source: str):
        """Get or register a Lua script on the asyncio client."""
        with self._script_lock:
            script = self._async_scripts.get(source)
            if script is None:
                script = self._require(self.async_client, "async_client").register_script(source)
                self._async_scripts[source] = script
        return script

    def get_client(self):
        return self._require(self.client, "client")

    def get_async_client(self):
        return self._require(self.async_client, "async_client")

    def _require(self, client, attribute: str):
        if client is None:
            raise RuntimeError(f"{self.name} has no {attribute} configured")
        return client
