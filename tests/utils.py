# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

"""
Helpers building lock factories over in-process fakeredis servers.
"""

from unittest.mock import AsyncMock, MagicMock

import fakeredis
import redis
import redis.asyncio

from quorumlock import RedLockClient, RedLockFactory


def unreachable_client():
    """A blocking client whose every command fails like a dead Redis instance."""
    error = redis.exceptions.ConnectionError("Error 111 connecting to localhost:63790. Connection refused.")
    client = MagicMock(spec=redis.Redis)
    client.set.side_effect = error
    client.register_script.return_value = MagicMock(side_effect=error)
    return client


def unreachable_async_client():
    """An asyncio client whose every command fails like a dead Redis instance."""
    error = redis.exceptions.ConnectionError("Error 111 connecting to localhost:63790. Connection refused.")
    client = MagicMock(spec=redis.asyncio.Redis)
    client.set = AsyncMock(side_effect=error)
    client.register_script.return_value = AsyncMock(side_effect=error)
    return client


def active_clients(servers, redis_key_format=None):
    return [
        RedLockClient(
            client=fakeredis.FakeRedis(server=server),
            redis_key_format=redis_key_format,
            name=f"active-{i}",
        )
        for i, server in enumerate(servers)
    ]


def build_factory(servers, unreachable=0, redis_key_format=None):
    clients = active_clients(servers, redis_key_format)
    clients += [RedLockClient(client=unreachable_client(), name=f"inactive-{i}") for i in range(unreachable)]
    return RedLockFactory.from_clients(clients)


def build_async_factory(servers, unreachable=0, redis_key_format=None):
    """Must be called from inside a running event loop."""
    clients = [
        RedLockClient(
            async_client=fakeredis.FakeAsyncRedis(server=server),
            redis_key_format=redis_key_format,
            name=f"active-{i}",
        )
        for i, server in enumerate(servers)
    ]
    clients += [
        RedLockClient(async_client=unreachable_async_client(), name=f"inactive-{i}") for i in range(unreachable)
    ]
    return RedLockFactory.from_clients(clients)


def stored_value(server, resource, redis_key_format="redlock:{resource}"):
    value = fakeredis.FakeRedis(server=server).get(redis_key_format.format(resource=resource))
    return value.decode("utf-8") if value is not None else None


def stored_pttl(server, resource, redis_key_format="redlock:{resource}"):
    return fakeredis.FakeRedis(server=server).pttl(redis_key_format.format(resource=resource))
