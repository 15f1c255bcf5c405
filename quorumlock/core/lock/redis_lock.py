# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

"""
Per-instance Redis commands used by the Redlock algorithm.

Every function here talks to exactly one Redis instance and never raises on
transport or command errors: the failure is logged and reported in the
returned ``InstanceResult`` so the other instances still get their turn.
"""

import collections
import logging

from quorumlock.core.connection.redis_connection import RedisConnection

# Lua script for atomic release - only delete if we own the lock
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""

# Lua script for atomic extend - only reset the expiry if we own the lock.
# A missing key and a key owned by someone else both return 0.
EXTEND_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    redis.call("pexpire", KEYS[1], ARGV[2])
    return 1
else
    return 0
end
"""

InstanceResult = collections.namedtuple("InstanceResult", ["host", "success", "error"])


def _to_milliseconds(seconds: float) -> int:
    return max(1, int(seconds * 1000))


def _failed(connection: RedisConnection, action: str, resource: str, error: Exception) -> InstanceResult:
    logging.warning(f"Error {action} lock instance {connection.name}: {resource}, {error}")
    return InstanceResult(connection.name, False, str(error))


def lock_instance(connection: RedisConnection, resource: str, lock_id: str, expiry_time: float) -> InstanceResult:
    """SET key lock_id PX expiry NX on one instance."""
    logging.debug(f"LockInstance enter {connection.name}: {resource}, {lock_id}, {expiry_time}s")
    try:
        key = connection.get_key(resource)
        result = connection.get_client().set(key, lock_id, nx=True, px=_to_milliseconds(expiry_time))
    except Exception as e:
        return _failed(connection, "locking", resource, e)
    logging.debug(f"LockInstance exit {connection.name}: {key}, {lock_id}, {bool(result)}")
    return InstanceResult(connection.name, bool(result), None)


def extend_instance(connection: RedisConnection, resource: str, lock_id: str, expiry_time: float) -> InstanceResult:
    """Reset the expiry of the key on one instance if it still holds ``lock_id``."""
    logging.debug(f"ExtendInstance enter {connection.name}: {resource}, {lock_id}, {expiry_time}s")
    try:
        key = connection.get_key(resource)
        script = connection.get_script(EXTEND_SCRIPT)
        result = script(keys=[key], args=[lock_id, _to_milliseconds(expiry_time)])
    except Exception as e:
        return _failed(connection, "extending", resource, e)
    logging.debug(f"ExtendInstance exit {connection.name}: {key}, {lock_id}, {result}")
    return InstanceResult(connection.name, result == 1, None)


def unlock_instance(connection: RedisConnection, resource: str, lock_id: str, expiry_time: float = 0) -> InstanceResult:
    """Delete the key on one instance if it still holds ``lock_id``."""
    logging.debug(f"UnlockInstance enter {connection.name}: {resource}, {lock_id}")
    try:
        key = connection.get_key(resource)
        script = connection.get_script(RELEASE_SCRIPT)
        result = script(keys=[key], args=[lock_id])
    except Exception as e:
        return _failed(connection, "unlocking", resource, e)
    logging.debug(f"UnlockInstance exit {connection.name}: {key}, {lock_id}, {result}")
    return InstanceResult(connection.name, result == 1, None)


async def lock_instance_async(
    connection: RedisConnection, resource: str, lock_id: str, expiry_time: float
) -> InstanceResult:
    """asyncio version of ``lock_instance``, using the connection's ``async_client``."""
    logging.debug(f"LockInstanceAsync enter {connection.name}: {resource}, {lock_id}, {expiry_time}s")
    try:
        key = connection.get_key(resource)
        result = await connection.get_async_client().set(
            key, lock_id, nx=True, px=_to_milliseconds(expiry_time)
        )
    except Exception as e:
        return _failed(connection, "locking", resource, e)
    logging.debug(f"LockInstanceAsync exit {connection.name}: {key}, {lock_id}, {bool(result)}")
    return InstanceResult(connection.name, bool(result), None)


async def extend_instance_async(
    connection: RedisConnection, resource: str, lock_id: str, expiry_time: float
) -> InstanceResult:
    """asyncio version of ``extend_instance``. Succeeds only on a reply of 1."""
    logging.debug(f"ExtendInstanceAsync enter {connection.name}: {resource}, {lock_id}, {expiry_time}s")
    try:
        key = connection.get_key(resource)
        script = connection.get_async_script(EXTEND_SCRIPT)
        result = await script(keys=[key], args=[lock_id, _to_milliseconds(expiry_time)])
    except Exception as e:
        return _failed(connection, "extending", resource, e)
    logging.debug(f"ExtendInstanceAsync exit {connection.name}: {key}, {lock_id}, {result}")
    return InstanceResult(connection.name, result == 1, None)


async def unlock_instance_async(
    connection: RedisConnection, resource: str, lock_id: str, expiry_time: float = 0
) -> InstanceResult:
    """asyncio version of ``unlock_instance``. ``expiry_time`` is ignored."""
    logging.debug(f"UnlockInstanceAsync enter {connection.name}: {resource}, {lock_id}")
    try:
        key = connection.get_key(resource)
        script = connection.get_async_script(RELEASE_SCRIPT)
        result = await script(keys=[key], args=[lock_id])
    except Exception as e:
        return _failed(connection, "unlocking", resource, e)
    logging.debug(f"UnlockInstanceAsync exit {connection.name}: {key}, {lock_id}, {result}")
    return InstanceResult(connection.name, result == 1, None)


# Operation name -> (blocking, asyncio) implementation
OPERATIONS = {
    "lock": (lock_instance, lock_instance_async),
    "extend": (extend_instance, extend_instance_async),
    "unlock": (unlock_instance, unlock_instance_async),
}
