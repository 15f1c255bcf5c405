# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

"""
Run one per-instance operation against every Redis instance at once.
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence

from quorumlock.core.connection.redis_connection import RedisConnection
from quorumlock.core.lock.redis_lock import OPERATIONS, InstanceResult


def count_successes(results: Sequence[InstanceResult]) -> int:
    return sum(1 for result in results if result.success)


def fan_out(
    operation: str,
    connections: Sequence[RedisConnection],
    resource: str,
    lock_id: str,
    expiry_time: float,
    executor: Optional[ThreadPoolExecutor] = None,
) -> List[InstanceResult]:
    """Multithreaded call of ``operation`` on every instance.

    Returns only once every instance has answered or failed.

    Args:
        operation: One of "lock", "extend" or "unlock".
        connections: The store handles.
        resource: The locked resource.
        lock_id: The lock's fencing token.
        expiry_time: Expiry in seconds.
        executor: Pool to run the calls on. A temporary one sized to the
            connections is used when omitted.

    Returns:
        List[InstanceResult]: One result per connection, in connection order.
    """
    func = OPERATIONS[operation][0]

    def run(connection):
        return func(connection, resource, lock_id, expiry_time)

    if executor is not None:
        return list(executor.map(run, connections))
    with ThreadPoolExecutor(max_workers=max(1, len(connections)), thread_name_prefix="redlock") as executor:
        return list(executor.map(run, connections))


async def fan_out_async(
    operation: str,
    connections: Sequence[RedisConnection],
    resource: str,
    lock_id: str,
    expiry_time: float,
) -> List[InstanceResult]:
    """Concurrent asyncio call of ``operation`` on every instance."""
    func = OPERATIONS[operation][1]
    return list(
        await asyncio.gather(*(func(connection, resource, lock_id, expiry_time) for connection in connections))
    )
