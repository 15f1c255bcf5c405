# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

"""
Redlock module for quorumlock.

Provides a lock that is held only while a majority of independent Redis
instances agree, in a blocking (RedLock) and an asyncio (AsyncRedLock) flavour.
"""

from quorumlock.core.lock.base import BaseRedLock
from quorumlock.core.lock.fanout import count_successes, fan_out, fan_out_async
from quorumlock.core.lock.keepalive import AsyncKeepalive, KeepaliveThread
from quorumlock.core.lock.redis_lock import InstanceResult
from quorumlock.core.lock.redlock import AsyncRedLock, RedLock
from quorumlock.core.lock.utils import get_quorum, get_remaining_validity

__all__ = [
    "BaseRedLock",
    "RedLock",
    "AsyncRedLock",
    "KeepaliveThread",
    "AsyncKeepalive",
    "InstanceResult",
    "fan_out",
    "fan_out_async",
    "count_successes",
    "get_quorum",
    "get_remaining_validity",
]
