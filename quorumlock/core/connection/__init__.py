# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

"""
Connection provisioning for the lock factory.
"""

from quorumlock.core.connection.config import RedLockClient, RedLockConfiguration, RedLockEndPoint
from quorumlock.core.connection.provider import (
    ExistingClientsConnectionProvider,
    InternallyManagedConnectionProvider,
    RedLockConnectionProvider,
)
from quorumlock.core.connection.redis_connection import RedisConnection, describe_client

__all__ = [
    "RedLockClient",
    "RedLockConfiguration",
    "RedLockEndPoint",
    "RedLockConnectionProvider",
    "InternallyManagedConnectionProvider",
    "ExistingClientsConnectionProvider",
    "RedisConnection",
    "describe_client",
]
