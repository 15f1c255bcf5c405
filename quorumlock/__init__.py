# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

"""
quorumlock: distributed locks over independent Redis instances (Redlock).
"""

__version__ = "1.0.0"

from quorumlock import constants
from quorumlock.core.connection import (
    ExistingClientsConnectionProvider,
    InternallyManagedConnectionProvider,
    RedLockClient,
    RedLockConfiguration,
    RedLockConnectionProvider,
    RedLockEndPoint,
)
from quorumlock.core.factory import RedLockFactory
from quorumlock.core.lock import AsyncRedLock, RedLock
from quorumlock.util.exceptions import ConfigurationError, LockCancelledError

__all__ = [
    "constants",
    "RedLockFactory",
    "RedLock",
    "AsyncRedLock",
    "RedLockConfiguration",
    "RedLockEndPoint",
    "RedLockClient",
    "RedLockConnectionProvider",
    "InternallyManagedConnectionProvider",
    "ExistingClientsConnectionProvider",
    "ConfigurationError",
    "LockCancelledError",
]
