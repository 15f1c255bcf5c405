# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

# Redlock algorithm
QUORUM_RETRY_COUNT = 3
QUORUM_RETRY_DELAY_MS = 400
CLOCK_DRIFT_FACTOR = 0.01
# Redis expiry precision is 1ms, plus 1ms minimum drift for small TTLs.
CLOCK_DRIFT_PRECISION = 0.002

MINIMUM_EXPIRY_TIME = 0.01
MINIMUM_RETRY_TIME = 0.01

# Connections
DEFAULT_REDIS_KEY_FORMAT = "redlock:{resource}"
DEFAULT_REDIS_DATABASE = 0
DEFAULT_REDIS_PORT = 6379
DEFAULT_CONNECTION_TIMEOUT = 0.1
DEFAULT_SOCKET_TIMEOUT = 1.0

# Keepalive
KEEPALIVE_STOP_TIMEOUT = 1.0
