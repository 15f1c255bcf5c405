# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin


class ConfigurationError(ValueError):
    """Raised when a lock factory is built without any usable store."""

    def __init__(self, message: str = "No endpoints specified"):
        super().__init__(message)


class LockCancelledError(Exception):
    """Raised when a lock acquisition is cancelled at a wait or retry boundary."""

    def __init__(self, resource: str = "", lock_id: str = ""):
        self.resource = resource
        self.lock_id = lock_id
        super().__init__(f"Lock acquisition cancelled: {resource} ({lock_id})")
