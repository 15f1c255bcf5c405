# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

"""
Quorum and validity arithmetic for the Redlock algorithm.
"""

import logging
from typing import Optional

import quorumlock


def get_quorum(instance_count: int) -> int:
    """Returns the number of instances that must agree: a strict majority."""
    return instance_count // 2 + 1


def get_clock_drift(expiry_time: float) -> float:
    """Returns the safety margin subtracted from the validity window.

    Args:
        expiry_time: The lock expiry in seconds.

    Returns:
        ``expiry_time * CLOCK_DRIFT_FACTOR + CLOCK_DRIFT_PRECISION`` seconds.
    """
    constants = quorumlock.constants
    return expiry_time * constants.CLOCK_DRIFT_FACTOR + constants.CLOCK_DRIFT_PRECISION


def get_remaining_validity(expiry_time: float, elapsed: float) -> float:
    """Returns how long a lock obtained ``elapsed`` seconds ago is still safe to use.

    Args:
        expiry_time: The lock expiry in seconds.
        elapsed: Seconds spent talking to the instances.

    Returns:
        Remaining validity in seconds. Zero or less means the lock must not be used.
    """
    return expiry_time - elapsed - get_clock_drift(expiry_time)


def is_quorum_valid(successes: int, quorum: int, validity: float) -> bool:
    """Whether a round of lock or extend commands may be treated as holding the lock.

    Both halves must hold: at least ``quorum`` instances answered with success,
    and the drift-adjusted validity left after the round is still positive.
    """
    return successes >= quorum and validity > 0


def clamp_expiry_time(expiry_time: float) -> float:
    """Raises ``expiry_time`` to ``MINIMUM_EXPIRY_TIME``, logging a warning when it had to."""
    minimum = quorumlock.constants.MINIMUM_EXPIRY_TIME
    if expiry_time < minimum:
        logging.warning(f"Expiry time {expiry_time * 1000:g}ms too low, setting to {minimum * 1000:g}ms")
        return minimum
    return expiry_time


def clamp_retry_time(retry_time: Optional[float]) -> Optional[float]:
    """Same as ``clamp_expiry_time`` for the retry interval. None means no retrying."""
    minimum = quorumlock.constants.MINIMUM_RETRY_TIME
    if retry_time is not None and retry_time < minimum:
        logging.warning(f"Retry time {retry_time * 1000:g}ms too low, setting to {minimum * 1000:g}ms")
        return minimum
    return retry_time
