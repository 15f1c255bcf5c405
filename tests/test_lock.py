# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

"""
Tests for the lock module.

This module tests the quorum arithmetic, the per-instance commands, the
fan-out and the blocking RedLock against in-process fakeredis servers.
"""

import logging
import random
import threading
import time
import uuid
from unittest.mock import MagicMock, patch

import fakeredis
import pytest

import quorumlock
from quorumlock import LockCancelledError, RedLock, RedLockClient, RedLockFactory
from quorumlock.core.connection import RedisConnection
from quorumlock.core.lock import count_successes, fan_out, get_quorum, get_remaining_validity
from quorumlock.core.lock.redis_lock import extend_instance, lock_instance, unlock_instance
from quorumlock.core.lock.utils import clamp_retry_time, get_clock_drift
from tests.utils import build_factory, stored_pttl, stored_value, unreachable_client


@pytest.fixture
def connection(servers):
    return RedisConnection(client=fakeredis.FakeRedis(server=servers[0]), name="active-0")


# ============================================================================
# Quorum and validity
# ============================================================================

class TestQuorumMath:
    """Tests for the quorum and validity arithmetic."""

    @pytest.mark.parametrize("count, quorum", [(1, 1), (2, 2), (3, 2), (4, 3), (5, 3), (6, 4), (7, 4)])
    def test_quorum(self, count, quorum):
        assert get_quorum(count) == quorum

    def test_quorum_is_strict_majority(self):
        for count in range(1, 50):
            assert get_quorum(count) == count // 2 + 1
            assert get_quorum(count) > count / 2

    def test_clock_drift(self):
        assert get_clock_drift(30) == pytest.approx(30 * 0.01 + 0.002)

    def test_remaining_validity(self):
        assert get_remaining_validity(10, 0.5) == pytest.approx(10 - 0.5 - 0.102)
        assert get_remaining_validity(0.01, 0.01) < 0

    def test_expiry_floor(self):
        lock = RedLock([], "resource", 0.001)
        assert lock.expiry_time == 0.01

    def test_expiry_above_floor_untouched(self):
        lock = RedLock([], "resource", 0.5)
        assert lock.expiry_time == 0.5

    def test_retry_floor(self):
        assert clamp_retry_time(0.001) == 0.01
        assert clamp_retry_time(None) is None
        assert clamp_retry_time(0.5) == 0.5

    def test_lock_ids_are_unique(self):
        ids = {RedLock([], "resource", 1).lock_id for _ in range(100)}
        assert len(ids) == 100


# ============================================================================
# Per-instance commands
# ============================================================================

class TestInstanceCommands:
    """Tests for lock_instance, extend_instance and unlock_instance."""

    def test_lock_instance(self, connection, servers, resource):
        result = lock_instance(connection, resource, "id-1", 10)
        assert result.success
        assert result.host == "active-0"
        assert stored_value(servers[0], resource) == "id-1"

    def test_lock_instance_held_by_other(self, connection, servers, resource):
        assert lock_instance(connection, resource, "id-1", 10).success
        assert not lock_instance(connection, resource, "id-2", 10).success
        assert stored_value(servers[0], resource) == "id-1"

    def test_lock_instance_sets_expiry(self, connection, servers, resource):
        lock_instance(connection, resource, "id-1", 2)
        assert 0 < stored_pttl(servers[0], resource) <= 2000

    def test_extend_instance(self, connection, servers, resource):
        lock_instance(connection, resource, "id-1", 0.5)
        assert extend_instance(connection, resource, "id-1", 30).success
        assert stored_pttl(servers[0], resource) > 10000

    def test_extend_instance_mismatch(self, connection, servers, resource):
        lock_instance(connection, resource, "id-1", 0.5)
        assert not extend_instance(connection, resource, "id-2", 30).success
        assert stored_pttl(servers[0], resource) <= 500

    def test_extend_instance_missing_key(self, connection, resource):
        result = extend_instance(connection, resource, "id-1", 30)
        assert not result.success
        assert result.error is None

    def test_unlock_instance(self, connection, servers, resource):
        lock_instance(connection, resource, "id-1", 10)
        assert unlock_instance(connection, resource, "id-1").success
        assert stored_value(servers[0], resource) is None

    def test_unlock_instance_mismatch(self, connection, servers, resource):
        lock_instance(connection, resource, "id-1", 10)
        assert not unlock_instance(connection, resource, "id-2").success
        assert stored_value(servers[0], resource) == "id-1"

    def test_unreachable_instance(self, resource, caplog):
        connection = RedisConnection(client=unreachable_client(), name="inactive-0")
        caplog.set_level(logging.WARNING)

        for func in (lock_instance, extend_instance, unlock_instance):
            result = func(connection, resource, "id-1", 10)
            assert not result.success
            assert "Connection refused" in result.error

        assert "inactive-0" in caplog.text

    def test_key_format(self, servers, resource):
        connection = RedisConnection(
            client=fakeredis.FakeRedis(server=servers[0]), redis_key_format="{resource}-redislock"
        )
        lock_instance(connection, resource, "id-1", 10)
        assert stored_value(servers[0], resource, "{resource}-redislock") == "id-1"

    def test_key_format_error_is_isolated(self, connection, resource):
        connection.redis_key_format = "redlock:{}"
        for func in (lock_instance, extend_instance, unlock_instance):
            result = func(connection, resource, "id-1", 10)
            assert not result.success
            assert result.error


# ============================================================================
# Fan-out
# ============================================================================

class TestFanOut:
    """Tests for the threaded fan-out."""

    def test_counts_every_instance(self, servers, resource):
        connections = [RedisConnection(client=fakeredis.FakeRedis(server=s)) for s in servers]
        connections += [RedisConnection(client=unreachable_client(), name=f"inactive-{i}") for i in range(2)]

        results = fan_out("lock", connections, resource, "id-1", 10)

        assert len(results) == 5
        assert count_successes(results) == 3
        assert [r.success for r in results] == [True, True, True, False, False]

    def test_slow_instance_is_awaited(self, servers, resource):
        slow = RedisConnection(client=fakeredis.FakeRedis(server=servers[0]), name="slow")
        original_set = slow.client.set

        def slow_set(*args, **kwargs):
            time.sleep(0.2)
            return original_set(*args, **kwargs)

        slow.client.set = slow_set
        fast = RedisConnection(client=fakeredis.FakeRedis(server=servers[1]), name="fast")

        results = fan_out("lock", [slow, fast], resource, "id-1", 10)
        assert count_successes(results) == 2


# ============================================================================
# Test RedLock
# ============================================================================

class TestRedLock:
    """Tests for the blocking RedLock."""

    def test_single_lock(self, servers, resource):
        with build_factory(servers, unreachable=2) as factory:
            with factory.create_lock(resource, 30) as lock:
                assert lock.is_acquired
                assert lock.resource == resource
                assert all(stored_value(s, resource) == lock.lock_id for s in servers)
            assert not lock.is_acquired
            assert all(stored_value(s, resource) is None for s in servers)

    def test_overlapping_locks(self, servers, resource):
        factory = build_factory(servers)
        with factory.create_lock(resource, 30) as first_lock:
            assert first_lock.is_acquired
            with factory.create_lock(resource, 30) as second_lock:
                assert not second_lock.is_acquired
            # The failed lock must not have removed the holder's keys.
            assert all(stored_value(s, resource) == first_lock.lock_id for s in servers)

    def test_sequential_locks(self, servers, resource):
        factory = build_factory(servers)
        with factory.create_lock(resource, 30) as first_lock:
            assert first_lock.is_acquired
        with factory.create_lock(resource, 30) as second_lock:
            assert second_lock.is_acquired
            assert second_lock.lock_id != first_lock.lock_id

    @pytest.mark.parametrize(
        "active, inactive, expected",
        [(3, 0, True), (0, 3, False), (3, 2, True), (3, 3, False), (1, 0, True), (1, 1, False)],
    )
    def test_quorum(self, resource, active, inactive, expected):
        servers = [fakeredis.FakeServer() for _ in range(active)]
        with build_factory(servers, unreachable=inactive).create_lock(resource, 30) as lock:
            assert lock.is_acquired is expected
        assert all(stored_value(s, resource) is None for s in servers)

    def test_failed_quorum_releases_partial_locks(self, servers, resource):
        other = fakeredis.FakeRedis(server=servers[0])
        other.set(f"redlock:{resource}", "someone-else", px=30000)
        fakeredis.FakeRedis(server=servers[1]).set(f"redlock:{resource}", "someone-else", px=30000)

        with build_factory(servers).create_lock(resource, 30) as lock:
            assert not lock.is_acquired
            assert stored_value(servers[2], resource) is None
            assert stored_value(servers[0], resource) == "someone-else"

    def test_renewing(self, servers, resource):
        with build_factory(servers).create_lock(resource, 0.2) as lock:
            assert lock.is_acquired
            time.sleep(0.65)
            assert lock.is_acquired
            assert lock.extend_count >= 2
            # Still held well past the first expiry.
            assert all(stored_value(s, resource) == lock.lock_id for s in servers)

    def test_lock_released_after_timeout(self, servers, resource):
        factory = build_factory(servers)
        with factory.create_lock(resource, 0.5) as first_lock:
            assert first_lock.is_acquired
            time.sleep(0.3)  # Keepalive fires once
            first_lock.stop_keepalive()  # Simulate a crashed process
            time.sleep(0.6)  # Keys expire

            with factory.create_lock(resource, 0.5) as second_lock:
                assert second_lock.is_acquired
                first_lock.release()
                # The stale holder cannot release the new holder's keys.
                assert all(stored_value(s, resource) == second_lock.lock_id for s in servers)

    def test_lost_lock_detected_on_next_tick(self, servers, resource):
        with build_factory(servers).create_lock(resource, 0.2) as lock:
            assert lock.is_acquired
            for server in servers[:2]:
                fakeredis.FakeRedis(server=server).delete(f"redlock:{resource}")
            time.sleep(0.3)
            assert not lock.is_acquired
            assert lock._keepalive.running

    def test_slow_quorum_is_not_acquired(self, servers, resource):
        clients = []
        for i, server in enumerate(servers):
            client = fakeredis.FakeRedis(server=server)

            def slow_set(*args, _set=client.set, **kwargs):
                time.sleep(0.25)
                return _set(*args, **kwargs)

            client.set = slow_set
            clients.append(RedLockClient(client=client, name=f"slow-{i}"))

        # Every instance answers, but later than the 0.2s expiry allows.
        with RedLockFactory.from_clients(clients).create_lock(resource, 0.2) as lock:
            assert not lock.is_acquired
            assert lock._keepalive is None
            assert all(stored_value(s, resource) is None for s in servers)

    def test_slow_renewal_marks_lock_lost(self, servers, resource):
        with build_factory(servers).create_lock(resource, 0.2) as lock:
            assert lock.is_acquired
            lock.stop_keepalive()
            rounds = []

            def slow_fan_out(*args, **kwargs):
                results = fan_out(*args, **kwargs)
                rounds.append(results)
                time.sleep(0.25)
                return results

            with patch("quorumlock.core.lock.redlock.fan_out", side_effect=slow_fan_out):
                assert lock._renew() is False

            assert count_successes(rounds[0]) == 3
            assert not lock.is_acquired
            assert lock.extend_count == 0

    def test_keepalive_shares_executor_until_release(self, servers, resource):
        lock = build_factory(servers).create_lock(resource, 0.2)
        executor = lock._executor
        assert executor is not None
        time.sleep(0.25)
        assert lock.extend_count >= 1
        assert lock._executor is executor

        lock.release()
        assert not lock._keepalive._thread.is_alive()
        assert lock._executor is None

    def test_keepalive_survives_tick_failure(self, servers, resource, caplog):
        caplog.set_level(logging.ERROR)
        with build_factory(servers).create_lock(resource, 0.2) as lock:
            real_renew = lock._renew
            failures = []

            def flaky_renew():
                real_renew()
                if not failures:
                    failures.append(1)
                    raise RuntimeError("boom")

            with patch.object(lock, "_renew", side_effect=flaky_renew) as renew:
                time.sleep(0.55)

            assert renew.call_count >= 3
            assert lock.is_acquired
            assert lock.extend_count >= 3
            assert "Lock renewal timer thread failed" in caplog.text

    def test_release_is_idempotent(self, servers, resource):
        lock = build_factory(servers).create_lock(resource, 30)
        assert lock.is_acquired
        lock.release()
        lock.release()
        assert not lock.is_acquired
        assert not lock._keepalive.running

    def test_release_without_acquire(self, servers, resource):
        factory = build_factory(servers)
        holder = factory.create_lock(resource, 30)
        lock = factory.create_lock(resource, 30)
        assert not lock.is_acquired
        assert lock._keepalive is None
        assert lock._executor is None
        lock.release()
        assert all(stored_value(s, resource) == holder.lock_id for s in servers)
        holder.release()

    def test_expiry_floor_on_store(self, servers, resource):
        with build_factory(servers).create_lock(resource, 0.001) as lock:
            assert lock.expiry_time == 0.01
            assert stored_pttl(servers[0], resource) <= 10

    def test_jitter_uses_injected_rng(self, resource):
        rng = MagicMock(spec=random.Random)
        rng.randrange.return_value = 0
        lock = build_factory([], unreachable=3).create_lock(resource, 30, rng=rng)
        assert not lock.is_acquired
        assert rng.randrange.call_count == quorumlock.constants.QUORUM_RETRY_COUNT - 1
        rng.randrange.assert_called_with(quorumlock.constants.QUORUM_RETRY_DELAY_MS)

    def test_wait_and_retry(self, servers, resource):
        factory = build_factory(servers)
        holder = factory.create_lock(resource, 30)
        threading.Timer(0.3, holder.release).start()

        started = time.monotonic()
        with factory.create_lock(resource, 30, wait_time=5, retry_time=0.1) as lock:
            assert lock.is_acquired
        assert time.monotonic() - started < 3

    def test_wait_time_exhausted(self, servers, resource):
        factory = build_factory(servers)
        with factory.create_lock(resource, 30):
            started = time.monotonic()
            with factory.create_lock(resource, 30, wait_time=0.3, retry_time=0.1) as lock:
                assert not lock.is_acquired
            assert time.monotonic() - started >= 0.3

    def test_blocking_concurrent_locks(self, servers, resource):
        factory = build_factory(servers)
        state = {"acquired": 0, "holding": 0, "max_holding": 0}
        state_lock = threading.Lock()

        def worker():
            with factory.create_lock(resource, 1, wait_time=10, retry_time=0.1) as lock:
                if lock.is_acquired:
                    with state_lock:
                        state["acquired"] += 1
                        state["holding"] += 1
                        state["max_holding"] = max(state["max_holding"], state["holding"])
                    time.sleep(0.5)
                    with state_lock:
                        state["holding"] -= 1

        threads = [threading.Thread(target=worker) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert state["acquired"] == 2
        assert state["max_holding"] == 1

    def test_race_for_quorum(self, servers, monkeypatch):
        monkeypatch.setattr(quorumlock.constants, "QUORUM_RETRY_DELAY_MS", 400)
        resource = f"testredislock:{uuid.uuid4()}"
        barrier = threading.Barrier(3)
        acquired = []

        def worker():
            # Every contender has its own factory, as separate processes would.
            factory = build_factory(servers)
            barrier.wait()
            with factory.create_lock(resource, 30) as lock:
                if lock.is_acquired:
                    acquired.append(lock.lock_id)
                    # Hold long enough for the others to give up.
                    time.sleep(1.5)

        threads = [threading.Thread(target=worker) for _ in range(3)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(acquired) == 1

    def test_cancel_while_waiting(self, servers, resource):
        factory = build_factory(servers)
        # Someone else holds two of three instances: every attempt takes the third.
        for server in servers[:2]:
            fakeredis.FakeRedis(server=server).set(f"redlock:{resource}", "someone-else", px=30000)

        cancel_event = threading.Event()
        threading.Timer(0.3, cancel_event.set).start()

        started = time.monotonic()
        with pytest.raises(LockCancelledError):
            factory.create_lock(resource, 30, wait_time=10, retry_time=0.2, cancel_event=cancel_event)

        assert time.monotonic() - started < 2
        assert stored_value(servers[2], resource) is None
        assert stored_value(servers[0], resource) == "someone-else"

    def test_cancelled_before_start(self, servers, resource):
        cancel_event = threading.Event()
        cancel_event.set()
        with pytest.raises(LockCancelledError):
            build_factory(servers).create_lock(resource, 30, wait_time=1, retry_time=0.1, cancel_event=cancel_event)
        assert all(stored_value(s, resource) is None for s in servers)
