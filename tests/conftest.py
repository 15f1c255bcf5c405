# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

import uuid

import fakeredis
import pytest

import quorumlock


@pytest.fixture(autouse=True)
def fast_retries(monkeypatch):
    """Keep the quorum retry jitter short so failing acquisitions return quickly."""
    monkeypatch.setattr(quorumlock.constants, "QUORUM_RETRY_DELAY_MS", 50)


@pytest.fixture
def servers():
    """Three independent in-process Redis servers."""
    return [fakeredis.FakeServer() for _ in range(3)]


@pytest.fixture
def resource():
    return f"testredislock:{uuid.uuid4()}"
