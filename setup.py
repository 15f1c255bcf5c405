# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

import os
import re

from setuptools import find_packages, setup


project_name = "quorumlock"
this_directory = os.path.abspath(os.path.dirname(__file__))


def read_version():
    """Function to read __version__ from the package without importing it."""
    with open(os.path.join(this_directory, project_name, "__init__.py"), encoding="utf-8") as f:
        match = re.search(r'^__version__ = "([^"]+)"', f.read(), re.MULTILINE)
    return match.group(1)


setup(
    name=project_name,
    version=read_version(),
    description="Distributed locks over independent Redis instances (Redlock)",
    license="MPL-2.0",
    packages=find_packages(include=[project_name, f"{project_name}.*"]),
    python_requires=">=3.8",
    install_requires=[
        "redis>=5.0.1",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
            "fakeredis[lua]>=2.20",
        ],
    },
)
