#!/usr/bin/python3
# Setup file for gitvault
# Copyright (C) 2026 The gitvault developers
# SPDX-License-Identifier: Apache-2.0 OR GPL-2.0-or-later

from setuptools import setup

tests_require = ["pytest"]

setup(
    name="gitvault",
    version="0.1.0",
    description="Repository archives and history queries on top of dulwich",
    license="Apache-2.0 OR GPL-2.0-or-later",
    packages=["gitvault"],
    package_data={"": ["py.typed"]},
    python_requires=">=3.9",
    install_requires=["dulwich>=0.22.0"],
    extras_require={"test": tests_require},
    entry_points={"console_scripts": ["gitvault=gitvault.cli:_main"]},
)
