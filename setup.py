#!/usr/bin/env python3
"""Minimal setup.py for pip installs of the wheel engine."""

from setuptools import setup, find_packages

# Read version from __version__.py
version_dict = {}
with open("src/wheel_engine/__version__.py") as fp:
    exec(fp.read(), version_dict)

setup(
    name="wheel-engine",
    version=version_dict["__version__"],
    description="Options position analytics for wheel traders",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        # Core dependencies
        "pydantic>=2.0",
        "duckdb",
        "aiohttp",
        "scipy",
        # Utilities
        "click",
        "pyyaml",
        "tenacity",
        "rich",
    ],
    extras_require={
        "dev": [
            "pytest>=6.0",
            "pytest-asyncio",
            "pytest-cov",
            "hypothesis",
        ]
    },
    entry_points={
        "console_scripts": [
            "wheel-engine=wheel_engine.cli.run:main",
        ],
    },
)
