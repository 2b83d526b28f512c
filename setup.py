#!/usr/bin/env python3
"""Setup script for the Language Server Supervisor package."""

import sys

from setuptools import find_packages, setup

# Read version from the package
with open("lspsupervisor/__init__.py") as f:
    for line in f:
        if line.startswith("__version__"):
            version = line.split("=")[1].strip().strip('"').strip("'")
            break
    else:
        version = "0.0.0"

# Read long description from README
with open("README.md") as f:
    long_description = f.read()

# Display warning about external dependencies
print("""
IMPORTANT: The supervised server is not installed via pip. Either:
- install rustup (the rls components are added on first start), or
- point SERVER_PATH at an rls binary, or SERVER_ROOT at an rls checkout.

Please refer to the README.md for details.
""", file=sys.stderr)

setup(
    name="lspsupervisor",
    version=version,
    description="Supervisor bridging an editor to the Rust Language Server process",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "pygls>=1.1.0",
        "pydantic>=2.0.0",
        "click>=8.1.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "lspsupervisor=lspsupervisor.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.10",
)
