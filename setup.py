#!/usr/bin/env python

from setuptools import find_namespace_packages, setup


VERSION = "0.1a1"

setup(
    name="transmute",
    version=VERSION,
    description="An XSLT 1.0 to 3.0 processor with an XPath engine for its own tree.",
    license="AGPL-3.0-or-later",
    python_requires=">=3.10",
    packages=find_namespace_packages(include=["_transmute*", "transmute*"]),
    install_requires=["lxml"],
    extras_require={
        "https": ["httpx[http2]"],
        "test": ["httpx", "pytest", "pytest-httpx"],
    },
)
