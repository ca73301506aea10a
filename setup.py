"""
Setup script for the fireschema runtime.

Allows development installation with `pip install -e .`
(add `[test]` for the test dependencies).
"""

import os
import re

from setuptools import setup, find_packages

with open(os.path.join(os.path.dirname(__file__), "fireschema", "version.py")) as f:
    VERSION = re.search(r'^__version__ = "([^"]+)"', f.read(), re.M).group(1)

setup(
    name="fireschema-runtime",
    version=VERSION,
    description="Typed query, update and document access layer for document stores",
    packages=find_packages(include=["fireschema", "fireschema.*"]),
    python_requires=">=3.11",
    install_requires=[
        "google-cloud-firestore>=2.16",
        "pymongo>=4.6",
        "pydantic>=2.5",
        "pydantic-settings>=2.1",
        "python-dotenv>=1.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
        ],
    },
)
