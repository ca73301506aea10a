"""
Version information for fireschema.

This file is the single source of truth for version numbers.
setup.py and the package __init__ both read from here.
"""

__version__ = "0.3.0"
__version_info__ = (0, 3, 0)
