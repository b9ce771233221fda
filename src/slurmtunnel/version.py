#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Version information for SlurmTunnel
"""

__version__ = "0.2.0"
__version_info__ = tuple(int(x) for x in __version__.split("."))

# Version history
VERSION_HISTORY = [
    "0.2.0 - Tagged allocation markers, python watcher runtime, advisory watcher lock",
    "0.1.0 - Initial release of the salloc-aware ssh wrapper",
]
