"""
Clock helpers.

Checkpoints store wall-clock seconds, matching block timestamps.
"""

from time import time


def wall_s() -> int:
    """Get current wall clock timestamp in seconds."""
    return int(time())
