"""
Follower - recording.log tailing
"""
from .tail import ROTATION_POLICIES, LogFollower, LogRotatedError

__all__ = ["ROTATION_POLICIES", "LogFollower", "LogRotatedError"]
