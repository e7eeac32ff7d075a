"""
Parsing - recording.log line decoding
"""
from .matcher import (
    MOTION_LINE_PATTERN,
    NO_RECORDING,
    MotionAction,
    MotionEvent,
    PatternMatcher,
)

__all__ = [
    "MOTION_LINE_PATTERN",
    "NO_RECORDING",
    "MotionAction",
    "MotionEvent",
    "PatternMatcher",
]
