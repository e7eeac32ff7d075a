"""
App - bridge orchestration and CLI entry point
"""
from .controller import MotionBridgeController, load_config, main

__all__ = ["MotionBridgeController", "load_config", "main"]
