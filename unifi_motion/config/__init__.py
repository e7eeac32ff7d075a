"""
Configuration Module
====================

Provides configuration loading with Pydantic validation.

Usage:
    from unifi_motion.config import BridgeConfig
    config = BridgeConfig.from_yaml("config.yaml")
"""
from .schemas import (
    BridgeConfig,
    MQTTSettings,
    MQTTBrokerSettings,
    MQTTSessionSettings,
    ReconnectSettings,
    DiscoverySettings,
    FollowerSettings,
    ParsingSettings,
    LoggingSettings,
)

__all__ = [
    'BridgeConfig',
    'MQTTSettings',
    'MQTTBrokerSettings',
    'MQTTSessionSettings',
    'ReconnectSettings',
    'DiscoverySettings',
    'FollowerSettings',
    'ParsingSettings',
    'LoggingSettings',
]
