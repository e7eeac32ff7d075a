"""
UniFi Motion - UniFi Video motion events for Home Assistant
=============================================================

Sigue el recording.log de UniFi Video y publica los eventos de movimiento
como binary_sensor vía MQTT discovery.

Public API:
- BridgeConfig: Configuración validada (YAML + env)
- MotionBridgeController: Orquestador del pipeline
- LogFollower: Tail del log dirigido por eventos del filesystem
- PatternMatcher / MotionEvent: Decodificación de líneas
- DeviceDescriptorBuilder / DeviceDescriptor: Discovery de Home Assistant
- MQTTMotionPublisher: Publicación config -> state -> availability

Usage:
    # CLI
    unifi-motion --file /var/lib/unifi-video/logs/recording.log

    # Or programmatically
    from unifi_motion import BridgeConfig, MotionBridgeController

    config = BridgeConfig.from_yaml("config.yaml")
    controller = MotionBridgeController(config, "/var/lib/unifi-video/logs/recording.log")
    controller.run()
"""

__version__ = "1.0.0"

from .config import BridgeConfig
from .parsing import MotionAction, MotionEvent, PatternMatcher
from .data import (
    BrokerConnectionError,
    DeviceDescriptor,
    DeviceDescriptorBuilder,
    MQTTMotionPublisher,
    PublishReport,
    slugify,
)
from .follower import LogFollower, LogRotatedError
from .app import MotionBridgeController, main

__all__ = [
    # Config
    "BridgeConfig",
    # Parsing
    "MotionAction",
    "MotionEvent",
    "PatternMatcher",
    # Data Plane
    "BrokerConnectionError",
    "DeviceDescriptor",
    "DeviceDescriptorBuilder",
    "MQTTMotionPublisher",
    "PublishReport",
    "slugify",
    # Follower
    "LogFollower",
    "LogRotatedError",
    # App
    "MotionBridgeController",
    "main",
]
