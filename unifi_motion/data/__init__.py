"""
Data Plane - MQTT discovery/state publishing
"""
from .plane import MQTTMotionPublisher, PublishReport, StepResult
from .publishers import DeviceDescriptor, DeviceDescriptorBuilder, slugify
from .sessions import BackoffPolicy, BrokerConnectionError, PublishError

__all__ = [
    "MQTTMotionPublisher",
    "PublishReport",
    "StepResult",
    "DeviceDescriptor",
    "DeviceDescriptorBuilder",
    "slugify",
    "BackoffPolicy",
    "BrokerConnectionError",
    "PublishError",
]
