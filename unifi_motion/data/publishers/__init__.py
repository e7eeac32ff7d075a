"""
Publishers
==========

Publishers especializados para formatear mensajes MQTT.

Responsabilidad:
- Conocen estructura de mensajes (lógica de negocio)
- NO conocen detalles de MQTT (eso es del DataPlane)
"""
from .discovery import DeviceDescriptor, DeviceDescriptorBuilder, slugify

__all__ = ['DeviceDescriptor', 'DeviceDescriptorBuilder', 'slugify']
