"""
Discovery Publisher
===================

Construye el DeviceDescriptor de Home Assistant para un MotionEvent.

Responsabilidad:
- Conoce el namespace de discovery (<prefix>/binary_sensor/<slug>_motion)
- Conoce la estructura del payload de config (orden y nombres de campos)
- NO conoce MQTT (eso es del DataPlane)

Invariantes:
- Topics son función pura de camera_name (vía slugify)
- Mismo evento -> mismo JSON byte a byte (Home Assistant lo usa como clave)
"""
import json
import re
from dataclasses import dataclass
from typing import Any, Dict

from ...parsing import MotionAction, MotionEvent

DEVICE_CLASS = "motion"
PAYLOAD_ON = MotionAction.STARTED.value
PAYLOAD_OFF = MotionAction.ENDED.value

AVAILABILITY_SUFFIX = "status"
STATE_SUFFIX = "state"
CONFIG_SUFFIX = "config"

# Palabras: acrónimo seguido de palabra capitalizada, palabra capitalizada,
# acrónimo o bloque de dígitos. Todo lo demás separa.
_WORD_PATTERN = re.compile(r'[A-Z]+(?=[A-Z][a-z])|[A-Z]?[a-z]+|[A-Z]+|\d+', re.ASCII)


def slugify(name: str) -> str:
    """
    Convierte un nombre de cámara en un token snake_case para topics.

    Separa por espacios, guiones, puntos, underscores, cambios de
    mayúsculas y fronteras letra/dígito:

        "Front Door" -> "front_door"
        "FrontDoor"  -> "front_door"
        "JSONData"   -> "json_data"
        "cam1"       -> "cam_1"

    Idempotente: slugify(slugify(x)) == slugify(x).
    """
    return "_".join(word.lower() for word in _WORD_PATTERN.findall(name))


@dataclass(frozen=True)
class DeviceDescriptor:
    """
    Descriptor de auto-discovery para un binary_sensor de movimiento.

    config_topic no forma parte del payload; es donde se publica.
    """
    id: str
    name: str
    availability_topic: str
    state_topic: str
    config_topic: str
    device_class: str = DEVICE_CLASS
    payload_on: str = PAYLOAD_ON
    payload_off: str = PAYLOAD_OFF

    def to_payload(self) -> Dict[str, Any]:
        """Payload de discovery con el orden de campos del wire format."""
        return {
            "id": self.id,
            "name": self.name,
            "availability_topic": self.availability_topic,
            "state_topic": self.state_topic,
            "device_class": self.device_class,
            "payload_on": self.payload_on,
            "payload_off": self.payload_off,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_payload(), separators=(",", ":"), ensure_ascii=False)


class DeviceDescriptorBuilder:
    """
    Builder de descriptores (función pura MotionEvent -> DeviceDescriptor).

    Usage:
        builder = DeviceDescriptorBuilder()
        descriptor = builder.build(event)
        descriptor.config_topic  # homeassistant/binary_sensor/front_door_motion/config
    """

    def __init__(self, discovery_prefix: str = "homeassistant", component: str = "binary_sensor"):
        self.discovery_prefix = discovery_prefix
        self.component = component

    def namespace_for(self, camera_name: str) -> str:
        """Topic base de una cámara: <prefix>/<component>/<slug>_motion"""
        return f"{self.discovery_prefix}/{self.component}/{slugify(camera_name)}_motion"

    def build(self, event: MotionEvent) -> DeviceDescriptor:
        namespace = self.namespace_for(event.camera_name)

        return DeviceDescriptor(
            id=event.camera_id,
            name=f"{event.camera_name} Camera Motion",
            availability_topic=f"{namespace}/{AVAILABILITY_SUFFIX}",
            state_topic=f"{namespace}/{STATE_SUFFIX}",
            config_topic=f"{namespace}/{CONFIG_SUFFIX}",
        )
