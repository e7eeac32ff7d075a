"""
Motion Line Matcher
===================

Reconoce las líneas de inicio/fin de movimiento del recording.log de
UniFi Video y las decodifica en MotionEvent.

Formato reconocido (contrato con el recorder, no modificar sin actualizarlo):

    Parsed id: <id>, name: <name>, action: <STARTED|ENDED>, motion: <value>, recording: <token|null>

Design:
- Pattern compilado una sola vez por instancia (inmutable, sin estado global)
- Línea que no matchea -> None (caso normal, la mayoría del log no son eventos)
- Nunca lanza excepciones por contenido de la línea
"""
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

# Fuente del pattern. Clases ASCII: \w y \s se comportan igual que en el recorder.
MOTION_LINE_PATTERN = (
    r'^Parsed id: (?P<camera_id>\w+), '
    r'name: (?P<camera_name>[\w\s]+), '
    r'action: (?P<action>STARTED|ENDED), '
    r'motion: (?P<motion_level>\d+.*), '
    r'recording: (?P<recording_id>[a-z0-9]+\b|null)'
)

NO_RECORDING = "null"


class MotionAction(str, Enum):
    """Acción de movimiento (también es el payload de state)."""
    STARTED = "STARTED"
    ENDED = "ENDED"


@dataclass(frozen=True)
class MotionEvent:
    """
    Evento de movimiento decodificado de una línea del log.

    Attributes:
        camera_id: ID de la cámara en el recorder
        camera_name: Nombre legible (puede contener espacios)
        action: STARTED o ENDED
        motion_level: Valor de movimiento tal cual aparece en el log
        recording_id: Token de grabación o "null" si no hay grabación
    """
    camera_id: str
    camera_name: str
    action: MotionAction
    motion_level: str
    recording_id: str

    @property
    def has_recording(self) -> bool:
        return self.recording_id != NO_RECORDING


class PatternMatcher:
    """
    Decodifica líneas del log en MotionEvent.

    Usage:
        matcher = PatternMatcher()
        event = matcher.match(line)
        if event is None:
            continue  # no es un evento de movimiento
    """

    def __init__(self, pattern: str = MOTION_LINE_PATTERN):
        self._pattern = re.compile(pattern, re.ASCII)

    @property
    def pattern(self) -> re.Pattern:
        return self._pattern

    def match(self, line: str) -> Optional[MotionEvent]:
        """
        Intenta decodificar una línea.

        Args:
            line: Línea cruda del log (con o sin salto de línea final)

        Returns:
            MotionEvent si la línea tiene el formato reconocido, None si no
        """
        found = self._pattern.match(line)
        if found is None:
            return None

        return MotionEvent(
            camera_id=found.group('camera_id'),
            camera_name=found.group('camera_name'),
            action=MotionAction(found.group('action')),
            motion_level=found.group('motion_level'),
            recording_id=found.group('recording_id'),
        )
