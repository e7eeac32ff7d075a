"""
MQTT Data Plane
===============

Publica eventos de movimiento hacia Home Assistant vía MQTT.

Secuencia por evento (best-effort por mensaje):
1. <ns>/config  -> DeviceDescriptor en JSON (discovery)
2. <ns>/state   -> "STARTED" | "ENDED"
3. <ns>/status  -> "online" (el last will publica "offline")

Diseño:
- MQTTMotionPublisher = infraestructura MQTT (canal/orquestador)
- DeviceDescriptorBuilder = lógica de negocio (formateo)
- SessionStrategy = cuándo abrir/cerrar sesiones
- Fallo de conexión -> BrokerConnectionError (el caller decide si es fatal)
- Fallo de publish -> se loggea y se sigue con el siguiente paso
"""
import logging
from dataclasses import dataclass, field
from functools import partial
from threading import Lock
from typing import Any, Dict, List, Optional

from ..logging import log_error_with_context, log_mqtt_publish
from ..parsing import MotionEvent
from .publishers import DeviceDescriptor
from .sessions import (
    BackoffPolicy,
    MQTTSession,
    SessionStrategy,
    create_session_strategy,
    default_client_id,
)

logger = logging.getLogger(__name__)

AVAILABILITY_ONLINE = "online"


@dataclass(frozen=True)
class StepResult:
    """Resultado de un paso de la secuencia."""
    step: str
    topic: str
    success: bool
    error: Optional[str] = None


@dataclass
class PublishReport:
    """Resultado de publicar un evento (los 3 pasos)."""
    camera_id: str
    steps: List[StepResult] = field(default_factory=list)

    @property
    def all_published(self) -> bool:
        return all(step.success for step in self.steps)

    @property
    def any_published(self) -> bool:
        return any(step.success for step in self.steps)

    @property
    def failed_steps(self) -> List[str]:
        return [step.step for step in self.steps if not step.success]


class MQTTMotionPublisher:
    """
    Publisher de eventos de movimiento con discovery de Home Assistant.

    Responsabilidad: Infraestructura MQTT
    - Obtiene sesiones vía SessionStrategy (per_event | persistent)
    - Publica la secuencia config -> state -> availability
    - Lleva estadísticas de publicación

    Usage:
        publisher = MQTTMotionPublisher(broker_host="192.168.1.10", username="ha", password="...")
        report = publisher.publish_event(event, descriptor)
        publisher.close()
    """

    def __init__(
        self,
        broker_host: str,
        broker_port: int = 1883,
        username: Optional[str] = None,
        password: Optional[str] = None,
        mode: str = "per_event",
        qos: int = 0,
        retain: bool = False,
        keepalive: int = 60,
        connect_timeout: float = 10.0,
        publish_timeout: float = 5.0,
        client_id_prefix: str = "unifi_motion",
        backoff: Optional[BackoffPolicy] = None,
    ):
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.qos = qos
        self.retain = retain
        self.publish_timeout = publish_timeout
        self.client_id_prefix = client_id_prefix

        session_factory = partial(
            self._create_session,
            username=username,
            password=password,
            keepalive=keepalive,
        )
        self.strategy: SessionStrategy = create_session_strategy(
            mode,
            session_factory,
            connect_timeout=connect_timeout,
            backoff=backoff,
        )

        self._lock = Lock()
        self._events_published = 0
        self._events_failed = 0
        self._messages_published = 0
        self._messages_failed = 0

    @classmethod
    def from_settings(cls, settings) -> 'MQTTMotionPublisher':
        """Construye el publisher desde MQTTSettings (config validada)."""
        session = settings.session
        reconnect = session.reconnect
        return cls(
            broker_host=settings.broker.host,
            broker_port=settings.broker.port,
            username=settings.broker.username,
            password=settings.broker.password,
            mode=session.mode,
            qos=session.qos,
            retain=session.retain,
            keepalive=session.keepalive,
            connect_timeout=session.connect_timeout,
            publish_timeout=session.publish_timeout,
            client_id_prefix=session.client_id_prefix,
            backoff=BackoffPolicy(
                max_attempts=reconnect.max_attempts,
                initial_delay=reconnect.initial_delay,
                max_delay=reconnect.max_delay,
                multiplier=reconnect.multiplier,
            ),
        )

    def _create_session(self, will_topic: str, username=None, password=None, keepalive=60) -> MQTTSession:
        return MQTTSession(
            broker_host=self.broker_host,
            broker_port=self.broker_port,
            client_id=default_client_id(self.client_id_prefix),
            will_topic=will_topic,
            username=username,
            password=password,
            qos=self.qos,
            keepalive=keepalive,
        )

    def publish_event(self, event: MotionEvent, descriptor: DeviceDescriptor) -> PublishReport:
        """
        Publica la secuencia completa de un evento.

        Raises:
            BrokerConnectionError: si no se pudo abrir sesión (nada se publicó)
        """
        session = self.strategy.acquire(descriptor.availability_topic)

        report = PublishReport(camera_id=event.camera_id)
        try:
            sequence = (
                ("config", descriptor.config_topic, descriptor.to_json()),
                ("state", descriptor.state_topic, event.action.value),
                ("availability", descriptor.availability_topic, AVAILABILITY_ONLINE),
            )
            for step, topic, payload in sequence:
                report.steps.append(self._publish_step(session, step, topic, payload))
        finally:
            self.strategy.release(session)

        # events_published cuenta eventos con al menos un mensaje entregado
        with self._lock:
            if report.any_published:
                self._events_published += 1
            else:
                self._events_failed += 1

        if not report.all_published:
            partial_publish = report.any_published
            logger.warning(
                "⚠️ Evento publicado parcialmente" if partial_publish else "⚠️ Evento no publicado",
                extra={
                    "component": "data_plane",
                    "event": "partial_publish" if partial_publish else "event_not_published",
                    "camera_id": event.camera_id,
                    "failed_steps": report.failed_steps,
                }
            )
        return report

    def _publish_step(self, session: MQTTSession, step: str, topic: str, payload: str) -> StepResult:
        try:
            session.publish(topic, payload, qos=self.qos, retain=self.retain, timeout=self.publish_timeout)
        except Exception as e:
            with self._lock:
                self._messages_failed += 1
            log_error_with_context(
                logger,
                message=f"❌ Error publicando {step}",
                exception=e,
                component="data_plane",
                event="publish_failed",
                step=step,
                topic=topic,
                mqtt_error_code=getattr(e, "rc", None),
            )
            return StepResult(step=step, topic=topic, success=False, error=str(e))

        with self._lock:
            self._messages_published += 1
        log_mqtt_publish(
            logger,
            topic=topic,
            qos=self.qos,
            payload_size=len(payload.encode("utf-8")),
            step=step,
        )
        return StepResult(step=step, topic=topic, success=True)

    def close(self) -> None:
        """Cierra sesiones abiertas (solo aplica a modo persistent)."""
        self.strategy.close()

    def get_stats(self) -> Dict[str, Any]:
        """Retorna estadísticas del publisher"""
        with self._lock:
            return {
                "mode": self.strategy.mode,
                "events_published": self._events_published,
                "events_failed": self._events_failed,
                "messages_published": self._messages_published,
                "messages_failed": self._messages_failed,
                "connect_failures": self.strategy.connect_failures,
            }
