"""
MQTT Sessions
=============

Sesiones con el broker y estrategias de ciclo de vida.

Estrategias:
- per_event: sesión nueva por evento (connect -> 3 publish -> disconnect).
  Comportamiento histórico del bridge, simple pero caro.
- persistent: una sesión viva entre eventos. Se reabre si el broker la
  cierra o si cambia el topic del last will (otra cámara).

Ambas aplican la misma política de reintento al conectar. Con
max_attempts=0 (default) el primer fallo de conexión es definitivo y
se propaga como BrokerConnectionError.
"""
import logging
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from threading import Event
from typing import Callable, Iterator, Optional

import paho.mqtt.client as mqtt

from ..logging import log_error_with_context

logger = logging.getLogger(__name__)

AVAILABILITY_OFFLINE = "offline"


class BrokerConnectionError(Exception):
    """No se pudo abrir sesión con el broker."""
    pass


class PublishError(Exception):
    """Un publish no se completó (rc de paho o timeout)."""

    def __init__(self, topic: str, reason: str, rc: Optional[int] = None):
        self.topic = topic
        self.reason = reason
        self.rc = rc
        super().__init__(f"Publish to '{topic}' failed: {reason}")


# ============================================================================
# Session
# ============================================================================

class MQTTSession:
    """
    Una conexión MQTT con last will en el topic de availability.

    Usage:
        session = MQTTSession("broker", 1883, "unifi_motion-1a2b", will_topic=".../status")
        session.open(timeout=10)
        session.publish(".../state", "STARTED", timeout=5)
        session.close()
    """

    def __init__(
        self,
        broker_host: str,
        broker_port: int,
        client_id: str,
        will_topic: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        qos: int = 0,
        keepalive: int = 60,
    ):
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.client_id = client_id
        self.will_topic = will_topic
        self.keepalive = keepalive

        self.client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=client_id,
            protocol=mqtt.MQTTv311,
        )
        self.client.enable_logger(logging.getLogger("paho.mqtt.client"))
        if username:
            self.client.username_pw_set(username, password)
        self.client.will_set(will_topic, payload=AVAILABILITY_OFFLINE, qos=qos, retain=False)

        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect

        self._connack = Event()
        self._connected = Event()
        self._connect_reason = None

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        """Callback cuando llega el CONNACK"""
        self._connect_reason = reason_code
        if reason_code == 0:
            self._connected.set()
        self._connack.set()

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties=None):
        """Callback cuando se cierra la conexión"""
        if self._connected.is_set() and reason_code != 0:
            logger.warning(
                "⚠️ Sesión MQTT cerrada por el broker",
                extra={
                    "component": "session",
                    "event": "disconnected",
                    "client_id": self.client_id,
                    "reason_code": str(reason_code),
                }
            )
        self._connected.clear()

    @property
    def is_connected(self) -> bool:
        return self._connected.is_set()

    def open(self, timeout: float = 10.0) -> None:
        """
        Conecta y espera el CONNACK.

        Raises:
            BrokerConnectionError: socket rechazado, CONNACK con error o timeout
        """
        logger.debug(
            "🔌 Abriendo sesión MQTT",
            extra={
                "component": "session",
                "event": "connecting",
                "broker_host": self.broker_host,
                "broker_port": self.broker_port,
                "client_id": self.client_id,
                "will_topic": self.will_topic,
            }
        )
        try:
            self.client.connect(self.broker_host, self.broker_port, keepalive=self.keepalive)
        except (OSError, ValueError) as e:
            raise BrokerConnectionError(
                f"Cannot connect to {self.broker_host}:{self.broker_port}: {e}"
            ) from e

        self.client.loop_start()

        if not self._connack.wait(timeout=timeout):
            self._abort()
            raise BrokerConnectionError(
                f"No CONNACK from {self.broker_host}:{self.broker_port} after {timeout}s"
            )

        if not self._connected.is_set():
            self._abort()
            raise BrokerConnectionError(
                f"Broker {self.broker_host}:{self.broker_port} refused connection: "
                f"{self._connect_reason}"
            )

    def _abort(self) -> None:
        # loop_start reintenta en background; hay que pararlo
        self.client.loop_stop()
        self.client.disconnect()

    def publish(self, topic: str, payload: str, qos: int = 0, retain: bool = False,
                timeout: float = 5.0) -> None:
        """
        Publica y espera a que paho lo entregue al socket.

        Raises:
            PublishError: rc distinto de MQTT_ERR_SUCCESS o timeout
        """
        info = self.client.publish(topic, payload, qos=qos, retain=retain)

        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise PublishError(topic, mqtt.error_string(info.rc), rc=info.rc)

        info.wait_for_publish(timeout=timeout)
        if not info.is_published():
            raise PublishError(topic, f"not acknowledged after {timeout}s")

    def close(self) -> None:
        """Desconexión limpia (el broker descarta el last will)."""
        self.client.disconnect()
        self.client.loop_stop()


# ============================================================================
# Backoff
# ============================================================================

@dataclass(frozen=True)
class BackoffPolicy:
    """Backoff exponencial: initial_delay * multiplier**n, acotado a max_delay"""
    max_attempts: int = 0
    initial_delay: float = 1.0
    max_delay: float = 30.0
    multiplier: float = 2.0

    def delays(self) -> Iterator[float]:
        delay = self.initial_delay
        for _ in range(self.max_attempts):
            yield min(delay, self.max_delay)
            delay *= self.multiplier


# ============================================================================
# Strategies
# ============================================================================

SessionFactory = Callable[[str], MQTTSession]


class SessionStrategy(ABC):
    """
    Decide cuándo abrir y cerrar sesiones.

    Subclases implementan acquire/release; el reintento de conexión es común.
    """

    mode: str = "base"

    def __init__(
        self,
        session_factory: SessionFactory,
        connect_timeout: float = 10.0,
        backoff: Optional[BackoffPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._session_factory = session_factory
        self.connect_timeout = connect_timeout
        self.backoff = backoff or BackoffPolicy()
        self._sleep = sleep
        self.connect_failures = 0

    def _open(self, will_topic: str) -> MQTTSession:
        """Abre una sesión aplicando la política de backoff."""
        delays = self.backoff.delays()
        attempt = 1
        while True:
            session = self._session_factory(will_topic)
            try:
                session.open(timeout=self.connect_timeout)
                return session
            except BrokerConnectionError as e:
                self.connect_failures += 1
                delay = next(delays, None)
                if delay is None:
                    raise
                logger.warning(
                    f"⚠️ Conexión fallida, reintentando en {delay:.1f}s",
                    extra={
                        "component": "session",
                        "event": "connect_retry",
                        "attempt": attempt,
                        "max_attempts": self.backoff.max_attempts,
                        "delay_s": delay,
                        "error_message": str(e),
                    }
                )
                self._sleep(delay)
                attempt += 1

    @abstractmethod
    def acquire(self, will_topic: str) -> MQTTSession:
        """Sesión lista para publicar, con last will en will_topic."""

    @abstractmethod
    def release(self, session: MQTTSession) -> None:
        """Fin de la secuencia de un evento."""

    def close(self) -> None:
        """Libera sesiones abiertas al terminar el proceso."""


class PerEventSessionStrategy(SessionStrategy):
    """Connect -> publicar -> disconnect, para cada evento."""

    mode = "per_event"

    def acquire(self, will_topic: str) -> MQTTSession:
        return self._open(will_topic)

    def release(self, session: MQTTSession) -> None:
        session.close()


class PersistentSessionStrategy(SessionStrategy):
    """Una sesión compartida entre eventos mientras el will topic no cambie."""

    mode = "persistent"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._session: Optional[MQTTSession] = None

    def acquire(self, will_topic: str) -> MQTTSession:
        current = self._session
        if current is not None and current.is_connected and current.will_topic == will_topic:
            return current

        if current is not None:
            logger.info(
                "🔄 Reabriendo sesión MQTT",
                extra={
                    "component": "session",
                    "event": "session_reopen",
                    "reason": "will_topic_changed" if current.will_topic != will_topic else "disconnected",
                    "will_topic": will_topic,
                }
            )
            self._close_current()

        self._session = self._open(will_topic)
        return self._session

    def release(self, session: MQTTSession) -> None:
        pass

    def _close_current(self) -> None:
        session, self._session = self._session, None
        try:
            session.close()
        except Exception as e:
            log_error_with_context(
                logger,
                message="❌ Error cerrando sesión MQTT",
                exception=e,
                component="session",
                event="close_error",
            )

    def close(self) -> None:
        if self._session is not None:
            self._close_current()


def create_session_strategy(
    mode: str,
    session_factory: SessionFactory,
    connect_timeout: float = 10.0,
    backoff: Optional[BackoffPolicy] = None,
) -> SessionStrategy:
    """
    Factory function: crea la estrategia de sesión según config.

    Args:
        mode: "per_event" o "persistent"
        session_factory: Crea una MQTTSession (sin conectar) para un will topic
        connect_timeout: Segundos de espera por CONNACK
        backoff: Política de reintento (None = sin reintentos)

    Raises:
        ValueError: Si mode no es válido
    """
    strategies = {
        PerEventSessionStrategy.mode: PerEventSessionStrategy,
        PersistentSessionStrategy.mode: PersistentSessionStrategy,
    }
    if mode not in strategies:
        raise ValueError(
            f"Invalid session mode '{mode}'. Available: {', '.join(sorted(strategies))}"
        )

    logger.info(
        "MQTT session strategy created",
        extra={
            "component": "session_factory",
            "event": "strategy_created",
            "mode": mode,
            "connect_timeout": connect_timeout,
            "max_attempts": (backoff or BackoffPolicy()).max_attempts,
        }
    )
    return strategies[mode](session_factory, connect_timeout=connect_timeout, backoff=backoff)


def default_client_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}"
