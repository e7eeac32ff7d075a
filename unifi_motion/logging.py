"""
Structured Logging Infrastructure
==================================

Logs JSON (una línea por registro) para poder filtrar por cámara, topic o evento.

Design Philosophy:
- Solo JSON, a stdout o a archivo con rotation
- Un trace_id por evento de movimiento (contextvars), heredado por todos los
  logs del publish (config, state, availability)
- Helpers para los registros recurrentes del bridge
- Emojis en el mensaje para lectura humana

Usage:
    from unifi_motion.logging import setup_logging, trace_context

    setup_logging(level="DEBUG", indent=2)                       # desarrollo
    setup_logging(level="INFO", log_file="logs/unifi_motion.log")  # producción

    with trace_context(generate_trace_id("evt-cam1")):
        publisher.publish_event(event, descriptor)
"""
import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from pythonjsonlogger.json import JsonFormatter

LOG_FORMAT = '%(timestamp)s %(levelname)s %(name)s %(message)s'

# Renombres aplicados a cada registro JSON
FIELD_RENAMES = {"levelname": "level", "name": "logger"}


# ============================================================================
# Trace Context
# ============================================================================

_current_trace: ContextVar[Optional[str]] = ContextVar('unifi_motion_trace_id', default=None)


def get_trace_id() -> Optional[str]:
    """trace_id activo, o None fuera de trace_context()."""
    return _current_trace.get()


def generate_trace_id(prefix: str = "trace") -> str:
    """
    Args:
        prefix: ej "evt-cam1" para eventos de una cámara

    Returns:
        "{prefix}-{8 hex}"
    """
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


@contextmanager
def trace_context(trace_id: Optional[str] = None) -> Iterator[str]:
    """
    Activa un trace_id durante el bloque; todos los logs del bloque lo incluyen.

    Si trace_id es None se genera uno.
    """
    token = _current_trace.set(trace_id or generate_trace_id())
    try:
        yield _current_trace.get()
    finally:
        _current_trace.reset(token)


# ============================================================================
# Formatter / Handler
# ============================================================================

class BridgeJsonFormatter(JsonFormatter):
    """
    JsonFormatter con nombres de campo cortos, trace_id del contexto y
    campos estáticos (ej: {"host": "nvr-01"}).
    """

    def __init__(self, *args, static_fields: Optional[Dict[str, Any]] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.static_fields = dict(static_fields or {})

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        for source, target in FIELD_RENAMES.items():
            if source in log_record:
                log_record[target] = log_record.pop(source)

        trace_id = get_trace_id()
        if trace_id is not None:
            log_record.setdefault('trace_id', trace_id)

        for key, value in self.static_fields.items():
            log_record.setdefault(key, value)


def _build_handler(log_file: Optional[str], max_bytes: int, backup_count: int) -> logging.Handler:
    if not log_file:
        return logging.StreamHandler(sys.stdout)

    path = Path(log_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    print(
        f"📄 Logging to file: {path} (max: {max_bytes // (1024 * 1024)}MB, backups: {backup_count})",
        file=sys.stderr
    )
    return RotatingFileHandler(
        filename=str(path),
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding='utf-8'
    )


def setup_logging(
    level: str = "INFO",
    indent: Optional[int] = None,
    add_fields: Optional[Dict[str, Any]] = None,
    log_file: Optional[str] = None,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    paho_level: str = "WARNING",
) -> None:
    """
    Configura el root logger con salida JSON.

    Args:
        level: nivel del root logger
        indent: indent del JSON (None = una línea por registro)
        add_fields: campos agregados a todos los registros
        log_file: archivo destino con rotation (None = stdout)
        max_bytes: tamaño antes de rotar
        backup_count: archivos rotados a conservar
        paho_level: nivel del logger "paho" (client.enable_logger)
    """
    handler = _build_handler(log_file, max_bytes, backup_count)
    handler.setFormatter(BridgeJsonFormatter(
        LOG_FORMAT,
        timestamp=True,
        json_indent=indent,
        static_fields=add_fields,
    ))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())

    logging.getLogger('paho').setLevel(paho_level.upper())


# ============================================================================
# Helpers
# ============================================================================

def _context(component: str, **fields: Any) -> Dict[str, Any]:
    """extra con component, trace_id activo (si hay) y los campos no None."""
    extra = {"component": component}
    trace_id = get_trace_id()
    if trace_id is not None:
        extra["trace_id"] = trace_id
    extra.update({key: value for key, value in fields.items() if value is not None})
    return extra


def log_motion_event(
    logger: logging.Logger,
    camera_id: str,
    camera_name: str,
    action: str,
    motion_level: str,
    recording_id: str,
) -> None:
    """Registro INFO por cada línea "Parsed id: ..." reconocida."""
    logger.info(
        f"🎥 Movimiento {action}: {camera_name} ({camera_id})",
        extra=_context(
            "matcher",
            event="motion_parsed",
            camera_id=camera_id,
            camera_name=camera_name,
            action=action,
            motion_level=motion_level,
            recording_id=recording_id,
        )
    )


def log_mqtt_publish(
    logger: logging.Logger,
    topic: str,
    qos: int,
    payload_size: int,
    step: Optional[str] = None,
    component: str = "data_plane",
) -> None:
    """
    Registro DEBUG de un publish completado.

    Los fallos van por log_error_with_context (nivel ERROR, con rc y traceback).

    Args:
        step: paso de la secuencia (config, state, availability)
    """
    logger.debug(
        f"📤 Mensaje publicado a {topic}",
        extra=_context(
            component,
            mqtt_topic=topic,
            qos=qos,
            payload_size_bytes=payload_size,
            step=step,
        )
    )


def log_error_with_context(
    logger: logging.Logger,
    message: str,
    exception: Optional[BaseException] = None,
    component: str = "unknown",
    event: Optional[str] = None,
    **kwargs: Any
) -> None:
    """
    Registro ERROR con contexto estructurado.

    Con exception se agregan error_type/error_message y el traceback.
    kwargs se agregan tal cual (broker_host, log_path, ...).
    """
    extra = _context(component, event=event, **kwargs)

    if exception is None:
        logger.error(message, extra=extra)
        return

    extra["error_type"] = type(exception).__name__
    extra["error_message"] = str(exception)
    logger.error(f"{message}: {exception}", extra=extra, exc_info=True)


__all__ = [
    "BridgeJsonFormatter",
    "setup_logging",
    "trace_context",
    "get_trace_id",
    "generate_trace_id",
    "log_motion_event",
    "log_mqtt_publish",
    "log_error_with_context",
]
