"""
UniFi Video Motion -> Home Assistant MQTT Bridge
=================================================

Follower -> Matcher -> DescriptorBuilder -> Publisher, una línea por vez.

Exit codes:
- 0: shutdown limpio (SIGINT/SIGTERM o follower terminado)
- 1: config inválida, log inexistente, fallo de conexión (política 'exit'),
     rotación con política 'fail'
- 2: uso incorrecto de la CLI (argparse)
"""
import argparse
import logging
import signal
import sys
from pathlib import Path
from threading import Event
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import ValidationError

from ..config import BridgeConfig
from ..data import (
    BrokerConnectionError,
    DeviceDescriptorBuilder,
    MQTTMotionPublisher,
    PublishReport,
)
from ..follower import LogFollower, LogRotatedError
from ..logging import (
    generate_trace_id,
    log_error_with_context,
    log_motion_event,
    setup_logging,
    trace_context,
)
from ..parsing import PatternMatcher

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"


# ============================================================================
# BRIDGE CONTROLLER
# ============================================================================
class MotionBridgeController:
    """
    Controlador del bridge.

    Responsabilidad: Orquestación y lifecycle management
    - Setup de componentes (follower, matcher, builder, publisher)
    - Loop secuencial: un evento se publica completo antes de leer la línea siguiente
    - Políticas de error (líneas no reconocidas, fallos de conexión)
    - Signal handling y cleanup
    """

    def __init__(self, config: BridgeConfig, log_path: str):
        self.config = config
        self.log_path = log_path

        # Componentes (creados en setup)
        self.follower: Optional[LogFollower] = None
        self.matcher: Optional[PatternMatcher] = None
        self.builder: Optional[DeviceDescriptorBuilder] = None
        self.publisher: Optional[MQTTMotionPublisher] = None

        self.shutdown_event = Event()
        self.lines_read = 0
        self.events_matched = 0
        self.events_dropped = 0

    def setup(self) -> None:
        """
        Inicializa componentes y empieza a seguir el log.

        Raises:
            FileNotFoundError: si el log no existe
        """
        logger.info("🚀 Inicializando bridge de movimiento...")

        self.matcher = PatternMatcher()
        self.builder = DeviceDescriptorBuilder(
            discovery_prefix=self.config.discovery.prefix,
            component=self.config.discovery.component,
        )
        self.publisher = MQTTMotionPublisher.from_settings(self.config.mqtt)

        self.follower = LogFollower(
            self.log_path,
            rotation=self.config.follower.rotation,
            encoding=self.config.follower.encoding,
        )
        self.follower.start()

        logger.info(
            "✅ Setup completado",
            extra={
                "component": "controller",
                "event": "setup_complete",
                "log_path": self.log_path,
                "broker_host": self.config.mqtt.broker.host,
                "broker_port": self.config.mqtt.broker.port,
                "session_mode": self.config.mqtt.session.mode,
                "on_connect_failure": self.config.mqtt.session.on_connect_failure,
            }
        )

    def process_line(self, line: str) -> Optional[PublishReport]:
        """
        Procesa una línea del log.

        Returns:
            PublishReport si la línea era un evento publicado, None si no

        Raises:
            BrokerConnectionError: fallo de conexión con política 'exit'
        """
        self.lines_read += 1

        event = self.matcher.match(line)
        if event is None:
            if self.config.parsing.on_unmatched == "log":
                logger.debug(
                    "Línea ignorada",
                    extra={"component": "matcher", "event": "line_skipped", "line": line}
                )
            return None

        self.events_matched += 1

        with trace_context(generate_trace_id(f"evt-{event.camera_id}")):
            log_motion_event(
                logger,
                camera_id=event.camera_id,
                camera_name=event.camera_name,
                action=event.action.value,
                motion_level=event.motion_level,
                recording_id=event.recording_id,
            )

            descriptor = self.builder.build(event)
            try:
                return self.publisher.publish_event(event, descriptor)
            except BrokerConnectionError as e:
                if self.config.mqtt.session.on_connect_failure != "skip":
                    raise
                self.events_dropped += 1
                log_error_with_context(
                    logger,
                    message="❌ Evento descartado, no se pudo conectar al broker",
                    exception=e,
                    component="controller",
                    event="event_dropped",
                    camera_id=event.camera_id,
                )
                return None

    def run(self) -> int:
        """Ejecuta el bridge hasta shutdown. Retorna exit code."""
        try:
            self.setup()
        except FileNotFoundError as e:
            log_error_with_context(
                logger,
                message="❌ No se puede seguir el archivo de log",
                exception=e,
                component="controller",
                event="file_not_found",
                log_path=self.log_path,
            )
            return 1

        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

        exit_code = 0
        try:
            for line in self.follower.lines():
                self.process_line(line)
                if self.shutdown_event.is_set():
                    break
        except BrokerConnectionError as e:
            log_error_with_context(
                logger,
                message="❌ Error fatal de conexión MQTT",
                exception=e,
                component="controller",
                event="connection_fatal",
                broker_host=self.config.mqtt.broker.host,
                broker_port=self.config.mqtt.broker.port,
            )
            exit_code = 1
        except LogRotatedError as e:
            log_error_with_context(
                logger,
                message="❌ Archivo de log rotado",
                exception=e,
                component="controller",
                event="log_rotated",
                log_path=self.log_path,
            )
            exit_code = 1
        finally:
            self.cleanup()

        return exit_code

    def _signal_handler(self, signum, frame):
        """Handler para señales (Ctrl+C, SIGTERM)"""
        logger.info("⚠️ Señal de terminación recibida...", extra={"signal": signum})
        self.shutdown_event.set()
        if self.follower is not None:
            self.follower.stop()

    def cleanup(self) -> None:
        """Limpia recursos al finalizar."""
        logger.info("🧹 Limpiando recursos...")

        if self.follower is not None:
            try:
                self.follower.close()
            except Exception as e:
                logger.error(f"❌ Error cerrando follower: {e}")

        if self.publisher is not None:
            try:
                stats = self.publisher.get_stats()
                stats.update(
                    lines_read=self.lines_read,
                    events_matched=self.events_matched,
                    events_dropped=self.events_dropped,
                )
                logger.info("📊 Bridge stats", extra={"component": "controller", "stats": stats})
                self.publisher.close()
            except Exception as e:
                logger.error(f"❌ Error cerrando publisher: {e}")

        logger.info("👋 Hasta luego!")


# ============================================================================
# MAIN
# ============================================================================
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="unifi-motion",
        description="Publica eventos de movimiento de UniFi Video en Home Assistant vía MQTT"
    )
    parser.add_argument(
        "--file",
        required=True,
        help="Path al recording.log de UniFi Video"
    )
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG_PATH,
        help=f"Archivo de configuración YAML (default: {DEFAULT_CONFIG_PATH})"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Override de logging.level"
    )
    return parser


def load_config(config_path: str) -> BridgeConfig:
    """
    Carga configuración desde YAML, o solo desde entorno si no existe el archivo.

    Raises:
        ValidationError: config inválida (ej: sin mqtt.broker.host)
    """
    if Path(config_path).exists():
        config = BridgeConfig.from_yaml(config_path)
        print(f"✅ Config loaded and validated from {config_path}", file=sys.stderr)
    else:
        config = BridgeConfig.from_dict({})
        print(f"⚠️  Config file not found ({config_path}), using environment", file=sys.stderr)
    return config


def main(argv: Optional[List[str]] = None) -> None:
    """Punto de entrada principal"""
    load_dotenv()

    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
    except ValidationError as e:
        # Fail fast con mensaje claro
        print("❌ Invalid configuration:", file=sys.stderr)
        for error in e.errors():
            field = " -> ".join(str(loc) for loc in error['loc'])
            print(f"   • {field}: {error['msg']}", file=sys.stderr)
        print(f"\nPlease fix {args.config} (or set MQTT_BROKER) and try again.", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"❌ Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(
        level=args.log_level or config.logging.level,
        indent=config.logging.json_indent,
        log_file=config.logging.file,
        max_bytes=config.logging.max_bytes,
        backup_count=config.logging.backup_count,
        paho_level=config.logging.paho_level,
    )
    logger.info("🔧 UniFi motion bridge starting...")

    controller = MotionBridgeController(config, args.file)

    try:
        exit_code = controller.run()
    except Exception as e:
        logger.error(f"❌ Error fatal: {e}", exc_info=True)
        sys.exit(1)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
