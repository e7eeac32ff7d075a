"""
Pydantic Configuration Schemas
================================

Type-safe configuration validation usando Pydantic v2.

Benefits:
- Validación en load time (no en runtime)
- Fail fast: sin broker configurado el bridge no arranca
- Políticas explícitas (sesión, reconexión, rotación, líneas no reconocidas)

Usage:
    config = BridgeConfig.from_yaml("config.yaml")
    # Config ya está validado, tipos garantizados
"""
import codecs
import os
from pathlib import Path
from typing import Literal, Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, Field, field_validator, model_validator


# ============================================================================
# MQTT Configuration
# ============================================================================

class MQTTBrokerSettings(BaseModel):
    """MQTT broker connection settings"""
    host: str = Field(
        min_length=1,
        description="MQTT broker hostname (also accepts tcp://host:port)"
    )
    port: int = Field(
        default=1883,
        ge=1,
        le=65535,
        description="MQTT broker port"
    )
    username: Optional[str] = Field(
        default=None,
        description="MQTT username (optional, from env)"
    )
    password: Optional[str] = Field(
        default=None,
        description="MQTT password (optional, from env)"
    )

    @model_validator(mode='before')
    @classmethod
    def split_broker_url(cls, data):
        """
        Acepta el formato de broker URL (tcp://host:port, mqtt://host:port).

        Un puerto explícito en la URL gana sobre el campo port.
        """
        if not isinstance(data, dict):
            return data

        host = data.get('host')
        if not isinstance(host, str) or '://' not in host:
            return data

        parts = urlsplit(host)
        if parts.scheme not in ('tcp', 'mqtt'):
            raise ValueError(
                f"Unsupported broker scheme '{parts.scheme}' (expected tcp:// or mqtt://)"
            )
        if not parts.hostname:
            raise ValueError(f"Broker URL without host: {host}")

        data = dict(data)
        data['host'] = parts.hostname
        if parts.port is not None:
            data['port'] = parts.port
        return data


class ReconnectSettings(BaseModel):
    """Backoff exponencial para reintentos de conexión (0 intentos = sin retry)"""
    max_attempts: int = Field(
        default=0,
        ge=0,
        description="Retries after the first failed connect (0 = fail immediately)"
    )
    initial_delay: float = Field(
        default=1.0,
        gt=0.0,
        description="Delay before the first retry, in seconds"
    )
    max_delay: float = Field(
        default=30.0,
        gt=0.0,
        description="Upper bound for a single retry delay, in seconds"
    )
    multiplier: float = Field(
        default=2.0,
        ge=1.0,
        description="Backoff growth factor"
    )

    @model_validator(mode='after')
    def validate_delay_order(self):
        """initial_delay must be <= max_delay"""
        if self.initial_delay > self.max_delay:
            raise ValueError(
                f"initial_delay ({self.initial_delay}) must be <= "
                f"max_delay ({self.max_delay})"
            )
        return self


class MQTTSessionSettings(BaseModel):
    """Política de sesión con el broker"""
    mode: Literal['per_event', 'persistent'] = Field(
        default='per_event',
        description="Open a fresh session per event, or keep one across events"
    )
    on_connect_failure: Literal['exit', 'skip'] = Field(
        default='exit',
        description="Terminate the process or drop the event when connect fails"
    )
    qos: Literal[0, 1] = Field(
        default=0,
        description="QoS for config/state/availability (at-most-once levels)"
    )
    retain: bool = Field(
        default=False,
        description="Retain flag for published messages"
    )
    keepalive: int = Field(
        default=60,
        ge=5,
        description="MQTT keepalive in seconds"
    )
    connect_timeout: float = Field(
        default=10.0,
        gt=0.0,
        description="Seconds to wait for CONNACK"
    )
    publish_timeout: float = Field(
        default=5.0,
        gt=0.0,
        description="Seconds to wait for each publish to complete"
    )
    client_id_prefix: str = Field(
        default="unifi_motion",
        min_length=1,
        description="Prefix for generated MQTT client ids"
    )
    reconnect: ReconnectSettings = Field(default_factory=ReconnectSettings)


class MQTTSettings(BaseModel):
    """Complete MQTT configuration"""
    broker: MQTTBrokerSettings
    session: MQTTSessionSettings = Field(default_factory=MQTTSessionSettings)


# ============================================================================
# Discovery / Follower / Parsing
# ============================================================================

class DiscoverySettings(BaseModel):
    """Home Assistant MQTT discovery namespace"""
    prefix: str = Field(
        default="homeassistant",
        min_length=1,
        description="Discovery prefix configured in Home Assistant"
    )
    component: str = Field(
        default="binary_sensor",
        min_length=1,
        description="Home Assistant component for the motion entity"
    )

    @field_validator('prefix', 'component')
    @classmethod
    def validate_topic_level(cls, v: str) -> str:
        """Topic levels cannot contain wildcards or separators"""
        if any(c in v for c in '/#+'):
            raise ValueError(f"'{v}' must be a single topic level without wildcards")
        return v


class FollowerSettings(BaseModel):
    """Seguimiento del recording.log"""
    rotation: Literal['reopen', 'stop', 'fail'] = Field(
        default='reopen',
        description="What to do when the watched file is rotated or truncated"
    )
    encoding: str = Field(
        default='utf-8',
        description="Encoding of the recorder log"
    )

    @field_validator('encoding')
    @classmethod
    def validate_encoding(cls, v: str) -> str:
        """Encoding desconocido falla al arrancar, no en la primera línea"""
        try:
            codecs.lookup(v)
        except LookupError:
            raise ValueError(f"Unknown encoding '{v}'")
        return v


class ParsingSettings(BaseModel):
    """Política para líneas que no son eventos de movimiento"""
    on_unmatched: Literal['ignore', 'log'] = Field(
        default='ignore',
        description="'log' emits a DEBUG record for every skipped line"
    )


# ============================================================================
# Logging Configuration
# ============================================================================

class LoggingSettings(BaseModel):
    """Logging configuration (JSON structured logging)"""
    level: Literal['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'] = Field(
        default='INFO',
        description="Log level"
    )
    json_indent: Optional[int] = Field(
        default=None,
        ge=0,
        le=4,
        description="JSON indent for pretty-print (None=compact, 2=readable)"
    )
    paho_level: Literal['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'] = Field(
        default='WARNING',
        description="Paho MQTT library log level"
    )
    file: Optional[str] = Field(
        default=None,
        description="Path to log file (None=stdout). If specified, enables file rotation."
    )
    max_bytes: int = Field(
        default=10485760,  # 10 MB
        ge=1024,
        description="Maximum bytes per log file before rotation (default 10 MB)"
    )
    backup_count: int = Field(
        default=5,
        ge=0,
        description="Number of backup log files to keep"
    )


# ============================================================================
# Root Configuration
# ============================================================================

class BridgeConfig(BaseModel):
    """
    Root configuration del bridge con validación completa.

    Loads from YAML and validates all settings.
    Environment variables override YAML (MQTT_BROKER, MQTT_PORT,
    MQTT_USERNAME, MQTT_PASSWORD).
    """
    mqtt: MQTTSettings
    discovery: DiscoverySettings = Field(default_factory=DiscoverySettings)
    follower: FollowerSettings = Field(default_factory=FollowerSettings)
    parsing: ParsingSettings = Field(default_factory=ParsingSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def from_yaml(cls, config_path: str) -> 'BridgeConfig':
        """
        Load and validate configuration from YAML file.

        Args:
            config_path: Path to config.yaml

        Returns:
            Validated BridgeConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValidationError: If config is invalid (e.g. missing mqtt.broker.host)
        """
        import yaml

        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create it from config.yaml.example"
            )

        with open(config_file, 'r') as f:
            config_dict = yaml.safe_load(f) or {}

        return cls.from_dict(config_dict)

    @classmethod
    def from_dict(cls, config_dict: dict) -> 'BridgeConfig':
        """Valida un dict ya cargado aplicando overrides de entorno."""
        config_dict = dict(config_dict)
        mqtt_cfg = dict(config_dict.get('mqtt') or {})
        broker_cfg = dict(mqtt_cfg.get('broker') or {})

        # Override sensitive data from environment variables
        env_overrides = {
            'host': os.getenv('MQTT_BROKER'),
            'port': os.getenv('MQTT_PORT'),
            'username': os.getenv('MQTT_USERNAME'),
            'password': os.getenv('MQTT_PASSWORD'),
        }
        for key, value in env_overrides.items():
            if value:
                broker_cfg[key] = value

        mqtt_cfg['broker'] = broker_cfg
        config_dict['mqtt'] = mqtt_cfg

        return cls(**config_dict)
