"""
Config Validation Tests
=======================

Tests de validación de configuración con Pydantic.

Invariantes testeadas:
1. Sin broker configurado la config es inválida (fatal al arrancar)
2. Valores por defecto preservan el comportamiento histórico
3. Broker URL (tcp://host:port) se descompone en host/port
4. Variables de entorno pisan el YAML
5. Rangos y relaciones (QoS, backoff)
6. Encoding del log validado al cargar
"""
import pytest
from pydantic import ValidationError

from unifi_motion.config import (
    BridgeConfig,
    DiscoverySettings,
    FollowerSettings,
    MQTTBrokerSettings,
    MQTTSessionSettings,
    ReconnectSettings,
)


@pytest.mark.unit
class TestBrokerSettings:
    """Tests de MQTTBrokerSettings"""

    def test_missing_broker_is_invalid(self, clean_env):
        """
        Invariante CRÍTICO: Sin mqtt.broker.host el bridge no arranca.
        """
        with pytest.raises(ValidationError) as exc_info:
            BridgeConfig.from_dict({})

        assert 'host' in str(exc_info.value)

    def test_empty_host_is_invalid(self):
        with pytest.raises(ValidationError):
            MQTTBrokerSettings(host="")

    def test_plain_host(self):
        settings = MQTTBrokerSettings(host="192.168.1.10")

        assert settings.host == "192.168.1.10"
        assert settings.port == 1883
        assert settings.username is None

    def test_broker_url_is_split(self):
        """
        Propiedad: tcp://host:port se acepta además de un hostname plano.
        """
        settings = MQTTBrokerSettings(host="tcp://192.168.1.10:1884")

        assert settings.host == "192.168.1.10"
        assert settings.port == 1884

    def test_broker_url_without_port_keeps_port_field(self):
        settings = MQTTBrokerSettings(host="mqtt://broker.local", port=8883)

        assert settings.host == "broker.local"
        assert settings.port == 8883

    def test_unsupported_scheme_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            MQTTBrokerSettings(host="ws://broker.local:9001")

        assert 'scheme' in str(exc_info.value).lower()

    def test_port_range(self):
        with pytest.raises(ValidationError):
            MQTTBrokerSettings(host="broker.local", port=70000)


@pytest.mark.unit
class TestSessionSettings:
    """Tests de MQTTSessionSettings"""

    def test_session_defaults(self):
        """
        Invariante: Defaults = sesión por evento, fallo de conexión fatal, QoS 0, sin retain.
        """
        settings = MQTTSessionSettings()

        assert settings.mode == 'per_event'
        assert settings.on_connect_failure == 'exit'
        assert settings.qos == 0
        assert settings.retain is False
        assert settings.reconnect.max_attempts == 0

    def test_qos_two_rejected(self):
        """
        Invariante: Solo niveles at-most-once (0, 1).
        """
        with pytest.raises(ValidationError):
            MQTTSessionSettings(qos=2)

    def test_invalid_mode_rejected(self):
        with pytest.raises(ValidationError):
            MQTTSessionSettings(mode='pooled')

    def test_initial_delay_must_not_exceed_max(self):
        with pytest.raises(ValidationError) as exc_info:
            ReconnectSettings(initial_delay=60.0, max_delay=30.0)

        assert 'initial_delay' in str(exc_info.value)


@pytest.mark.unit
class TestDiscoverySettings:

    def test_defaults(self):
        settings = DiscoverySettings()

        assert settings.prefix == "homeassistant"
        assert settings.component == "binary_sensor"

    @pytest.mark.parametrize("prefix", ["home/assistant", "ha/#", "+"])
    def test_prefix_must_be_single_level(self, prefix):
        with pytest.raises(ValidationError):
            DiscoverySettings(prefix=prefix)


@pytest.mark.unit
class TestFollowerSettings:

    def test_defaults(self):
        settings = FollowerSettings()

        assert settings.rotation == "reopen"
        assert settings.encoding == "utf-8"

    def test_known_encoding_accepted(self):
        assert FollowerSettings(encoding="latin-1").encoding == "latin-1"

    def test_unknown_encoding_rejected_at_load(self, clean_env):
        """
        Invariante: Encoding inválido es error de config, no un crash en la primera línea.
        """
        with pytest.raises(ValidationError) as exc_info:
            BridgeConfig.from_dict({
                "mqtt": {"broker": {"host": "broker.local"}},
                "follower": {"encoding": "utf-9"},
            })

        assert "utf-9" in str(exc_info.value)


@pytest.mark.unit
class TestBridgeConfigLoading:
    """Tests de carga desde YAML + entorno"""

    def test_from_yaml(self, tmp_path, clean_env):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            "mqtt:\n"
            "  broker:\n"
            "    host: tcp://10.0.0.2:1883\n"
            "    username: ha\n"
            "  session:\n"
            "    mode: persistent\n"
            "follower:\n"
            "  rotation: fail\n"
        )

        config = BridgeConfig.from_yaml(str(config_file))

        assert config.mqtt.broker.host == "10.0.0.2"
        assert config.mqtt.broker.username == "ha"
        assert config.mqtt.session.mode == "persistent"
        assert config.follower.rotation == "fail"
        assert config.parsing.on_unmatched == "ignore"
        assert config.logging.level == "INFO"

    def test_missing_yaml_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            BridgeConfig.from_yaml(str(tmp_path / "nope.yaml"))

    def test_empty_yaml_without_env_is_invalid(self, tmp_path, clean_env):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("")

        with pytest.raises(ValidationError):
            BridgeConfig.from_yaml(str(config_file))

    def test_env_overrides_yaml(self, tmp_path, clean_env, monkeypatch):
        """
        Propiedad: MQTT_* del entorno pisan los valores del YAML.
        """
        config_file = tmp_path / "config.yaml"
        config_file.write_text("mqtt:\n  broker:\n    host: yaml-host\n    password: from-yaml\n")
        monkeypatch.setenv("MQTT_BROKER", "env-host")
        monkeypatch.setenv("MQTT_PORT", "1885")
        monkeypatch.setenv("MQTT_PASSWORD", "from-env")

        config = BridgeConfig.from_yaml(str(config_file))

        assert config.mqtt.broker.host == "env-host"
        assert config.mqtt.broker.port == 1885
        assert config.mqtt.broker.password == "from-env"

    def test_env_only_config(self, clean_env, monkeypatch):
        monkeypatch.setenv("MQTT_BROKER", "tcp://env-host:1999")

        config = BridgeConfig.from_dict({})

        assert config.mqtt.broker.host == "env-host"
        assert config.mqtt.broker.port == 1999
