"""
Fixtures compartidas
"""
import paho.mqtt.client as mqtt
import pytest

from unifi_motion.config import BridgeConfig
from unifi_motion.tests.fakes import FakeBroker


@pytest.fixture
def fake_broker(monkeypatch) -> FakeBroker:
    broker = FakeBroker()
    monkeypatch.setattr(mqtt, "Client", broker.client_factory)
    return broker


@pytest.fixture
def clean_env(monkeypatch):
    for name in ("MQTT_BROKER", "MQTT_PORT", "MQTT_USERNAME", "MQTT_PASSWORD"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def bridge_config(clean_env) -> BridgeConfig:
    return BridgeConfig.from_dict({
        "mqtt": {
            "broker": {"host": "broker.local", "username": "ha", "password": "secret"},
            "session": {"connect_timeout": 0.05, "publish_timeout": 0.05},
        }
    })


@pytest.fixture
def log_file(tmp_path):
    path = tmp_path / "recording.log"
    path.write_text("1570000000.000 existing line before start\n")
    return path
