"""
Bridge Lifecycle Tests
======================

Tests end-to-end del controller: follower real sobre tmp_path + broker fake.

Invariantes testeadas:
1. Líneas no reconocidas no generan publicaciones
2. Línea de movimiento -> config, state, availability
3. Conexión rechazada: política 'exit' -> exit code 1, 'skip' -> evento descartado
4. Log inexistente -> exit code 1
5. Señal de terminación -> shutdown limpio (exit code 0)
6. Config inválida -> exit code 1 antes de arrancar
7. on_unmatched=log -> registro DEBUG por línea ignorada
"""
import logging
import signal
import threading

import pytest

from unifi_motion.app import MotionBridgeController, main
from unifi_motion.data import BrokerConnectionError
from unifi_motion.tests.fakes import NAMESPACE, SCENARIO_LINE

SAFETY_TIMEOUT = 5.0


def append(path, text):
    with open(path, "a") as f:
        f.write(text)


@pytest.fixture
def restore_signal_handlers():
    """run() instala handlers de SIGINT/SIGTERM; se restauran al terminar."""
    saved = {sig: signal.getsignal(sig) for sig in (signal.SIGINT, signal.SIGTERM)}
    yield
    for sig, handler in saved.items():
        signal.signal(sig, handler)


@pytest.fixture
def controller(bridge_config, log_file, fake_broker):
    controller = MotionBridgeController(bridge_config, str(log_file))
    yield controller
    controller.cleanup()


def run_with_timers(controller, *timers):
    """Ejecuta run() con timers en background y un stop de seguridad."""
    safety = threading.Timer(SAFETY_TIMEOUT, controller._signal_handler, args=(signal.SIGTERM, None))
    for timer in (*timers, safety):
        timer.start()
    try:
        return controller.run()
    finally:
        for timer in (*timers, safety):
            timer.cancel()


@pytest.mark.unit
@pytest.mark.mqtt
class TestProcessLine:
    """Tests de process_line (sin follower)"""

    def test_unmatched_line_publishes_nothing(self, controller, fake_broker):
        controller.setup()

        result = controller.process_line("1570000000.000 Camera[cam1] connected")

        assert result is None
        assert fake_broker.messages == []
        assert fake_broker.clients == []
        assert controller.lines_read == 1
        assert controller.events_matched == 0

    def test_unmatched_line_logged_with_log_policy(self, bridge_config, log_file, fake_broker, caplog):
        """
        Propiedad: on_unmatched=log -> un registro DEBUG por línea ignorada.
        """
        bridge_config.parsing.on_unmatched = "log"
        controller = MotionBridgeController(bridge_config, str(log_file))
        controller.setup()
        try:
            with caplog.at_level(logging.DEBUG, logger="unifi_motion.app.controller"):
                controller.process_line("1570000000.000 Camera[cam1] connected")
        finally:
            controller.cleanup()

        skipped = [r for r in caplog.records if getattr(r, "event", None) == "line_skipped"]
        assert len(skipped) == 1
        assert skipped[0].levelno == logging.DEBUG
        assert skipped[0].line == "1570000000.000 Camera[cam1] connected"
        assert fake_broker.messages == []

    def test_unmatched_line_not_logged_by_default(self, controller, caplog):
        controller.setup()

        with caplog.at_level(logging.DEBUG, logger="unifi_motion.app.controller"):
            controller.process_line("1570000000.000 Camera[cam1] connected")

        assert not [r for r in caplog.records if getattr(r, "event", None) == "line_skipped"]

    def test_motion_line_publishes_sequence(self, controller, fake_broker):
        """
        Invariante: Una línea de movimiento -> los 3 mensajes en orden.
        """
        controller.setup()

        report = controller.process_line(SCENARIO_LINE)

        assert report.camera_id == "cam1"
        assert report.all_published
        assert fake_broker.topics == [
            f"{NAMESPACE}/config",
            f"{NAMESPACE}/state",
            f"{NAMESPACE}/status",
        ]
        assert controller.events_matched == 1

    def test_connect_failure_propagates_with_exit_policy(self, controller, fake_broker):
        fake_broker.refuse_all()
        controller.setup()

        with pytest.raises(BrokerConnectionError):
            controller.process_line(SCENARIO_LINE)

        assert fake_broker.messages == []

    def test_connect_failure_dropped_with_skip_policy(self, bridge_config, log_file, fake_broker):
        """
        Propiedad: Con 'skip' el evento se descarta y el bridge sigue.
        """
        bridge_config.mqtt.session.on_connect_failure = "skip"
        controller = MotionBridgeController(bridge_config, str(log_file))
        controller.setup()
        try:
            fake_broker.refuse_next = 1

            assert controller.process_line(SCENARIO_LINE) is None
            assert controller.events_dropped == 1

            report = controller.process_line(SCENARIO_LINE)
            assert report.all_published
        finally:
            controller.cleanup()


@pytest.mark.integration
@pytest.mark.mqtt
class TestRun:
    """Tests de run() con follower real"""

    def test_missing_log_file_exits_1(self, bridge_config, tmp_path, fake_broker):
        controller = MotionBridgeController(bridge_config, str(tmp_path / "missing.log"))

        assert controller.run() == 1

    def test_signal_shuts_down_cleanly(self, controller, log_file, fake_broker, restore_signal_handlers):
        """
        Invariante: SIGTERM -> se publica lo ya leído y exit code 0.
        """
        writer = threading.Timer(0.2, append, args=(log_file, SCENARIO_LINE + "\n"))
        stopper = threading.Timer(1.0, controller._signal_handler, args=(signal.SIGTERM, None))

        exit_code = run_with_timers(controller, writer, stopper)

        assert exit_code == 0
        assert fake_broker.topics[-1] == f"{NAMESPACE}/status"
        assert controller.events_matched == 1

    def test_refused_connection_exits_1(self, controller, log_file, fake_broker, restore_signal_handlers):
        """
        Invariante CRÍTICO: Broker inalcanzable con política 'exit' -> exit code 1.
        """
        fake_broker.refuse_all()
        writer = threading.Timer(0.2, append, args=(log_file, SCENARIO_LINE + "\n"))

        exit_code = run_with_timers(controller, writer)

        assert exit_code == 1
        assert fake_broker.messages == []


@pytest.mark.unit
class TestMain:
    """Tests del entry point"""

    def test_invalid_config_exits_1(self, tmp_path, clean_env, capsys):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("mqtt:\n  session:\n    qos: 0\n")

        with pytest.raises(SystemExit) as exc_info:
            main(["--file", str(tmp_path / "recording.log"), "--config", str(config_file)])

        assert exc_info.value.code == 1
        assert "Invalid configuration" in capsys.readouterr().err

    def test_missing_file_argument_is_usage_error(self):
        with pytest.raises(SystemExit) as exc_info:
            main([])

        assert exc_info.value.code == 2
