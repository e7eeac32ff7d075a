"""
UniFi Motion Test Suite
=======================

Tests de invariantes críticas del pipeline.

Philosophy:
- Focus on invariants (properties that must always be true)
- Test critical paths (matcher, discovery, MQTT sequence, follower)
- NOT 100% coverage - only key behaviors

Modules:
- test_matcher: decodificación de líneas del log
- test_discovery: slug, topics y payload de discovery
- test_publisher: secuencia MQTT, políticas de sesión y errores
- test_follower: tail dirigido por eventos, rotación
- test_config_validation: validación Pydantic
- test_bridge_lifecycle: controller end-to-end
- test_logging: formatter JSON y trace context
"""
