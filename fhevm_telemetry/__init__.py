"""OpenTelemetry tracing and metrics bootstrap for the fhevm service."""

from fhevm_telemetry.bootstrap import (
    Telemetry,
    bootstrap,
    build_meter_provider,
    build_propagator,
    build_tracer_provider,
    current,
    install,
    open_collector_channel,
    shutdown,
)
from fhevm_telemetry.config import ObservabilityConfig, resolve_config
from fhevm_telemetry.errors import (
    BootstrapError,
    CollectorConnectionError,
    ConfigError,
    ExporterError,
    ResourceError,
)
from fhevm_telemetry.resources import build_resource

__all__ = [
    "BootstrapError",
    "CollectorConnectionError",
    "ConfigError",
    "ExporterError",
    "ObservabilityConfig",
    "ResourceError",
    "Telemetry",
    "bootstrap",
    "build_meter_provider",
    "build_propagator",
    "build_resource",
    "build_tracer_provider",
    "current",
    "install",
    "open_collector_channel",
    "resolve_config",
    "shutdown",
]
