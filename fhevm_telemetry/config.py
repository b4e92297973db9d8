import os
from dataclasses import dataclass
from typing import Mapping, Optional

from fhevm_telemetry.errors import ConfigError

SERVICE_NAME = "fhevm"

# Collector address, host:port. An empty value turns export off.
COLLECTOR_ENDPOINT_ENV = "FHEVM_OTEL_COLLECTOR_ENDPOINT"
DEFAULT_COLLECTOR_ENDPOINT = "localhost:4317"

DEPLOYMENT_ENVIRONMENT_ENV = "DEPLOYMENT_ENVIRONMENT"
DEFAULT_DEPLOYMENT_ENVIRONMENT = "production"

METRICS_EXPORTERS = ("console", "otlp")

DEFAULT_SPAN_SCHEDULE_DELAY_MS = 5000
DEFAULT_METRIC_EXPORT_INTERVAL_MS = 60000


@dataclass(frozen=True)
class ObservabilityConfig:
    """Settings used once at startup to build the tracer and meter providers."""

    service_name: str = SERVICE_NAME
    collector_endpoint: str = DEFAULT_COLLECTOR_ENDPOINT
    # None samples every trace
    sampling_ratio: Optional[float] = None
    metrics_exporter: str = "console"
    deployment_environment: str = DEFAULT_DEPLOYMENT_ENVIRONMENT
    span_schedule_delay_ms: int = DEFAULT_SPAN_SCHEDULE_DELAY_MS
    metric_export_interval_ms: int = DEFAULT_METRIC_EXPORT_INTERVAL_MS

    def __post_init__(self):
        if self.sampling_ratio is not None and not 0.0 <= self.sampling_ratio <= 1.0:
            raise ConfigError(f"sampling ratio {self.sampling_ratio} is outside [0.0, 1.0]")
        if self.metrics_exporter not in METRICS_EXPORTERS:
            raise ConfigError(f"Metrics exporter {self.metrics_exporter} not supported")

    @property
    def export_enabled(self) -> bool:
        return self.collector_endpoint != ""


def resolve_config(
    environ: Optional[Mapping[str, str]] = None,
    *,
    service_name: str = SERVICE_NAME,
    sampling_ratio: Optional[float] = None,
    metrics_exporter: str = "console",
) -> ObservabilityConfig:
    """Build an ObservabilityConfig from environment variables.

    The endpoint is taken verbatim: a malformed address is not caught here
    and only shows up later as a connection error.
    """
    if environ is None:
        environ = os.environ

    collector_endpoint = environ.get(COLLECTOR_ENDPOINT_ENV)
    if collector_endpoint is None:
        collector_endpoint = DEFAULT_COLLECTOR_ENDPOINT

    return ObservabilityConfig(
        service_name=service_name,
        collector_endpoint=collector_endpoint,
        sampling_ratio=sampling_ratio,
        metrics_exporter=metrics_exporter,
        deployment_environment=environ.get(DEPLOYMENT_ENVIRONMENT_ENV, DEFAULT_DEPLOYMENT_ENVIRONMENT),
    )
