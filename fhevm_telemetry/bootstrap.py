"""Startup wiring for tracing and metrics export.

``bootstrap`` builds every provider first and only installs them as the
process-wide defaults once nothing else can fail, so a failed call leaves
the previous defaults in place.
"""

import atexit
from typing import Optional

import grpc
from opentelemetry import metrics, trace
from opentelemetry.baggage.propagation import W3CBaggagePropagator
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.propagate import set_global_textmap
from opentelemetry.propagators.composite import CompositePropagator
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import ConsoleMetricExporter, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import ALWAYS_ON, ParentBased, TraceIdRatioBased
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator
from prometheus_client import Counter

from fhevm_telemetry.config import SERVICE_NAME, ObservabilityConfig
from fhevm_telemetry.errors import BootstrapError, CollectorConnectionError, ExporterError
from fhevm_telemetry.reloadable import ReloadableMeterProvider, ReloadableTracerProvider
from fhevm_telemetry.resources import build_resource
from fhevm_telemetry.structured_logger import StructuredLogger

logger = StructuredLogger(SERVICE_NAME)

# Prometheus metrics
BOOTSTRAP_COUNT = Counter('telemetry_bootstrap_count', 'Observability Bootstrap Count', ['outcome'])
COLLECTOR_CONNECTIVITY_COUNT = Counter(
    'telemetry_collector_connectivity_count',
    'Collector Channel Connectivity Transitions',
    ['state']
)

# Set once as the OpenTelemetry API globals, re-pointed on every install
_TRACER_PROVIDER = ReloadableTracerProvider()
_METER_PROVIDER = ReloadableMeterProvider()

_current: Optional["Telemetry"] = None
_atexit_registered = False


class Telemetry:
    """The tracer provider, meter provider and propagator built for one config.

    Application components can be handed a Telemetry directly instead of
    going through the OpenTelemetry globals.
    """

    def __init__(
        self,
        config: ObservabilityConfig,
        resource: Resource,
        tracer_provider: TracerProvider,
        meter_provider: MeterProvider,
        propagator: CompositePropagator,
        channel: Optional[grpc.Channel] = None,
    ):
        self.config = config
        self.resource = resource
        self.tracer_provider = tracer_provider
        self.meter_provider = meter_provider
        self.propagator = propagator
        self.channel = channel
        self._shut_down = False

    @property
    def is_shut_down(self) -> bool:
        return self._shut_down

    def tracer(self, name: str, version: Optional[str] = None) -> trace.Tracer:
        return self.tracer_provider.get_tracer(name, version)

    def meter(self, name: str, version: Optional[str] = None) -> metrics.Meter:
        return self.meter_provider.get_meter(name, version)

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        """Export buffered spans and metrics now; True when both succeeded."""
        spans_flushed = self.tracer_provider.force_flush(timeout_millis)
        metrics_flushed = self.meter_provider.force_flush(timeout_millis)
        return spans_flushed and metrics_flushed

    def shutdown(self):
        """Flush pending telemetry, stop the providers and close the collector channel."""
        if self._shut_down:
            return
        self._shut_down = True
        try:
            try:
                self.tracer_provider.shutdown()
            finally:
                self.meter_provider.shutdown()
        finally:
            if self.channel is not None:
                _close_channel(self.channel)
        logger.info("Observability shut down", service_name=self.config.service_name)


def _on_connectivity_change(connectivity: grpc.ChannelConnectivity):
    state = connectivity.name.lower()
    COLLECTOR_CONNECTIVITY_COUNT.labels(state).inc()
    if connectivity == grpc.ChannelConnectivity.TRANSIENT_FAILURE:
        logger.warning("Collector unreachable, retrying in background", state=state)
    else:
        logger.debug("Collector channel state changed", state=state)


def _close_channel(channel: grpc.Channel):
    channel.unsubscribe(_on_connectivity_change)
    channel.close()


def open_collector_channel(config: ObservabilityConfig) -> grpc.Channel:
    """Open a plaintext gRPC channel to the collector without waiting for it.

    The channel reconnects on its own, so an unreachable collector is only
    reported through connectivity logs, never as an error here.

    This channel only watches the collector's connectivity. It is not the
    export transport: the OTLP exporters open and own their own channels.
    """
    try:
        channel = grpc.insecure_channel(config.collector_endpoint)
    except Exception as e:
        raise CollectorConnectionError(
            f"failed to create gRPC connection to collector {config.collector_endpoint!r}: {e}"
        ) from e
    channel.subscribe(_on_connectivity_change, try_to_connect=True)
    return channel


def build_sampler(config: ObservabilityConfig):
    if config.sampling_ratio is None:
        return ALWAYS_ON
    return ParentBased(TraceIdRatioBased(config.sampling_ratio))


def build_tracer_provider(config: ObservabilityConfig, resource: Resource) -> TracerProvider:
    """Tracer provider batching spans to the collector, or exporting nothing when export is off."""
    tracer_provider = TracerProvider(
        resource=resource,
        sampler=build_sampler(config),
        shutdown_on_exit=False,
    )
    if not config.export_enabled:
        return tracer_provider

    try:
        otlp_exporter = OTLPSpanExporter(endpoint=config.collector_endpoint, insecure=True)
    except Exception as e:
        raise ExporterError(f"failed to create trace exporter: {e}") from e

    span_processor = BatchSpanProcessor(otlp_exporter, schedule_delay_millis=config.span_schedule_delay_ms)
    tracer_provider.add_span_processor(span_processor)
    return tracer_provider


def build_meter_provider(config: ObservabilityConfig, resource: Resource) -> MeterProvider:
    readers = []
    try:
        if config.metrics_exporter == "console":
            readers.append(PeriodicExportingMetricReader(
                ConsoleMetricExporter(),
                export_interval_millis=config.metric_export_interval_ms,
            ))
        elif config.export_enabled:
            readers.append(PeriodicExportingMetricReader(
                OTLPMetricExporter(endpoint=config.collector_endpoint, insecure=True),
                export_interval_millis=config.metric_export_interval_ms,
            ))
    except Exception as e:
        raise ExporterError(f"failed to create metric exporter: {e}") from e

    return MeterProvider(resource=resource, metric_readers=readers, shutdown_on_exit=False)


def build_propagator() -> CompositePropagator:
    return CompositePropagator([TraceContextTextMapPropagator(), W3CBaggagePropagator()])


def _build(config: ObservabilityConfig) -> Telemetry:
    resource = build_resource(config)

    channel = open_collector_channel(config) if config.export_enabled else None
    tracer_provider = None
    try:
        tracer_provider = build_tracer_provider(config, resource)
        meter_provider = build_meter_provider(config, resource)
    except BootstrapError:
        if tracer_provider is not None:
            tracer_provider.shutdown()
        if channel is not None:
            _close_channel(channel)
        raise

    return Telemetry(config, resource, tracer_provider, meter_provider, build_propagator(), channel)


def _register_globals():
    if trace.get_tracer_provider() is not _TRACER_PROVIDER:
        trace.set_tracer_provider(_TRACER_PROVIDER)
    if metrics.get_meter_provider() is not _METER_PROVIDER:
        metrics.set_meter_provider(_METER_PROVIDER)
    if trace.get_tracer_provider() is not _TRACER_PROVIDER or metrics.get_meter_provider() is not _METER_PROVIDER:
        raise BootstrapError("global OpenTelemetry providers were already set by another component")


def install(telemetry: Telemetry):
    """Make ``telemetry`` the process-wide default, replacing and shutting down the previous one."""
    global _current, _atexit_registered

    previous_tracer_provider = _TRACER_PROVIDER.set_delegate(telemetry.tracer_provider)
    previous_meter_provider = _METER_PROVIDER.set_delegate(telemetry.meter_provider)
    try:
        _register_globals()
    except BootstrapError:
        _TRACER_PROVIDER.set_delegate(previous_tracer_provider)
        _METER_PROVIDER.set_delegate(previous_meter_provider)
        raise
    set_global_textmap(telemetry.propagator)

    previous, _current = _current, telemetry
    if previous is not None and previous is not telemetry:
        previous.shutdown()

    if not _atexit_registered:
        atexit.register(shutdown)
        _atexit_registered = True


def bootstrap(config: ObservabilityConfig) -> Telemetry:
    """Build and install tracing and metrics for ``config``.

    Raises a BootstrapError subclass naming the step that failed. Nothing is
    installed in that case; whether to abort is up to the caller.
    """
    logger.info(
        "Initializing observability",
        service_name=config.service_name,
        collector_endpoint=config.collector_endpoint,
        export_enabled=config.export_enabled,
    )
    try:
        telemetry = _build(config)
        try:
            install(telemetry)
        except BootstrapError:
            telemetry.shutdown()
            raise
    except BootstrapError as e:
        BOOTSTRAP_COUNT.labels('error').inc()
        logger.error("Observability bootstrap failed", error=str(e), exception_type=type(e).__name__)
        raise

    BOOTSTRAP_COUNT.labels('success').inc()
    return telemetry


def current() -> Optional[Telemetry]:
    """The installed Telemetry, or None before bootstrap and after shutdown."""
    return _current


def shutdown():
    """Shut down the installed Telemetry and fall back to no-op providers."""
    global _current
    telemetry, _current = _current, None
    _TRACER_PROVIDER.set_delegate(None)
    _METER_PROVIDER.set_delegate(None)
    if telemetry is not None:
        telemetry.shutdown()
