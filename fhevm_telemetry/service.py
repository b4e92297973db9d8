import os
import sys
import prometheus_client
from prometheus_client import Counter
from flask import Flask, current_app, jsonify
from flask_healthz import HealthError, healthz

# OpenTelemetry imports
from opentelemetry.instrumentation.flask import FlaskInstrumentor
from opentelemetry.instrumentation.requests import RequestsInstrumentor

from fhevm_telemetry.bootstrap import bootstrap
from fhevm_telemetry.config import SERVICE_NAME, ObservabilityConfig, resolve_config
from fhevm_telemetry.errors import BootstrapError
from fhevm_telemetry.structured_logger import StructuredLogger
from fhevm_telemetry.tracing import tracer

logger = StructuredLogger(SERVICE_NAME)

PORT = os.getenv('PORT', '8080')

# Prometheus metrics
REQUEST_COUNT = Counter('fhevm_request_count', 'fhevm Service Request Count', ['method', 'endpoint', 'http_status'])


def init_telemetry(config=None):
    """Bootstrap observability, exiting the process if it cannot be set up."""
    if config is None:
        config = resolve_config()
    try:
        return bootstrap(config)
    except BootstrapError as e:
        logger.fatal("Observability initialization failed, aborting startup",
            error=str(e), exception_type=type(e).__name__)
        sys.exit(1)


def healthz_live():
    return True


def healthz_ready():
    telemetry = current_app.extensions.get("telemetry")
    if telemetry is None or telemetry.is_shut_down:
        raise HealthError("observability is not initialized")


def create_app(config: ObservabilityConfig = None) -> Flask:
    telemetry = init_telemetry(config)

    app = Flask(__name__)
    app.extensions["telemetry"] = telemetry

    # Inbound requests continue the caller's trace, outbound ones carry it on
    FlaskInstrumentor().instrument_app(app)
    if not RequestsInstrumentor().is_instrumented_by_opentelemetry:
        RequestsInstrumentor().instrument()

    app.register_blueprint(healthz, url_prefix="/healthz")
    app.config["HEALTHZ"] = {
        "live": healthz_live,
        "ready": healthz_ready,
    }

    @app.route('/')
    def home():
        with tracer.start_as_current_span("home") as span:
            cfg = telemetry.config
            span.set_attribute("telemetry.export_enabled", cfg.export_enabled)
            logger.info("Handling home request", method="GET", path="/")
            REQUEST_COUNT.labels('get', '/', 200).inc()
            return jsonify({
                "status": "success",
                "message": "fhevm service is running",
                "telemetry": {
                    "service_name": cfg.service_name,
                    "collector_endpoint": cfg.collector_endpoint,
                    "export_enabled": cfg.export_enabled,
                    "sampling_ratio": cfg.sampling_ratio,
                    "metrics_exporter": cfg.metrics_exporter,
                }
            })

    @app.route('/metrics')
    def metrics():
        return prometheus_client.generate_latest()

    return app


if __name__ == '__main__':
    app = create_app()
    logger.info("fhevm service starting", port=PORT)
    app.run(host='0.0.0.0', port=int(PORT))
