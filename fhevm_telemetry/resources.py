from opentelemetry.sdk.resources import Resource
from opentelemetry.semconv.resource import ResourceAttributes

from fhevm_telemetry.config import ObservabilityConfig
from fhevm_telemetry.errors import ResourceError

SCHEMA_URL = "https://opentelemetry.io/schemas/1.24.0"


def build_resource(config: ObservabilityConfig) -> Resource:
    """Describe this process for every span and metric it emits.

    SDK defaults and OTEL_RESOURCE_ATTRIBUTES are merged underneath the
    service attributes from the config.
    """
    try:
        return Resource.create(
            {
                ResourceAttributes.SERVICE_NAME: config.service_name,
                ResourceAttributes.DEPLOYMENT_ENVIRONMENT: config.deployment_environment,
            },
            schema_url=SCHEMA_URL,
        )
    except Exception as e:
        raise ResourceError(f"failed to build resource: {e}") from e
