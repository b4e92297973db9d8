"""Package-level tracer and meter for application code.

Both are fetched once at import time and keep following whichever provider
``bootstrap`` installed last, including instruments created from ``meter``.
"""

from opentelemetry import metrics, trace

INSTRUMENTATION_NAME = "fhevm"


def get_tracer(name: str = INSTRUMENTATION_NAME) -> trace.Tracer:
    return trace.get_tracer(name)


def get_meter(name: str = INSTRUMENTATION_NAME) -> metrics.Meter:
    return metrics.get_meter(name)


tracer = get_tracer()
meter = get_meter()
