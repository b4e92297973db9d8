"""Global providers whose backing SDK provider can be replaced.

The OpenTelemetry API only lets the global tracer and meter providers be set
once per process. These wrappers are set once and forward to whichever SDK
provider was installed last.
"""

import threading
from typing import Any, Optional

from opentelemetry import metrics, trace


class ReloadableTracerProvider(trace.TracerProvider):
    def __init__(self):
        self._delegate: trace.TracerProvider = trace.NoOpTracerProvider()

    @property
    def delegate(self) -> trace.TracerProvider:
        return self._delegate

    def set_delegate(self, provider: Optional[trace.TracerProvider]) -> trace.TracerProvider:
        """Swap the backing provider and return the one it replaced."""
        previous = self._delegate
        self._delegate = provider if provider is not None else trace.NoOpTracerProvider()
        return previous

    def get_tracer(self, instrumenting_module_name: str, *args: Any, **kwargs: Any) -> trace.Tracer:
        return _ReloadableTracer(self, instrumenting_module_name, args, kwargs)


class _ReloadableTracer(trace.Tracer):
    # Resolves the real tracer lazily so a swap redirects tracers handed out earlier.

    def __init__(self, provider: ReloadableTracerProvider, name: str, args: tuple, kwargs: dict):
        self._provider = provider
        self._name = name
        self._args = args
        self._kwargs = kwargs
        self._bound_to = None
        self._tracer = None

    def _current(self) -> trace.Tracer:
        delegate = self._provider.delegate
        if self._bound_to is not delegate:
            self._tracer = delegate.get_tracer(self._name, *self._args, **self._kwargs)
            self._bound_to = delegate
        return self._tracer

    def start_span(self, *args: Any, **kwargs: Any) -> trace.Span:
        return self._current().start_span(*args, **kwargs)

    def start_as_current_span(self, *args: Any, **kwargs: Any):
        return self._current().start_as_current_span(*args, **kwargs)


class ReloadableMeterProvider(metrics.MeterProvider):
    """Meters and instruments handed out here are rebound on every swap.

    Each swap recreates every instrument on the new delegate, re-registering
    observable callbacks, so handles fetched once keep recording into the
    provider installed last.
    """

    def __init__(self):
        self._delegate: metrics.MeterProvider = metrics.NoOpMeterProvider()
        self._meters = []
        self._lock = threading.Lock()

    @property
    def delegate(self) -> metrics.MeterProvider:
        return self._delegate

    def set_delegate(self, provider: Optional[metrics.MeterProvider]) -> metrics.MeterProvider:
        with self._lock:
            previous = self._delegate
            self._delegate = provider if provider is not None else metrics.NoOpMeterProvider()
            for meter in self._meters:
                meter._bind(self._delegate)
        return previous

    def get_meter(self, name: str, *args: Any, **kwargs: Any) -> metrics.Meter:
        with self._lock:
            meter = _ReloadableMeter(name, args, kwargs, self._lock)
            meter._bind(self._delegate)
            self._meters.append(meter)
        return meter


class _ReloadableMeter(metrics.Meter):
    def __init__(self, name: str, args: tuple, kwargs: dict, lock: threading.Lock):
        super().__init__(name)
        self._args = args
        self._kwargs = kwargs
        self._lock = lock
        self._real: Optional[metrics.Meter] = None
        self._instruments = []

    def _bind(self, provider: metrics.MeterProvider):
        self._real = provider.get_meter(self.name, *self._args, **self._kwargs)
        for instrument in self._instruments:
            instrument._bind(self._real)

    def _create(self, factory: str, args: tuple, kwargs: dict) -> "_ReloadableInstrument":
        with self._lock:
            instrument = _ReloadableInstrument(factory, args, kwargs)
            instrument._bind(self._real)
            self._instruments.append(instrument)
        return instrument

    def create_counter(self, *args: Any, **kwargs: Any):
        return self._create("create_counter", args, kwargs)

    def create_up_down_counter(self, *args: Any, **kwargs: Any):
        return self._create("create_up_down_counter", args, kwargs)

    def create_histogram(self, *args: Any, **kwargs: Any):
        return self._create("create_histogram", args, kwargs)

    def create_gauge(self, *args: Any, **kwargs: Any):
        return self._create("create_gauge", args, kwargs)

    def create_observable_counter(self, *args: Any, **kwargs: Any):
        return self._create("create_observable_counter", args, kwargs)

    def create_observable_up_down_counter(self, *args: Any, **kwargs: Any):
        return self._create("create_observable_up_down_counter", args, kwargs)

    def create_observable_gauge(self, *args: Any, **kwargs: Any):
        return self._create("create_observable_gauge", args, kwargs)


class _ReloadableInstrument:
    # Forwards measurements to the instrument built on the current delegate meter.

    def __init__(self, factory: str, args: tuple, kwargs: dict):
        self._factory = factory
        self._args = args
        self._kwargs = kwargs
        self._real = None

    def _bind(self, meter: metrics.Meter):
        self._real = getattr(meter, self._factory)(*self._args, **self._kwargs)

    def add(self, *args: Any, **kwargs: Any):
        self._real.add(*args, **kwargs)

    def record(self, *args: Any, **kwargs: Any):
        self._real.record(*args, **kwargs)

    def set(self, *args: Any, **kwargs: Any):
        self._real.set(*args, **kwargs)
