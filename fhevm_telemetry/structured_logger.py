import json
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TextIO
from opentelemetry import trace


class StructuredLogger:
    def __init__(self, service_name: str, stream: Optional[TextIO] = None):
        self.service_name = service_name
        self._stream = stream

    def _extract_trace_info(self) -> tuple[Optional[str], Optional[str]]:
        """Extract trace and span IDs from the current OpenTelemetry context."""
        span = trace.get_current_span()
        if span and span.get_span_context().is_valid:
            span_context = span.get_span_context()
            trace_id = format(span_context.trace_id, '032x')
            span_id = format(span_context.span_id, '016x')
            return trace_id, span_id
        return None, None

    def _log(self, level: str, message: str, fields: Optional[Dict[str, Any]] = None):
        """Write one JSON log line."""
        trace_id, span_id = self._extract_trace_info()

        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": level,
            "service_name": self.service_name,
            "message": message
        }

        if trace_id:
            log_entry["trace_id"] = trace_id
        if span_id:
            log_entry["span_id"] = span_id
        if fields:
            log_entry["fields"] = fields

        # stdout is looked up per call so redirected streams are honoured
        stream = self._stream if self._stream is not None else sys.stdout
        print(json.dumps(log_entry, default=str), file=stream, flush=True)

    def debug(self, message: str, **kwargs):
        self._log("DEBUG", message, kwargs if kwargs else None)

    def info(self, message: str, **kwargs):
        self._log("INFO", message, kwargs if kwargs else None)

    def warning(self, message: str, **kwargs):
        self._log("WARN", message, kwargs if kwargs else None)

    def error(self, message: str, **kwargs):
        self._log("ERROR", message, kwargs if kwargs else None)

    def fatal(self, message: str, **kwargs):
        """Log an error the process will not recover from."""
        self._log("FATAL", message, kwargs if kwargs else None)
