class BootstrapError(Exception):
    """Raised when observability cannot be initialized at startup."""


class ConfigError(BootstrapError, ValueError):
    pass


class CollectorConnectionError(BootstrapError):
    pass


class ExporterError(BootstrapError):
    pass


class ResourceError(BootstrapError):
    pass
