"""sentrybridge exceptions.

Only construction (settings, DSN, transport configuration) and explicit
close may raise. Runtime failures on the event path are retried, logged,
or counted - they never propagate out of SentrySink.emit().
"""


class SentryBridgeError(Exception):
    """Base class for all sentrybridge errors."""


class ConfigurationError(SentryBridgeError):
    """Raised when the sink cannot be constructed from its configuration.

    Attributes:
        setting: Name of the offending setting (e.g. "dsn")
        message: Human-readable error description
    """

    def __init__(self, setting: str, message: str) -> None:
        self.setting = setting
        self.message = message
        super().__init__(f"Invalid setting '{setting}': {message}")


class TransportError(SentryBridgeError):
    """Raised when a transport encounters a configuration or discovery error.

    This is raised during transport setup (configure/discovery), NOT during
    capture. Capture must not raise - it returns None instead.

    Attributes:
        transport_name: Name of the transport that failed
        message: Human-readable error description
    """

    def __init__(self, transport_name: str, message: str) -> None:
        self.transport_name = transport_name
        self.message = message
        super().__init__(f"Transport '{transport_name}' failed: {message}")


class RetriesExhausted(SentryBridgeError):
    """Raised by the retry controller when every attempt returned no id.

    Attributes:
        attempts: Total attempts made (first try included)
        description: What was being submitted (the event message)
    """

    def __init__(self, attempts: int, description: str) -> None:
        self.attempts = attempts
        self.description = description
        super().__init__(f"Failed to capture event after {attempts} attempts: {description}")
