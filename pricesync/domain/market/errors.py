"""
Domain-specific errors for the market-price bounded context.

All errors raised from the domain and application layers are defined here.
They are mapped to HTTP responses at the interface layer.
No framework imports allowed.
"""


class PriceSyncError(Exception):
    """Base error for all market-price errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(self.message)


class StoreUnavailableError(PriceSyncError):
    """Raised when the persistence layer is not connected."""

    def __init__(self) -> None:
        super().__init__("Database not connected")


class ProviderSessionError(PriceSyncError):
    """Raised when a market-data provider session cannot be established."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Provider session unavailable: {reason}")
        self.reason = reason


class PriceFetchError(PriceSyncError):
    """Raised when the provider returns no usable price for an instrument."""

    def __init__(self, instrument_key: str, reason: str) -> None:
        super().__init__(f"{instrument_key}: {reason}")
        self.instrument_key = instrument_key
        self.reason = reason


class UnknownUpdateTypeError(PriceSyncError):
    """Raised when a manual trigger names an unsupported update type."""

    def __init__(self, update_type: str) -> None:
        super().__init__(f"Unknown update type: {update_type}")
        self.update_type = update_type


class InvalidTriggerSpecError(PriceSyncError):
    """Raised when a crontab expression or timezone cannot be parsed."""

    def __init__(self, spec: str, reason: str) -> None:
        super().__init__(f"Invalid trigger spec {spec!r}: {reason}")
        self.spec = spec
        self.reason = reason


class JobNotFoundError(PriceSyncError):
    """Raised when an operator action names a job that is not registered."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Job not found: {name}")
        self.name = name
