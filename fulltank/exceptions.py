"""Exceptions for the FullTank service."""


class FullTankError(Exception):
    """Base class for FullTank errors."""


class ConfigurationError(FullTankError):
    """A provider is missing the credentials it needs."""


class ProviderError(FullTankError):
    """An upstream provider returned something unusable."""


class ValidationError(FullTankError):
    """A client request body could not be accepted."""


class StoreError(FullTankError):
    """The local document store could not be persisted."""
