class SeniorStoreError(Exception):
    """Base class for failures talking to the senior document store."""


class TransportError(SeniorStoreError):
    """Raised on network, database, or permission failures."""


class NotAuthenticatedError(SeniorStoreError):
    """Raised when an operation needs a signed-in identity and there is none."""
