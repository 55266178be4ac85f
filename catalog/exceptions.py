"""
Error taxonomy for the catalog search and population layers.

Local store failures are not wrapped here: Django's DatabaseError propagates
unchanged and is turned into a 503 by the API layer. Everything below is raised
by the external tiers and handled inside the population engine.
"""


class CatalogError(Exception):
    """Base class for catalog search errors."""


class ConfigurationMissing(CatalogError):
    """Raised when a remote service is used without its credentials."""


class BudgetExceeded(CatalogError):
    """Raised when the daily external call budget has been used up."""

    def __init__(self, used: int, limit: int):
        self.used = used
        self.limit = limit
        super().__init__(f"Daily API limit reached ({used}/{limit})")


class RemoteUnavailable(CatalogError):
    """Raised on network errors, timeouts and non-2xx responses."""

    def __init__(self, message: str, status_code=None):
        self.status_code = status_code
        super().__init__(message)


class MalformedResponse(RemoteUnavailable):
    """Raised when a remote service answers with an unexpected shape."""


class PromotionFailure(CatalogError):
    """Raised when a single external candidate cannot be promoted."""

    def __init__(self, name: str, brand: str, reason: str = ""):
        self.name = name
        self.brand = brand
        super().__init__(f"Could not promote {name!r} by {brand!r}: {reason}")
