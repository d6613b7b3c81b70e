class LocationError(Exception):
    """Base class for location resolution failures."""


class ProviderError(LocationError):
    """Network or provider failure while talking to the geocoding service."""


class CredentialError(ProviderError):
    """Missing or invalid provider credential. Raised before any network call."""


class NoResultsError(LocationError):
    """The provider returned zero matches for a query."""

    def __init__(self, query: str):
        super().__init__(f"No results for '{query}'")
        self.query = query


class PermissionDeniedError(LocationError):
    """The user refused to share the device location."""


class UnavailableError(LocationError):
    """Device location is not supported or could not be obtained."""


class SupersededError(LocationError):
    """A newer request of the same resolution session replaced this one."""
