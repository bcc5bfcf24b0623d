"""Exception types raised by the archiver."""


class ArchiverError(Exception):
    """Base class for all archiver errors."""


class MalformedURL(ArchiverError):
    """A candidate link could not be turned into a fetchable absolute URL."""


class FetchFailure(ArchiverError):
    """A single URL could not be fetched (network error, timeout, ...)."""

    def __init__(self, url: str, message: str):
        super().__init__(f"{message} ({url})")
        self.url = url
        self.message = message


class PersistenceFailure(ArchiverError):
    """A directory or file under the output root could not be written."""

    def __init__(self, path: str, message: str):
        super().__init__(f"{message} ({path})")
        self.path = path
        self.message = message


class SessionInitFailure(ArchiverError):
    """The browser/network session could not be started."""
