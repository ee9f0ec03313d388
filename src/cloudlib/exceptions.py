"""Exception types raised by the library core.

The core never retries or reconciles; these propagate to the CLI, which
is the only layer that reports them.
"""


class CloudlibError(Exception):
    """Base class for all library errors."""


class NotFoundError(CloudlibError):
    """Raised when a lookup by name finds no blob or metadata record."""


class QueryParseError(CloudlibError, ValueError):
    """Raised when a search string cannot be tokenized (e.g. unterminated quote)."""


class DuplicateLibraryError(CloudlibError):
    """Raised when creating a library whose bucket name is already taken."""


class RemoteUnavailableError(CloudlibError):
    """Raised when a call to S3 or SimpleDB fails or times out."""


class AttributeLimitError(CloudlibError, ValueError):
    """Raised when an item exceeds the attribute store's size limits."""
