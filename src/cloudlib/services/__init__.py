"""Services facade for the cloud library.

Public API boundary for the CLI and other front ends.
"""

from cloudlib.services.library import LibraryService, QueryPage

__all__ = ["LibraryService", "QueryPage"]
