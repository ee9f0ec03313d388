"""Personal document library stored in S3 with searchable SimpleDB metadata."""

__version__ = "0.1.0"

from cloudlib.entry import Entry
from cloudlib.models import EntryType, LibraryConfig
from cloudlib.query import CompiledQuery, compile_query

__all__ = [
    "CompiledQuery",
    "Entry",
    "EntryType",
    "LibraryConfig",
    "compile_query",
    "__version__",
]
