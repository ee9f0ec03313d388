"""Data models and enums for the cloud library."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class EntryType(str, Enum):
    """Bibliographic type of a library entry."""

    ARTICLE = "article"
    BOOK = "book"
    CHAPTER = "chapter"
    INCOLLECTION = "incollection"
    UNPUBLISHED = "unpublished"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str | None) -> EntryType:
        """Map a stored or user-entered string onto a member, UNKNOWN if unrecognized."""
        if not value:
            return cls.UNKNOWN
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.UNKNOWN


COMMON_FIELDS: tuple[str, ...] = ("title", "authors", "year")
TRAILING_FIELDS: tuple[str, ...] = ("keywords", "url", "doi", "comments")

TYPE_FIELDS: dict[EntryType, tuple[str, ...]] = {
    EntryType.ARTICLE: ("journal", "volume", "pages"),
    EntryType.BOOK: ("publisher", "address"),
    EntryType.CHAPTER: ("booktitle", "chapter", "publisher", "address", "pages"),
    EntryType.INCOLLECTION: (
        "booktitle", "chapter", "publisher", "address", "editors", "pages",
    ),
    # Unpublished entries carry only the common fields
    EntryType.UNPUBLISHED: (),
    EntryType.UNKNOWN: (
        "journal", "volume", "booktitle", "editors", "chapter",
        "publisher", "address", "pages",
    ),
}


def fields_for(entry_type: EntryType | str | None) -> list[str]:
    """Return the metadata fields relevant to an entry type, in display order."""
    if not isinstance(entry_type, EntryType):
        entry_type = EntryType.parse(entry_type)
    return [*COMMON_FIELDS, *TYPE_FIELDS[entry_type], *TRAILING_FIELDS]


@dataclass(frozen=True)
class LibraryConfig:
    """Connection settings for one library.

    ``library_name`` names both the S3 bucket holding file contents and
    the SimpleDB domain holding metadata.
    """

    library_name: str
    access_key_id: str | None = None
    secret_access_key: str | None = None
    region: str = "us-east-1"
    page_size: int = 10
    url_expiry_seconds: int = 600  # 10 minutes
