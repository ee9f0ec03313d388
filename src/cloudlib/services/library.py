"""Library service: entry lifecycle on top of a :class:`LibraryClient`.

Each operation is a short sequence of remote calls. Nothing is cached and
nothing is retried; a failed call aborts the operation and its error
propagates to the caller. Multi-step operations are not transactional:
if the metadata write of an upload fails, the blob stays orphaned.
"""

from __future__ import annotations

import hashlib
import json
import logging
import shutil
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import IO

from cloudlib.client import LibraryClient
from cloudlib.entry import Entry
from cloudlib.exceptions import NotFoundError
from cloudlib.models import LibraryConfig
from cloudlib.query import ALL_ITEMS, CompiledQuery, compile_query

logger = logging.getLogger(__name__)

HASH_CHUNK_SIZE = 65536


@dataclass
class QueryPage:
    """One page of search results plus the token for the next page."""

    entries: list[Entry]
    next_token: str | None = None

    @property
    def has_more(self) -> bool:
        return bool(self.next_token)


def content_name(path: Path, filename: str | None = None) -> str:
    """``sha1(contents) + extension`` for a local file."""
    sha1 = hashlib.sha1()
    with open(path, "rb") as f:
        while chunk := f.read(HASH_CHUNK_SIZE):
            sha1.update(chunk)
    return sha1.hexdigest() + Path(filename or path.name).suffix


class LibraryService:
    """Operations on the entries of one library.

    Usage::

        svc = LibraryService(config, AwsLibraryClient(config))
        entry = svc.add_file(Path("turing.pdf"), attributes={"title": "On Computable Numbers"})
        page = svc.query("au=turing")
    """

    def __init__(self, config: LibraryConfig, client: LibraryClient) -> None:
        self.config = config
        self._client = client

    # ------------------------------------------------------------------
    # Library management
    # ------------------------------------------------------------------

    def create_library(self) -> None:
        self._client.create_library()

    def delete_library(self) -> None:
        """Delete the library. All contents and metadata are lost."""
        self._client.delete_library()

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    def add_file(
        self,
        path: Path,
        filename: str | None = None,
        attributes: dict[str, str] | None = None,
    ) -> Entry:
        """Upload a file and save its metadata.

        Args:
            path: Local file to upload.
            filename: Original filename when *path* is a temporary copy;
                only its extension is used.
            attributes: Free-form field values, normalized via
                :meth:`Entry.set_attribute`.

        Returns:
            The saved entry.
        """
        path = Path(path)
        entry = Entry(name=content_name(path, filename))
        for field_name, raw in (attributes or {}).items():
            entry.set_attribute(field_name, raw)
        if entry.extension:
            entry.attributes["extension"] = [entry.extension]
        entry.attributes["size"] = [str(path.stat().st_size)]
        entry.attributes["date-added"] = [date.today().isoformat()]

        with open(path, "rb") as f:
            self._client.put(entry.name, f)
        self.save(entry)
        logger.info("Added %s as %s", path.name, entry.name)
        return entry

    def find_by_name(self, name: str) -> Entry:
        """Load an entry by name.

        Raises:
            NotFoundError: If the library has no metadata for *name*.
        """
        item = self._client.get_attributes(name)
        if not item:
            raise NotFoundError(f"Item not found: {name}")
        return Entry.from_item(name, item)

    def query(
        self,
        text: str = "",
        page_size: int | None = None,
        token: str | None = None,
    ) -> QueryPage:
        """Run a search and load the matching entries for one page.

        Pass the returned ``next_token`` back unchanged to get the
        following page.

        Raises:
            QueryParseError: If *text* has an unterminated quote.
        """
        return self._run(compile_query(text), page_size, token)

    def _run(
        self, compiled: CompiledQuery, page_size: int | None, token: str | None
    ) -> QueryPage:
        names, next_token = self._client.query(
            compiled, page_size or self.config.page_size, token
        )
        entries = [
            Entry.from_item(name, self._client.get_attributes(name)) for name in names
        ]
        return QueryPage(entries=entries, next_token=next_token)

    def iter_entries(self, text: str | None = "") -> Iterator[Entry]:
        """Yield every entry matching *text*, following continuation tokens.

        ``None`` walks every item, including entries without a year.
        """
        compiled = ALL_ITEMS if text is None else compile_query(text)
        token: str | None = None
        while True:
            page = self._run(compiled, None, token)
            yield from page.entries
            if not page.has_more:
                return
            token = page.next_token

    def save(self, entry: Entry) -> None:
        """Write the entry's metadata, replacing stored values.

        Fields cleared since the last save are deleted from the store.
        """
        self._client.put_attributes(entry.name, entry.to_item(), replace=True)
        removed = entry.removed_fields()
        if removed:
            self._client.delete_attributes(entry.name, removed)
        entry.cleared.clear()
        logger.debug("Saved %s (%d fields removed)", entry.name, len(removed))

    def delete(self, entry: Entry) -> None:
        """Delete both the stored file and its metadata."""
        self._client.delete(entry.name)
        self._client.delete_attributes(entry.name)
        logger.info("Deleted %s", entry.name)

    def download(self, entry: Entry, path: Path | None = None) -> Path:
        """Save the entry's contents locally.

        An existing file at *path* is first backed up as ``path~``.

        Returns:
            The path written (defaults to the entry's friendly filename).
        """
        path = Path(path or entry.friendly_filename())
        if path.exists():
            backup = path.with_name(path.name + "~")
            logger.warning("Backing up existing %s as %s", path, backup)
            shutil.copy2(path, backup)
        path.write_bytes(self._client.get(entry.name))
        return path

    def url(self, entry: Entry) -> str:
        """Temporary download URL for the entry's contents."""
        return self._client.url(entry.name, self.config.url_expiry_seconds)

    # ------------------------------------------------------------------
    # Export / import
    # ------------------------------------------------------------------

    def dump(self, stream: IO[str]) -> int:
        """Write every entry's source metadata as JSON lines.

        Returns:
            Number of entries written.
        """
        count = 0
        for entry in self.iter_entries(None):
            record = {"name": entry.name, "attributes": entry.attributes}
            stream.write(json.dumps(record, ensure_ascii=False, sort_keys=True) + "\n")
            count += 1
        logger.info("Dumped %d entries from %s", count, self.config.library_name)
        return count

    def restore(self, stream: IO[str]) -> int:
        """Re-save metadata from a :meth:`dump` stream, rebuilding search fields.

        Only metadata is restored; file contents must still be in the bucket.

        Returns:
            Number of entries restored.
        """
        count = 0
        for line in stream:
            line = line.strip()
            if not line:
                continue
            record = json.loads(line)
            entry = Entry(name=record["name"], attributes={
                k: list(v) for k, v in record["attributes"].items()
            })
            entry.reindex()
            self.save(entry)
            count += 1
        logger.info("Restored %d entries into %s", count, self.config.library_name)
        return count
