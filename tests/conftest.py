"""Shared pytest fixtures for cloudlib tests.

Provides an in-memory LibraryClient implementing the remote contract
(blob store, attribute store, paged queries with opaque tokens), a
library config, a service wired to the fake client, and sample entries.
"""

from __future__ import annotations

from pathlib import Path
from typing import BinaryIO

import pytest

from cloudlib.entry import Entry
from cloudlib.exceptions import DuplicateLibraryError, NotFoundError
from cloudlib.models import LibraryConfig
from cloudlib.query import CompiledQuery
from cloudlib.services import LibraryService


class FakeLibraryClient:
    """In-memory stand-in for S3 + SimpleDB.

    Query tokens are opaque strings encoding the offset of the next page,
    mimicking SimpleDB's NextToken.
    """

    def __init__(self) -> None:
        self.created = False
        self.blobs: dict[str, bytes] = {}
        self.items: dict[str, dict[str, list[str]]] = {}
        self.queries: list[tuple[CompiledQuery, int, str | None]] = []

    def create_library(self) -> None:
        if self.created:
            raise DuplicateLibraryError("Library 'test-library' already exists")
        self.created = True

    def delete_library(self) -> None:
        self.created = False
        self.blobs.clear()
        self.items.clear()

    def put(self, name: str, data: bytes | BinaryIO) -> None:
        self.blobs[name] = data if isinstance(data, bytes) else data.read()

    def get(self, name: str) -> bytes:
        if name not in self.blobs:
            raise NotFoundError(f"NoSuchKey: {name}")
        return self.blobs[name]

    def url(self, name: str, expires_in: int) -> str:
        return f"https://test-library.s3.amazonaws.com/{name}?Expires={expires_in}"

    def delete(self, name: str) -> None:
        self.blobs.pop(name, None)

    def put_attributes(
        self, name: str, mapping: dict[str, list[str]], replace: bool = True
    ) -> None:
        item = self.items.setdefault(name, {})
        for key, values in mapping.items():
            if replace or key not in item:
                item[key] = list(values)
            else:
                item[key].extend(values)

    def get_attributes(self, name: str) -> dict[str, list[str]]:
        return {k: list(v) for k, v in self.items.get(name, {}).items()}

    def delete_attributes(
        self, name: str, attribute_names: list[str] | None = None
    ) -> None:
        if attribute_names is None:
            self.items.pop(name, None)
            return
        for key in attribute_names:
            self.items.get(name, {}).pop(key, None)

    def query(
        self, compiled: CompiledQuery, page_size: int, token: str | None = None
    ) -> tuple[list[str], str | None]:
        self.queries.append((compiled, page_size, token))
        names = [n for n, item in self.items.items() if compiled.matches(item)]
        if compiled.sort_field:
            names.sort(key=lambda n: (self.items[n].get(compiled.sort_field) or [""])[0])
        offset = int(token.removeprefix("offset:")) if token else 0
        page = names[offset:offset + page_size]
        more = offset + page_size < len(names)
        return page, f"offset:{offset + page_size}" if more else None


@pytest.fixture
def fake_client() -> FakeLibraryClient:
    return FakeLibraryClient()


@pytest.fixture
def library_config() -> LibraryConfig:
    return LibraryConfig(
        library_name="test-library",
        access_key_id="AKIDTEST",
        secret_access_key="secret",
        page_size=2,
    )


@pytest.fixture
def service(library_config: LibraryConfig, fake_client: FakeLibraryClient) -> LibraryService:
    return LibraryService(library_config, fake_client)


def make_entry(name: str = "abc123.pdf", **fields: str) -> Entry:
    """Helper to build an entry through the normalizer."""
    entry = Entry(name=name)
    for field_name, raw in fields.items():
        entry.set_attribute(field_name, raw)
    return entry


@pytest.fixture
def turing_entry() -> Entry:
    """The article used in the end-to-end display scenario."""
    return make_entry(
        "1111aaaa.pdf",
        entry_type="article",
        title="On Computable Numbers",
        authors="Alan Turing",
        year="1936",
        journal="Proc. LMS",
        volume="42",
        pages="230-265",
    )


@pytest.fixture
def populated(service: LibraryService, fake_client: FakeLibraryClient) -> FakeLibraryClient:
    """Fake store holding five saved entries (page size 2 => three pages)."""
    samples = [
        make_entry("e1.pdf", entry_type="book", title="Principia Mathematica",
                   authors="Alfred North Whitehead and Bertrand Russell", year="1910",
                   publisher="Cambridge University Press", address="Cambridge"),
        make_entry("e2.pdf", entry_type="article", title="On Denoting",
                   authors="Bertrand Russell", year="1905", journal="Mind", volume="14"),
        make_entry("e3.pdf", entry_type="article", title="On Computable Numbers",
                   authors="Alan Turing", year="1936", journal="Proc. LMS"),
        make_entry("e4.djvu", entry_type="book", title="Logic and Knowledge",
                   authors="Bertrand Russell", year="1956", keywords="logic atomism"),
        make_entry("e5.pdf", entry_type="article", title="Computing Machinery and Intelligence",
                   authors="Alan Turing", year="1950", journal="Mind", volume="59"),
    ]
    for entry in samples:
        fake_client.put(entry.name, b"contents of " + entry.name.encode())
        service.save(entry)
    return fake_client


@pytest.fixture
def sample_file(tmp_path: Path) -> Path:
    path = tmp_path / "turing.pdf"
    path.write_bytes(b"%PDF-1.4 on computable numbers")
    return path
