"""Library entry: bibliographic metadata for one stored file.

An entry's ``name`` is ``sha1(contents) + extension``. It is both the S3
key of the file and the SimpleDB item name of its metadata, so two
entries can never hold identical contents under the same extension.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import PurePosixPath

from cloudlib.attributes import (
    ALL_WORDS,
    compute_all_words,
    derive_index,
    is_derived,
    is_indexed,
    show_value,
    split_value,
)
from cloudlib.models import EntryType, fields_for

FILENAME_SEPARATOR = re.compile(r"[\W_]+")

BIBTEX_TYPES: dict[EntryType, str] = {
    EntryType.ARTICLE: "ARTICLE",
    EntryType.BOOK: "BOOK",
    EntryType.CHAPTER: "INBOOK",
    EntryType.INCOLLECTION: "INCOLLECTION",
    EntryType.UNPUBLISHED: "UNPUBLISHED",
    EntryType.UNKNOWN: "MISC",
}


def last_name_of(author: str) -> str:
    """Return the surname of an author.

    ``"Smith, John"`` and ``"John Smith"`` both give ``"Smith"``.
    """
    if "," in author:
        return author.split(",", 1)[0].strip()
    parts = author.split()
    return parts[-1] if parts else ""


@dataclass
class Entry:
    """One bibliographic record.

    ``attributes`` holds the source fields as entered by the user (plus
    upload bookkeeping); ``derived`` holds the search shadow fields. The
    two are kept consistent by every mutation.
    """

    name: str
    attributes: dict[str, list[str]] = field(default_factory=dict)
    derived: dict[str, list[str]] = field(default_factory=lambda: {ALL_WORDS: []})
    cleared: set[str] = field(default_factory=set, repr=False)

    # ------------------------------------------------------------------
    # Store conversion
    # ------------------------------------------------------------------

    @classmethod
    def from_item(cls, name: str, item: dict[str, list[str]]) -> Entry:
        """Rehydrate an entry from an attribute-store item.

        Derived fields are recomputed from the source fields. Stored derived
        fields with no source left are marked cleared so the next save
        removes them.
        """
        attributes = {k: list(v) for k, v in item.items() if not is_derived(k)}
        entry = cls(name=name, attributes=attributes)
        entry.reindex()
        entry.cleared.update(
            k for k in item if is_derived(k) and not entry.derived.get(k)
        )
        return entry

    def to_item(self) -> dict[str, list[str]]:
        """Merge source and derived fields into one attribute-store item."""
        item = {k: list(v) for k, v in self.attributes.items() if v}
        item.update({k: list(v) for k, v in self.derived.items() if v})
        return item

    def removed_fields(self) -> list[str]:
        """Names to delete from the store on the next save (cleared or now empty)."""
        names = set(self.cleared)
        names.update(k for k, v in self.attributes.items() if not v)
        names.update(k for k, v in self.derived.items() if not v)
        return sorted(names - set(self.to_item()))

    # ------------------------------------------------------------------
    # Attribute normalization
    # ------------------------------------------------------------------

    def set_attribute(self, field_name: str, raw: str | None) -> None:
        """Set a field from free-form text and recompute its search fields.

        Empty text clears the field. No I/O; call ``LibraryService.save``
        to persist.
        """
        values = split_value(field_name, raw)
        if values:
            self.attributes[field_name] = values
            self.cleared.discard(field_name)
        else:
            self.attributes.pop(field_name, None)
            self.cleared.add(field_name)

        shadows = derive_index(field_name, values)
        for shadow, shadow_values in shadows.items():
            if shadow_values:
                self.derived[shadow] = shadow_values
                self.cleared.discard(shadow)
            else:
                self.derived.pop(shadow, None)
                self.cleared.add(shadow)

        self.derived[ALL_WORDS] = compute_all_words(self.attributes, self.derived)

    def show_attribute(self, field_name: str) -> str:
        """Render a field as the text a user would type to set it."""
        return show_value(field_name, self.attributes.get(field_name))

    def reindex(self) -> None:
        """Recompute every derived field from the source fields."""
        self.derived = {}
        for field_name, values in self.attributes.items():
            if is_indexed(field_name):
                self.derived.update(
                    {k: v for k, v in derive_index(field_name, values).items() if v}
                )
        self.derived[ALL_WORDS] = compute_all_words(self.attributes, self.derived)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def entry_type(self) -> EntryType:
        return EntryType.parse(self.show_attribute("entry_type"))

    @property
    def extension(self) -> str:
        return PurePosixPath(self.name).suffix

    def fields(self) -> list[str]:
        """Metadata fields relevant to this entry's type."""
        return fields_for(self.entry_type)

    # ------------------------------------------------------------------
    # Formatting
    # ------------------------------------------------------------------

    def to_display_string(self) -> str:
        """Human-readable citation, e.g.

        ``Alan Turing, On Computable Numbers (1936). Proc. LMS 42, 230-265.``

        Absent parts are dropped together with their punctuation.
        """
        authors = self.show_attribute("authors")
        title = self.show_attribute("title")
        year = self.show_attribute("year")

        main = " ".join(p for p in (title, f"({year})" if year else "") if p)
        head = ", ".join(p for p in (authors, main) if p)
        if head:
            head += "."
        return " ".join(p for p in (head, self._type_clause()) if p)

    def _type_clause(self) -> str:
        show = self.show_attribute
        pubaddr = ": ".join(p for p in (show("address"), show("publisher")) if p)
        chapter = f"Chapter {show('chapter')}." if show("chapter") else ""
        pages = f"{show('pages')}." if show("pages") else ""
        entry_type = self.entry_type

        if entry_type is EntryType.ARTICLE:
            journal = show("journal")
            if not journal:
                return ""
            source = " ".join(p for p in (journal, show("volume")) if p)
            return f"{source}, {pages}" if pages else f"{source}."

        if entry_type is EntryType.BOOK:
            return f"{pubaddr}." if pubaddr else ""

        if entry_type is EntryType.CHAPTER:
            parts = [f"{pubaddr}." if pubaddr else "", chapter, pages]
            return " ".join(p for p in parts if p)

        if entry_type is EntryType.INCOLLECTION:
            container = [
                p for p in (
                    f"{show('editors')} (eds.)" if show("editors") else "",
                    show("booktitle"),
                ) if p
            ]
            if container:
                source = "In " + ", ".join(container)
                source += f" ({pubaddr})." if pubaddr else "."
            else:
                source = f"{pubaddr}." if pubaddr else ""
            return " ".join(p for p in (source, chapter, pages) if p)

        if entry_type is EntryType.UNPUBLISHED:
            return "(unpublished)."

        return ""

    def __str__(self) -> str:
        return self.to_display_string()

    def citation_key(self) -> str:
        """``Lastname:year`` built from the first author."""
        authors = self.attributes.get("authors") or []
        surname = last_name_of(authors[0]) if authors else "Anonymous"
        return f"{surname}:{self.show_attribute('year')}"

    def to_bibtex(self) -> str:
        """Export the entry as a BibTeX record.

        One line per populated field of the entry's type, then a ``file``
        line naming the stored object. Chapters are exported as INBOOK.
        """
        lines = [
            f"  {field_name:<15} = {{{self.show_attribute(field_name)}}}"
            for field_name in self.fields()
            if self.attributes.get(field_name)
        ]
        lines.append(f"  {'file':<15} = {{{self.name}}}")
        body = ",\n".join(lines)
        return f"@{BIBTEX_TYPES[self.entry_type]}{{{self.citation_key()},\n{body}\n}}"

    def friendly_filename(self) -> str:
        """Readable download name: ``Surname1_Surname2_Title_Words.ext``."""
        surnames = "_".join(last_name_of(a) for a in self.attributes.get("authors") or [])
        title = FILENAME_SEPARATOR.sub("_", self.show_attribute("title"))
        return f"{surnames}_{title}{self.extension}"
