"""Tests for entry formatting: field tables, display strings, BibTeX, filenames."""

from __future__ import annotations

import pytest

from cloudlib.entry import Entry, last_name_of
from cloudlib.models import EntryType, fields_for


def _entry(name: str = "abc123.pdf", **fields: str) -> Entry:
    entry = Entry(name=name)
    for field_name, raw in fields.items():
        entry.set_attribute(field_name, raw)
    return entry


# ---------------------------------------------------------------------------
# Entry types and field tables
# ---------------------------------------------------------------------------


class TestEntryType:
    def test_parse_known(self):
        assert EntryType.parse("Chapter") is EntryType.CHAPTER

    @pytest.mark.parametrize("value", [None, "", "thesis"])
    def test_parse_unknown(self, value):
        assert EntryType.parse(value) is EntryType.UNKNOWN

    def test_article_fields(self):
        assert fields_for("article") == [
            "title", "authors", "year", "journal", "volume", "pages",
            "keywords", "url", "doi", "comments",
        ]

    def test_incollection_fields(self):
        assert fields_for(EntryType.INCOLLECTION)[3:9] == [
            "booktitle", "chapter", "publisher", "address", "editors", "pages",
        ]

    def test_unknown_type_gets_every_field(self):
        assert fields_for("whatever")[3:11] == [
            "journal", "volume", "booktitle", "editors", "chapter",
            "publisher", "address", "pages",
        ]

    def test_entry_fields_follow_type(self):
        assert _entry(entry_type="book").fields() == fields_for(EntryType.BOOK)


# ---------------------------------------------------------------------------
# last_name_of
# ---------------------------------------------------------------------------


class TestLastNameOf:
    def test_comma_form(self):
        assert last_name_of("Smith, John") == "Smith"

    def test_natural_order(self):
        assert last_name_of("John Smith") == "Smith"

    def test_multiword_surname_before_comma(self):
        assert last_name_of("van Dyke, Jan") == "van Dyke"

    def test_single_name(self):
        assert last_name_of("Plato") == "Plato"


# ---------------------------------------------------------------------------
# to_display_string
# ---------------------------------------------------------------------------


class TestDisplayString:
    def test_article_end_to_end(self, turing_entry):
        assert turing_entry.to_display_string() == (
            "Alan Turing, On Computable Numbers (1936). Proc. LMS 42, 230-265."
        )
        assert str(turing_entry) == turing_entry.to_display_string()

    def test_article_without_journal_omits_clause(self, turing_entry):
        turing_entry.set_attribute("journal", "")
        assert turing_entry.to_display_string() == "Alan Turing, On Computable Numbers (1936)."

    def test_article_without_volume_or_pages(self):
        entry = _entry(entry_type="article", title="On Denoting", authors="Bertrand Russell",
                       year="1905", journal="Mind")
        assert entry.to_display_string() == "Bertrand Russell, On Denoting (1905). Mind."

    def test_no_authors_no_year(self):
        entry = _entry(entry_type="unknown", title="Anonymous Notes")
        assert entry.to_display_string() == "Anonymous Notes."

    def test_book(self):
        entry = _entry(entry_type="book", title="Principia Mathematica",
                       authors="Alfred North Whitehead and Bertrand Russell", year="1910",
                       address="Cambridge", publisher="Cambridge University Press")
        assert entry.to_display_string() == (
            "Alfred North Whitehead and Bertrand Russell, Principia Mathematica (1910). "
            "Cambridge: Cambridge University Press."
        )

    def test_book_publisher_only(self):
        entry = _entry(entry_type="book", title="T", year="2000", publisher="Pub")
        assert entry.to_display_string() == "T (2000). Pub."

    def test_chapter(self):
        entry = _entry(entry_type="chapter", title="Intro", authors="A. Author", year="2001",
                       publisher="Pub", address="City", chapter="3", pages="1-20")
        assert entry.to_display_string() == (
            "A. Author, Intro (2001). City: Pub. Chapter 3. 1-20."
        )

    def test_chapter_without_publication_data(self):
        entry = _entry(entry_type="chapter", title="Intro", year="2001", chapter="3")
        assert entry.to_display_string() == "Intro (2001). Chapter 3."

    def test_incollection(self):
        entry = _entry(entry_type="incollection", title="Essay", authors="A. Author",
                       year="1999", editors="E. One and E. Two", booktitle="The Book",
                       address="City", publisher="Pub", pages="5-9")
        assert entry.to_display_string() == (
            "A. Author, Essay (1999). In E. One and E. Two (eds.), The Book (City: Pub). 5-9."
        )

    def test_incollection_without_editors_or_publisher(self):
        entry = _entry(entry_type="incollection", title="Essay", year="1999",
                       booktitle="The Book", chapter="2")
        assert entry.to_display_string() == "Essay (1999). In The Book. Chapter 2."

    def test_unpublished(self):
        entry = _entry(entry_type="unpublished", title="Draft", authors="A. Author")
        assert entry.to_display_string() == "A. Author, Draft. (unpublished)."

    def test_unknown_type_has_no_trailing_clause(self):
        entry = _entry(title="T", year="2000", journal="J")
        assert entry.to_display_string() == "T (2000)."


# ---------------------------------------------------------------------------
# to_bibtex / friendly_filename
# ---------------------------------------------------------------------------


class TestBibtex:
    def test_article_record(self, turing_entry):
        turing_entry.set_attribute("keywords", "computability")
        assert turing_entry.to_bibtex() == (
            "@ARTICLE{Turing:1936,\n"
            "  title           = {On Computable Numbers},\n"
            "  authors         = {Alan Turing},\n"
            "  year            = {1936},\n"
            "  journal         = {Proc. LMS},\n"
            "  volume          = {42},\n"
            "  pages           = {230-265},\n"
            "  keywords        = {computability},\n"
            "  file            = {1111aaaa.pdf}\n"
            "}"
        )

    def test_chapter_exported_as_inbook(self):
        entry = _entry(entry_type="chapter", title="Intro", authors="Smith, John", year="2001")
        record = entry.to_bibtex()
        assert record.startswith("@INBOOK{Smith:2001,\n")
        assert entry.show_attribute("entry_type") == "chapter"

    def test_key_uses_first_author(self):
        entry = _entry(entry_type="book", title="PM",
                       authors="Alfred North Whitehead and Bertrand Russell", year="1910")
        assert entry.citation_key() == "Whitehead:1910"

    def test_fields_outside_type_are_not_exported(self):
        entry = _entry(entry_type="book", title="T", journal="Ignored")
        assert "journal" not in entry.to_bibtex()

    def test_unknown_type_is_misc(self):
        assert _entry(title="T").to_bibtex().startswith("@MISC{Anonymous:,")


class TestFriendlyFilename:
    def test_authors_and_title(self):
        entry = _entry("abc.pdf", title="Principia Mathematica, Vol. 1",
                       authors="Alfred North Whitehead and Russell, Bertrand")
        assert entry.friendly_filename() == "Whitehead_Russell_Principia_Mathematica_Vol_1.pdf"

    def test_turing(self, turing_entry):
        assert turing_entry.friendly_filename() == "Turing_On_Computable_Numbers.pdf"


# ---------------------------------------------------------------------------
# Store conversion
# ---------------------------------------------------------------------------


class TestItemConversion:
    def test_from_item_splits_source_and_derived(self, turing_entry):
        item = turing_entry.to_item()
        assert item["title_words"] == ["on", "computable", "numbers"]
        restored = Entry.from_item(turing_entry.name, item)
        assert restored.attributes == turing_entry.attributes
        assert restored.derived == turing_entry.derived

    def test_from_item_rebuilds_stale_index(self):
        item = {"title": ["New Title"], "title_words": ["old"], "all_words": ["old"]}
        entry = Entry.from_item("x.pdf", item)
        assert entry.derived["title_words"] == ["new", "title"]
        assert entry.derived["all_words"] == ["new", "title"]

    def test_from_item_marks_orphaned_shadows_cleared(self):
        item = {"title": ["Logic"], "journal_words": ["mind"], "all_words": ["logic"]}
        entry = Entry.from_item("x.pdf", item)
        assert "journal_words" not in entry.derived
        assert entry.removed_fields() == ["journal_words"]

    def test_removed_fields_after_clear(self, turing_entry):
        turing_entry.set_attribute("journal", None)
        assert turing_entry.removed_fields() == ["journal", "journal_lowercase", "journal_words"]
