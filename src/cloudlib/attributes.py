"""Attribute normalization for search indexing.

Human-entered metadata is stored as lists of strings (SimpleDB attributes
are multi-valued). Alongside each indexable source field we keep two
derived shadow fields used by the query compiler:

  - ``<field>_lowercase``: lowercased copy of each value
  - ``<field>_words``: the lowercase values split into words

plus ``all_words``, the union used for unqualified keyword searches.
"""

from __future__ import annotations

import re

# Fields whose values are lists joined by " and " (BibTeX convention)
NAME_LIST_FIELDS = frozenset({"authors", "editors"})

# Source fields that never get _lowercase/_words shadows
UNINDEXED_FIELDS = frozenset({"url", "doi", "keywords"})

# Bookkeeping attributes written on upload, not entered by the user
FILE_FIELDS = frozenset({"extension", "size", "date-added"})

# Order matters: all_words = keywords + words of these fields
ALL_WORDS_SOURCES: tuple[str, ...] = ("title", "authors", "editors", "booktitle")

ALL_WORDS = "all_words"
LOWERCASE_SUFFIX = "_lowercase"
WORDS_SUFFIX = "_words"

WORD_SEPARATOR = re.compile(r"[\W_]+")


def is_indexed(field: str) -> bool:
    """True if *field* gets derived ``_lowercase``/``_words`` shadows."""
    return field not in UNINDEXED_FIELDS and field not in FILE_FIELDS


def is_derived(field: str) -> bool:
    """True if *field* names a derived shadow field rather than a source field."""
    return (
        field == ALL_WORDS
        or field.endswith(LOWERCASE_SUFFIX)
        or field.endswith(WORDS_SUFFIX)
    )


def split_value(field: str, raw: str | None) -> list[str]:
    """Split free-form text into the stored list of values for *field*.

    Authors and editors are separated by the literal ``" and "``;
    keywords by whitespace. Everything else is a single trimmed value.
    Empty text yields an empty list.
    """
    if raw is None or not raw.strip():
        return []
    if field in NAME_LIST_FIELDS:
        return [part.strip() for part in raw.split(" and ") if part.strip()]
    if field == "keywords":
        return raw.split()
    return [raw.strip()]


def words_of(text: str) -> list[str]:
    """Lowercase *text* and split on runs of whitespace and punctuation."""
    return [w for w in WORD_SEPARATOR.split(text.lower()) if w]


def derive_index(field: str, values: list[str]) -> dict[str, list[str]]:
    """Compute the shadow fields for one source field.

    Returns an empty dict for unindexed fields.
    """
    if not is_indexed(field):
        return {}
    lowercase = [v.lower() for v in values]
    words = [w for v in lowercase for w in words_of(v)]
    return {
        field + LOWERCASE_SUFFIX: lowercase,
        field + WORDS_SUFFIX: words,
    }


def compute_all_words(
    source: dict[str, list[str]], derived: dict[str, list[str]]
) -> list[str]:
    """Keywords followed by the words of title, authors, editors and booktitle."""
    result = list(source.get("keywords") or [])
    for field in ALL_WORDS_SOURCES:
        result.extend(derived.get(field + WORDS_SUFFIX) or [])
    return result


def show_value(field: str, values: list[str] | None) -> str:
    """Render stored values back to the text a user would type.

    Inverse of :func:`split_value`: keywords joined by spaces, name lists
    joined by ``" and "``, otherwise the first value.
    """
    if not values:
        return ""
    if field == "keywords":
        return " ".join(values)
    if field in NAME_LIST_FIELDS:
        return " and ".join(values)
    return values[0]
