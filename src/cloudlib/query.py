"""Search-string compiler for SimpleDB metadata queries.

Grammar (all clauses are ANDed, there is no OR/NOT)::

    logic                  any indexed word (title, authors, editors, booktitle, keywords)
    ti=logic               word in title
    au='Russell Whitehead' both words in authors
    ye>1950 ye<1970        year range

Prefixes: ti title, au authors, jo journal, bo booktitle, pu publisher,
ad address, ed editors, ye year. Quoted values mean "all words present",
not phrase matching, because only word-level index fields are stored.

Every compiled query sorts by year ascending. SimpleDB only sorts on an
attribute that appears in a predicate, so an ``exists`` clause on year is
added when the user gave no year clause. Entries without a year are
therefore never returned by a search.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from cloudlib.attributes import ALL_WORDS, WORDS_SUFFIX
from cloudlib.exceptions import QueryParseError

logger = logging.getLogger(__name__)

FIELD_PREFIXES: dict[str, str] = {
    "ti": "title",
    "au": "authors",
    "jo": "journal",
    "bo": "booktitle",
    "pu": "publisher",
    "ad": "address",
    "ed": "editors",
    "ye": "year",
}

COMPARISONS = frozenset({"=", "<", ">"})
EXISTS = "exists"

SORT_FIELD = "year"

TOKEN_PATTERN = re.compile(r"^(?P<prefix>[a-z]{2})(?P<op>[=<>])(?P<value>.*)$", re.DOTALL)


@dataclass(frozen=True)
class Clause:
    """One predicate against a (multi-valued) attribute."""

    field: str
    operator: str
    value: str | None = None

    def matches(self, values: list[str] | None) -> bool:
        """Evaluate the clause the way SimpleDB does: true if any value satisfies it."""
        if not values:
            return False
        if self.operator == EXISTS:
            return True
        if self.operator == "=":
            return any(v == self.value for v in values)
        if self.operator == "<":
            return any(v < self.value for v in values)
        if self.operator == ">":
            return any(v > self.value for v in values)
        raise ValueError(f"Unknown operator '{self.operator}'")

    def to_select(self) -> str:
        name = quote_name(self.field)
        if self.operator == EXISTS:
            return f"{name} is not null"
        return f"{name} {self.operator} {quote_value(self.value or '')}"


@dataclass(frozen=True)
class CompiledQuery:
    """AND of clauses plus a sort directive."""

    clauses: tuple[Clause, ...] = field(default_factory=tuple)
    sort_field: str | None = SORT_FIELD
    ascending: bool = True

    def matches(self, item: dict[str, list[str]]) -> bool:
        """True if every clause holds for *item*."""
        return all(c.matches(item.get(c.field)) for c in self.clauses)

    def to_select(self, domain: str, limit: int | None = None) -> str:
        """Render a SimpleDB select expression returning item names.

        Clauses are joined with ``intersection`` so that several equality
        tests against the same multi-valued attribute must each be
        satisfied by some value.
        """
        where = " intersection ".join(c.to_select() for c in self.clauses)
        direction = "asc" if self.ascending else "desc"
        expression = f"select itemName() from {quote_name(domain)}"
        if where:
            expression += f" where {where}"
        if self.sort_field:
            expression += f" order by {quote_name(self.sort_field)} {direction}"
        if limit is not None:
            expression += f" limit {int(limit)}"
        return expression


# Every item in the domain, unsorted (used for full exports)
ALL_ITEMS = CompiledQuery(clauses=(), sort_field=None)


def quote_name(name: str) -> str:
    """Backtick-quote an attribute or domain name for a select expression."""
    return "`" + name.replace("`", "``") + "`"


def quote_value(value: str) -> str:
    """Single-quote a literal for a select expression."""
    return "'" + value.replace("'", "''") + "'"


def tokenize(text: str) -> list[str]:
    """Split *text* on whitespace, keeping quoted runs together.

    A quote opens a quoted run only at the start of a token or right after
    a comparison operator (``au='A B'``); its quotes are removed from the
    token. Elsewhere a quote is an ordinary character (``d'Alembert``).

    Raises:
        QueryParseError: If a quote is not closed.
    """
    tokens: list[str] = []
    current: list[str] = []
    in_token = False
    i = 0
    while i < len(text):
        ch = text[i]
        if ch in ("'", '"') and (not in_token or text[i - 1] in "=<>"):
            end = text.find(ch, i + 1)
            if end == -1:
                raise QueryParseError(
                    f"Unterminated {ch} quote at position {i} in query: {text!r}"
                )
            current.append(text[i + 1:end])
            in_token = True
            i = end + 1
            continue
        if ch.isspace():
            if in_token:
                tokens.append("".join(current))
                current = []
                in_token = False
        else:
            current.append(ch)
            in_token = True
        i += 1
    if in_token:
        tokens.append("".join(current))
    return tokens


def compile_token(token: str) -> list[Clause]:
    """Compile one token into its clauses (possibly none)."""
    token = token.lower()
    match = TOKEN_PATTERN.match(token)
    if match and match.group("prefix") in FIELD_PREFIXES:
        field_name = FIELD_PREFIXES[match.group("prefix")]
        words = match.group("value").split()
        if field_name == "year":
            return [Clause("year", match.group("op"), w) for w in words]
        return [Clause(field_name + WORDS_SUFFIX, "=", w) for w in words]
    # Unknown prefix: the whole token, prefix included, is a keyword
    return [Clause(ALL_WORDS, "=", w) for w in token.split()]


def compile_query(text: str | None) -> CompiledQuery:
    """Compile a search string into a :class:`CompiledQuery`.

    An empty string compiles to a match-all query sorted by year.

    Raises:
        QueryParseError: On malformed quoting.
    """
    clauses: list[Clause] = []
    for token in tokenize(text or ""):
        clauses.extend(compile_token(token))

    if not any(c.field == SORT_FIELD for c in clauses):
        clauses.append(Clause(SORT_FIELD, EXISTS))

    compiled = CompiledQuery(clauses=tuple(clauses))
    logger.debug("Compiled query %r -> %s", text, compiled.clauses)
    return compiled
