"""Query templates with named placeholders.

A template is parsed once, is immutable, and can be shared by concurrent
binds. It knows which placeholder names it references and, optionally,
the value type each slot expects. It never contains bound values.
"""

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum

from lxml import etree

from .errors import TemplateError


class Grammar(Enum):
    SQL = "sql"
    NOSQL = "nosql"
    XPATH = "xpath"


class ValueType(Enum):
    """Types a BoundValue may carry."""

    STRING = "string"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    NULL = "null"

    @classmethod
    def of(cls, value: object) -> "ValueType":
        """Classify a Python value.

        Raises:
            TypeError: For anything that is not str, int, bool or None.
        """
        # bool before int: bool is an int subclass.
        if value is None:
            return cls.NULL
        if isinstance(value, bool):
            return cls.BOOLEAN
        if isinstance(value, int):
            return cls.INTEGER
        if isinstance(value, str):
            return cls.STRING
        raise TypeError(f"Unsupported value type: {type(value).__name__}")

    @classmethod
    def coerce(cls, declared: "ValueType | type | str") -> "ValueType":
        """Accept ValueType, a Python type (str/int/bool/None) or a name."""
        if isinstance(declared, cls):
            return declared
        by_type = {str: cls.STRING, int: cls.INTEGER, bool: cls.BOOLEAN, type(None): cls.NULL}
        if isinstance(declared, type) and declared in by_type:
            return by_type[declared]
        if declared is None:
            return cls.NULL
        if isinstance(declared, str):
            try:
                return cls(declared.lower())
            except ValueError:
                pass
        raise TemplateError(f"Unknown placeholder type: {declared!r}")


@dataclass(frozen=True)
class Placeholder:
    """A named slot. expected=None accepts any type the adapter supports."""

    name: str
    expected: ValueType | None = None


_NAME_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


def _declare(names: Iterable[str], types: Mapping[str, object] | None) -> tuple[Placeholder, ...]:
    """Build unique placeholders in first-seen order with declared types."""
    ordered: list[str] = []
    for name in names:
        if name not in ordered:
            ordered.append(name)
    types = dict(types or {})
    unknown = sorted(set(types) - set(ordered))
    if unknown:
        raise TemplateError(f"Types declared for names not in template: {unknown}")
    return tuple(
        Placeholder(name, ValueType.coerce(types[name]) if name in types else None)
        for name in ordered
    )


# --- SQL ---


def _skip_quoted(text: str, start: int) -> int:
    """Return the index just past the quoted run starting at `start`.

    A doubled quote character inside the run is an escaped quote.
    """
    quote = text[start]
    pos = start + 1
    while True:
        end = text.find(quote, pos)
        if end == -1:
            raise TemplateError(f"Unterminated {quote} quote starting at offset {start}")
        if text.startswith(quote * 2, end):
            pos = end + 2
            continue
        return end + 1


def scan_sql(text: str) -> tuple[tuple[int, int, str], ...]:
    """Find `:name` markers outside literals, identifiers and comments.

    Returns (start, end, name) spans. `::` casts are not markers.

    Quotes inside literals must be doubled (`'it''s'`), as in standard SQL.
    MySQL backslash escapes and PostgreSQL dollar-quoted bodies are not
    recognized: write such templates with doubled quotes or bind the
    literal as a value instead.
    """
    spans = []
    pos = 0
    length = len(text)
    while pos < length:
        char = text[pos]
        if char in "'\"`":
            pos = _skip_quoted(text, pos)
        elif text.startswith("--", pos):
            newline = text.find("\n", pos)
            pos = length if newline == -1 else newline + 1
        elif text.startswith("/*", pos):
            close = text.find("*/", pos + 2)
            if close == -1:
                raise TemplateError(f"Unterminated comment starting at offset {pos}")
            pos = close + 2
        elif text.startswith("::", pos):
            pos += 2
        elif char == ":":
            match = _NAME_RE.match(text, pos + 1)
            preceded_by_word = pos > 0 and (text[pos - 1].isalnum() or text[pos - 1] == "_")
            if match and not preceded_by_word:
                spans.append((pos, match.end(), match.group()))
                pos = match.end()
            else:
                pos += 1
        else:
            pos += 1
    return tuple(spans)


@dataclass(frozen=True)
class SqlTemplate:
    """SQL text with `:name` placeholders, e.g.

        select * from color where friendly_name = :name
    """

    text: str
    placeholders: tuple[Placeholder, ...]
    segments: tuple[str | Placeholder, ...]
    grammar = Grammar.SQL

    @classmethod
    def parse(cls, text: str, types: Mapping[str, object] | None = None) -> "SqlTemplate":
        """Parse SQL text.

        Raises:
            TemplateError: If the text is empty, has unterminated quotes or
                comments, or declares types for unknown names.
        """
        if not isinstance(text, str) or not text.strip():
            raise TemplateError("SQL template cannot be empty")
        spans = scan_sql(text)
        placeholders = _declare((name for _, _, name in spans), types)
        by_name = {p.name: p for p in placeholders}

        segments: list[str | Placeholder] = []
        cursor = 0
        for start, end, name in spans:
            if start > cursor:
                segments.append(text[cursor:start])
            segments.append(by_name[name])
            cursor = end
        if cursor < len(text):
            segments.append(text[cursor:])
        return cls(text=text, placeholders=placeholders, segments=tuple(segments))


# --- NoSQL filters ---

FILTER_OPERATORS = frozenset({"$eq", "$ne", "$gt", "$gte", "$lt", "$lte"})


@dataclass(frozen=True)
class FilterClause:
    """One field/operator/placeholder triple."""

    field: str
    operator: str
    placeholder: str


@dataclass(frozen=True)
class FilterTemplate:
    """A structured filter: an implicit AND of field/operator/placeholder triples."""

    clauses: tuple[FilterClause, ...]
    placeholders: tuple[Placeholder, ...]
    grammar = Grammar.NOSQL

    @classmethod
    def parse(cls, clauses: Iterable[FilterClause | tuple[str, str, str]],
              types: Mapping[str, object] | None = None) -> "FilterTemplate":
        """Build a filter template from triples such as ("borough", "$eq", "borough").

        The "$" on operators is optional.

        Raises:
            TemplateError: For empty filters, unsafe field names, unknown
                operators or a repeated field/operator pair.
        """
        parsed: list[FilterClause] = []
        errors: list[str] = []
        seen: set[tuple[str, str]] = set()

        for raw in clauses:
            clause = raw if isinstance(raw, FilterClause) else FilterClause(*raw)
            operator = clause.operator if clause.operator.startswith("$") else f"${clause.operator}"
            if not clause.field or clause.field.startswith("$") or "\x00" in clause.field:
                errors.append(f"Invalid field name: {clause.field!r}")
            if operator not in FILTER_OPERATORS:
                errors.append(
                    f"Unknown operator {clause.operator!r}. Valid values: {sorted(FILTER_OPERATORS)}"
                )
            if not _NAME_RE.fullmatch(clause.placeholder):
                errors.append(f"Invalid placeholder name: {clause.placeholder!r}")
            if (clause.field, operator) in seen:
                errors.append(f"Repeated condition {operator} on field {clause.field!r}")
            seen.add((clause.field, operator))
            parsed.append(FilterClause(clause.field, operator, clause.placeholder))

        if not parsed:
            errors.append("Filter template needs at least one clause")
        if errors:
            raise TemplateError(f"Invalid filter template: {'; '.join(errors)}")

        placeholders = _declare((c.placeholder for c in parsed), types)
        return cls(clauses=tuple(parsed), placeholders=placeholders)


# --- XPath ---

_XPATH_VARIABLE_RE = re.compile(r"\$([A-Za-z_][A-Za-z0-9_.-]*)")


def scan_xpath(expression: str) -> tuple[str, ...]:
    """Variable names referenced as $name outside string literals."""
    names = []
    pos = 0
    length = len(expression)
    while pos < length:
        char = expression[pos]
        if char in "'\"":
            end = expression.find(char, pos + 1)
            if end == -1:
                raise TemplateError(f"Unterminated {char} literal starting at offset {pos}")
            pos = end + 1
        elif char == "$":
            match = _XPATH_VARIABLE_RE.match(expression, pos)
            if match is None:
                raise TemplateError(f"Invalid variable reference at offset {pos}")
            names.append(match.group(1))
            pos = match.end()
        else:
            pos += 1
    return tuple(names)


@dataclass(frozen=True)
class XPathTemplate:
    """An XPath expression referencing values as variables, e.g. //book[@id=$bookId]."""

    expression: str
    placeholders: tuple[Placeholder, ...]
    grammar = Grammar.XPATH

    @classmethod
    def parse(cls, expression: str, types: Mapping[str, object] | None = None) -> "XPathTemplate":
        """Parse and syntax-check an XPath expression.

        Raises:
            TemplateError: If the expression is empty or not valid XPath.
        """
        if not isinstance(expression, str) or not expression.strip():
            raise TemplateError("XPath template cannot be empty")
        names = scan_xpath(expression)
        try:
            etree.XPath(expression)
        except etree.XPathSyntaxError as exc:
            raise TemplateError(f"Invalid XPath expression: {exc}") from exc
        return cls(expression=expression, placeholders=_declare(names, types))


Template = SqlTemplate | FilterTemplate | XPathTemplate
