"""Bind named values to query templates without string concatenation.

ParameterBinder performs the grammar-independent checks (every placeholder
bound exactly once, no stray values, types accepted) and hands the checked
values to a grammar adapter. Adapters decide how a value travels:

- SqlAdapter: out-of-band driver parameters, text only carries markers
- NoSqlFilterAdapter: a structured filter object, values never become text
- XPathAdapter: variables resolved by the XPath engine at evaluation time
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Protocol

from lxml import etree

from .errors import (
    DuplicateBinding,
    TemplateError,
    TypeMismatch,
    UnboundPlaceholder,
    UnusedValue,
)
from .templates import (
    FilterTemplate,
    Grammar,
    Placeholder,
    SqlTemplate,
    Template,
    ValueType,
    XPathTemplate,
)
from .validation import NOSQL_VALUE_POLICY, RawInput, ValidationPolicy, validate

logger = logging.getLogger(__name__)

Scalar = str | int | bool | None


@dataclass(frozen=True)
class BoundValue:
    """A value tagged with the placeholder it fills."""

    placeholder: str
    value: Scalar

    @property
    def type(self) -> ValueType:
        return ValueType.of(self.value)


# --- Executable queries ---


@dataclass(frozen=True)
class SqlQuery:
    """SQL text with driver bind markers plus the values to send with it."""

    text: str
    parameters: Mapping[str, Scalar] | tuple[Scalar, ...]
    paramstyle: str
    grammar = Grammar.SQL

    def execute(self, cursor: Any) -> Any:
        """Run on a DB-API 2.0 cursor; the driver receives its own copy of the values."""
        if isinstance(self.parameters, Mapping):
            return cursor.execute(self.text, dict(self.parameters))
        return cursor.execute(self.text, self.parameters)


@dataclass(frozen=True)
class FilterQuery:
    """A structured filter as field/operator/value triples."""

    clauses: tuple[tuple[str, str, Scalar], ...]
    grammar = Grammar.NOSQL

    @property
    def filter(self) -> dict[str, dict[str, Scalar]]:
        """A fresh MongoDB-style filter document, e.g. {"borough": {"$eq": "Brooklyn"}}."""
        document: dict[str, dict[str, Scalar]] = {}
        for field, operator, value in self.clauses:
            document.setdefault(field, {})[operator] = value
        return document

    def find(self, collection: Any, **kwargs: Any) -> Any:
        """Run against a pymongo-style collection."""
        return collection.find(self.filter, **kwargs)


@dataclass(frozen=True)
class XPathQuery:
    """An XPath expression plus the variables its $name references resolve to."""

    expression: str
    variables: Mapping[str, str | int | bool]
    grammar = Grammar.XPATH

    def compile(self) -> etree.XPath:
        return etree.XPath(self.expression)

    def evaluate(self, document: Any) -> Any:
        """Evaluate against an lxml document or element."""
        return self.compile()(document, **self.variables)


ExecutableQuery = SqlQuery | FilterQuery | XPathQuery


# --- Adapters ---


class GrammarAdapter(Protocol):
    """Turns checked values into an executable query for one grammar."""

    grammar: Grammar
    accepts: frozenset[ValueType]

    def build(self, template: Any, values: Mapping[str, Scalar]) -> ExecutableQuery:
        ...


PARAMSTYLES = ("named", "qmark", "numeric", "format", "pyformat")


class SqlAdapter:
    """Render `:name` markers in the driver's paramstyle (PEP 249)."""

    grammar = Grammar.SQL
    accepts = frozenset(ValueType)

    def __init__(self, paramstyle: str = "named") -> None:
        if paramstyle not in PARAMSTYLES:
            raise ValueError(f"Unknown paramstyle {paramstyle!r}. Valid values: {list(PARAMSTYLES)}")
        self.paramstyle = paramstyle

    def build(self, template: SqlTemplate, values: Mapping[str, Scalar]) -> SqlQuery:
        style = self.paramstyle
        escape_percent = style in ("format", "pyformat")
        parts: list[str] = []
        positional: list[Scalar] = []
        numbered: dict[str, int] = {}

        for segment in template.segments:
            if not isinstance(segment, Placeholder):
                parts.append(segment.replace("%", "%%") if escape_percent else segment)
                continue
            name = segment.name
            if style == "named":
                parts.append(f":{name}")
            elif style == "pyformat":
                parts.append(f"%({name})s")
            elif style == "numeric":
                if name not in numbered:
                    numbered[name] = len(numbered) + 1
                    positional.append(values[name])
                parts.append(f":{numbered[name]}")
            else:
                parts.append("?" if style == "qmark" else "%s")
                positional.append(values[name])

        if style in ("named", "pyformat"):
            parameters: Mapping[str, Scalar] | tuple[Scalar, ...] = MappingProxyType(
                {p.name: values[p.name] for p in template.placeholders}
            )
        else:
            parameters = tuple(positional)
        return SqlQuery(text="".join(parts), parameters=parameters, paramstyle=style)


class NoSqlFilterAdapter:
    """Build structured filters; string values must also pass a validation policy.

    Structured construction alone already keeps values out of the query
    grammar. The policy check rejects the grammar's metacharacters as a
    second line of defense.
    """

    grammar = Grammar.NOSQL
    accepts = frozenset(ValueType)

    def __init__(self, policy: ValidationPolicy = NOSQL_VALUE_POLICY) -> None:
        self.policy = policy

    def build(self, template: FilterTemplate, values: Mapping[str, Scalar]) -> FilterQuery:
        clauses = []
        for clause in template.clauses:
            value = values[clause.placeholder]
            if isinstance(value, str):
                validate(
                    RawInput(value=value, source=f"filter:{clause.field}"), self.policy
                ).raise_for_rejection()
            clauses.append((clause.field, clause.operator, value))
        return FilterQuery(clauses=tuple(clauses))


class XPathAdapter:
    """Register values as XPath variables; the expression text is never changed."""

    grammar = Grammar.XPATH
    # XPath 1.0 has no null.
    accepts = frozenset({ValueType.STRING, ValueType.INTEGER, ValueType.BOOLEAN})

    def build(self, template: XPathTemplate, values: Mapping[str, Scalar]) -> XPathQuery:
        return XPathQuery(
            expression=template.expression,
            variables=MappingProxyType({p.name: values[p.name] for p in template.placeholders}),
        )


# --- Binder ---


def collect_values(values: Mapping[str, Any] | Iterable[BoundValue] | None) -> dict[str, Any]:
    """Normalize supplied values to a plain name -> value dict."""
    if values is None:
        return {}
    collected: dict[str, Any] = {}
    if isinstance(values, Mapping):
        for name, value in values.items():
            if isinstance(value, BoundValue):
                if value.placeholder != name:
                    # The value names a second placeholder for this slot.
                    raise DuplicateBinding(name)
                value = value.value
            collected[name] = value
        return collected

    for item in values:
        if not isinstance(item, BoundValue):
            raise TypeError(f"Expected BoundValue, got {type(item).__name__}")
        if item.placeholder in collected:
            raise DuplicateBinding(item.placeholder)
        collected[item.placeholder] = item.value
    return collected


def _describe(types: Iterable[ValueType]) -> str:
    return "|".join(sorted(t.value for t in types))


class ParameterBinder:
    """Grammar-agnostic binder delegating to one adapter."""

    def __init__(self, adapter: GrammarAdapter) -> None:
        self.adapter = adapter

    @property
    def grammar(self) -> Grammar:
        return self.adapter.grammar

    def bind(self, template: Template,
             values: Mapping[str, Any] | Iterable[BoundValue] | None) -> ExecutableQuery:
        """Bind values to every placeholder of the template.

        Args:
            template: A parsed template for this binder's grammar.
            values: name -> value (or BoundValue) mapping, or an iterable
                of BoundValue.

        Returns:
            An independent ExecutableQuery.

        Raises:
            TemplateError: If the template is for another grammar.
            DuplicateBinding: If a placeholder is bound more than once.
            UnboundPlaceholder: If a referenced placeholder has no value.
            UnusedValue: If a value matches no placeholder.
            TypeMismatch: If a value's type is not accepted for its slot.
            ValidationError: If an adapter's value policy rejects a value.
        """
        if getattr(template, "grammar", None) is not self.adapter.grammar:
            raise TemplateError(
                f"{self.adapter.grammar.value} binder cannot bind "
                f"{type(template).__name__}"
            )
        collected = collect_values(values)
        names = [p.name for p in template.placeholders]

        for name in names:
            if name not in collected:
                raise UnboundPlaceholder(name)
        unused = sorted(set(collected) - set(names))
        if unused:
            raise UnusedValue(unused[0])

        for placeholder in template.placeholders:
            self._check_type(placeholder, collected[placeholder.name])

        query = self.adapter.build(template, collected)
        logger.debug(
            "Bound %d placeholder(s) for %s query", len(names), self.adapter.grammar.value
        )
        return query

    def _check_type(self, placeholder: Placeholder, value: Any) -> None:
        accepts = self.adapter.accepts
        try:
            actual = ValueType.of(value)
        except TypeError:
            raise TypeMismatch(placeholder.name, _describe(accepts), type(value).__name__) from None
        if actual not in accepts:
            raise TypeMismatch(placeholder.name, _describe(accepts), actual.value)
        if placeholder.expected is not None and actual is not placeholder.expected:
            raise TypeMismatch(placeholder.name, placeholder.expected.value, actual.value)


def bind(template: Template, values: Mapping[str, Any] | Iterable[BoundValue] | None,
         *, paramstyle: str = "named") -> ExecutableQuery:
    """Bind with the default adapter for the template's grammar."""
    adapters = {
        Grammar.SQL: lambda: SqlAdapter(paramstyle),
        Grammar.NOSQL: NoSqlFilterAdapter,
        Grammar.XPATH: XPathAdapter,
    }
    grammar = getattr(template, "grammar", None)
    if grammar not in adapters:
        raise TemplateError(f"Not a query template: {type(template).__name__}")
    return ParameterBinder(adapters[grammar]()).bind(template, values)
