"""Allow-list markup policies and the YAML policy file loader.

An AllowListPolicy maps element names to the attribute names permitted on
them. Anything absent is stripped by the sanitizer. Policies are immutable;
the builder methods return new instances.
"""

import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType

import yaml

from .errors import PolicyError
from .validation import (
    DISPLAY_TEXT_POLICY,
    NOSQL_VALUE_POLICY,
    StructuralRule,
    ValidationPolicy,
    forbid_sequence,
    forbid_substrings,
    matches,
    no_consecutive,
)

logger = logging.getLogger(__name__)

# Elements whose content is code or raw text. They are removed together with
# their content and can never be allow-listed.
RAW_TEXT_ELEMENTS = frozenset({
    "applet", "embed", "iframe", "noembed", "noframes", "noscript",
    "object", "plaintext", "script", "style", "template", "textarea",
    "title", "xmp",
})

# Attributes whose value is a URL and must pass the protocol allow-list.
URL_ATTRIBUTES = frozenset({
    "action", "background", "cite", "formaction", "href", "longdesc",
    "poster", "src", "xlink:href",
})

DEFAULT_PROTOCOLS = frozenset({"http", "https", "mailto"})

_ELEMENT_NAME_RE = re.compile(r"^[a-z][a-z0-9-]*$")
_ATTRIBUTE_NAME_RE = re.compile(r"^[a-z_:][a-z0-9_:.-]*$")
_SCHEME_RE = re.compile(r"^([a-z][a-z0-9+.-]*):")
# Browsers ignore ASCII whitespace and control characters inside a scheme.
_URL_NOISE_RE = re.compile(r"[\x00-\x20\x7f]+")


@dataclass(frozen=True)
class AllowListPolicy:
    """Permitted markup elements and, per element, permitted attributes."""

    elements: Mapping[str, frozenset[str]] = field(default_factory=dict)
    protocols: frozenset[str] = DEFAULT_PROTOCOLS
    name: str = ""

    def __post_init__(self) -> None:
        """Normalize names to lowercase and reject unsafe entries."""
        if not isinstance(self.elements, Mapping):
            raise PolicyError(
                f"AllowListPolicy elements must be a mapping, got {type(self.elements).__name__}"
            )
        errors = []
        normalized: dict[str, frozenset[str]] = {}

        for element, attributes in self.elements.items():
            element_name = str(element).strip().lower()
            if not _ELEMENT_NAME_RE.match(element_name):
                errors.append(f"Invalid element name: {element!r}")
                continue
            if element_name in RAW_TEXT_ELEMENTS:
                errors.append(f"Element '{element_name}' carries raw text and cannot be allowed")
                continue
            if isinstance(attributes, str):
                errors.append(
                    f"Attributes for '{element_name}' must be a collection, not a string"
                )
                continue
            attribute_names = set()
            for attribute in attributes or ():
                attribute_name = str(attribute).strip().lower()
                if not _ATTRIBUTE_NAME_RE.match(attribute_name):
                    errors.append(f"Invalid attribute name on '{element_name}': {attribute!r}")
                elif attribute_name.startswith("on"):
                    errors.append(
                        f"Event handler attribute '{attribute_name}' on '{element_name}' "
                        "cannot be allowed"
                    )
                else:
                    attribute_names.add(attribute_name)
            normalized[element_name] = normalized.get(element_name, frozenset()) | attribute_names

        protocols = frozenset(str(p).strip().lower().rstrip(":") for p in self.protocols)
        for protocol in sorted(protocols):
            if not re.match(r"^[a-z][a-z0-9+.-]*$", protocol):
                errors.append(f"Invalid protocol: {protocol!r}")
        if "javascript" in protocols or "vbscript" in protocols:
            errors.append("Script protocols cannot be allowed")

        if errors:
            label = f" '{self.name}'" if self.name else ""
            raise PolicyError(
                f"Invalid AllowListPolicy{label}: {'; '.join(errors)}", errors=errors
            )

        object.__setattr__(self, "elements", MappingProxyType(normalized))
        object.__setattr__(self, "protocols", protocols)

    @classmethod
    def of(cls, elements: Mapping[str, Iterable[str]], *,
           protocols: Iterable[str] | None = None, name: str = "") -> "AllowListPolicy":
        """Build a policy from a plain mapping such as {"p": [], "a": ["href"]}."""
        return cls(
            elements=dict(elements),
            protocols=frozenset(protocols) if protocols is not None else DEFAULT_PROTOCOLS,
            name=name,
        )

    def allow_elements(self, *names: str) -> "AllowListPolicy":
        """Return a copy that also allows the given elements (no attributes)."""
        elements = dict(self.elements)
        for name in names:
            elements.setdefault(name.lower(), frozenset())
        return AllowListPolicy(elements=elements, protocols=self.protocols, name=self.name)

    def allow_attributes(self, *attributes: str, on: Iterable[str]) -> "AllowListPolicy":
        """Return a copy allowing the attributes on the given elements.

        Elements not yet allowed are added.
        """
        elements = dict(self.elements)
        for element in on:
            key = element.lower()
            elements[key] = elements.get(key, frozenset()) | frozenset(attributes)
        return AllowListPolicy(elements=elements, protocols=self.protocols, name=self.name)

    def with_protocols(self, *protocols: str) -> "AllowListPolicy":
        """Return a copy whose URL attributes accept exactly these schemes."""
        return AllowListPolicy(
            elements=self.elements, protocols=frozenset(protocols), name=self.name
        )

    def allows_element(self, name: str) -> bool:
        return name in self.elements

    def allows_attribute(self, element: str, attribute: str, value: str | None = None) -> bool:
        """True if the attribute is permitted on the element with this value."""
        permitted = self.elements.get(element)
        if permitted is None or attribute not in permitted:
            return False
        if attribute in URL_ATTRIBUTES and value is not None:
            return self.allows_url(value)
        return True

    def allows_url(self, value: str) -> bool:
        """True for relative URLs and URLs whose scheme is allowed."""
        compact = _URL_NOISE_RE.sub("", value).lower()
        match = _SCHEME_RE.match(compact)
        if match is None:
            return True
        return match.group(1) in self.protocols


TEXT_ONLY = AllowListPolicy(name="text-only")

BASIC_FORMATTING = AllowListPolicy.of(
    {
        "b": [], "blockquote": [], "br": [], "code": [], "em": [], "i": [],
        "li": [], "ol": [], "p": [], "pre": [], "strong": [], "u": [], "ul": [],
    },
    name="basic",
)

LINKS = AllowListPolicy.of({**BASIC_FORMATTING.elements, "a": ["href", "title"]}, name="links")


# --- Policy sets and YAML loading ---


@dataclass(frozen=True)
class PolicySet:
    """Named HTML and validation policies, e.g. loaded from a YAML file."""

    html: Mapping[str, AllowListPolicy] = field(default_factory=dict)
    validation: Mapping[str, ValidationPolicy] = field(default_factory=dict)
    source: str = ""

    def html_policy(self, name: str) -> AllowListPolicy:
        """Look up an HTML policy by name.

        Raises:
            PolicyError: If no policy has that name.
        """
        try:
            return self.html[name]
        except KeyError:
            raise PolicyError(
                f"Unknown HTML policy {name!r}. Available: {sorted(self.html)}"
            ) from None

    def validation_policy(self, name: str) -> ValidationPolicy:
        """Look up a validation policy by name.

        Raises:
            PolicyError: If no policy has that name.
        """
        try:
            return self.validation[name]
        except KeyError:
            raise PolicyError(
                f"Unknown validation policy {name!r}. Available: {sorted(self.validation)}"
            ) from None

    def merged(self, other: "PolicySet") -> "PolicySet":
        """Return a set where policies from `other` override these."""
        return PolicySet(
            html={**self.html, **other.html},
            validation={**self.validation, **other.validation},
            source=other.source or self.source,
        )


DEFAULT_POLICIES = PolicySet(
    html={p.name: p for p in (TEXT_ONLY, BASIC_FORMATTING, LINKS)},
    validation={p.name: p for p in (DISPLAY_TEXT_POLICY, NOSQL_VALUE_POLICY)},
)


def _parse_rule(raw: object, where: str) -> StructuralRule:
    """Parse one structural rule entry.

    Raises PolicyError for unknown kinds or missing fields.
    """
    if not isinstance(raw, dict):
        raise PolicyError(f"{where}: rule must be a mapping, got {type(raw).__name__}")
    kind = raw.get("kind")
    rule_id = raw.get("id")
    if not rule_id:
        raise PolicyError(f"{where}: rule is missing required field 'id'")
    rule_id = str(rule_id)

    if kind == "no_consecutive":
        if "char" not in raw:
            raise PolicyError(f"{where}: rule '{rule_id}' requires 'char'")
        return no_consecutive(str(raw["char"]), ignore=str(raw.get("ignore", " ")), rule_id=rule_id)
    if kind == "forbid_sequence":
        if "sequence" not in raw:
            raise PolicyError(f"{where}: rule '{rule_id}' requires 'sequence'")
        return forbid_sequence(str(raw["sequence"]), ignore=str(raw.get("ignore", "")), rule_id=rule_id)
    if kind == "forbid_substrings":
        values = raw.get("values")
        if not isinstance(values, list) or not values:
            raise PolicyError(f"{where}: rule '{rule_id}' requires a non-empty 'values' list")
        return forbid_substrings(
            *(str(v) for v in values),
            case_sensitive=bool(raw.get("case_sensitive", False)),
            rule_id=rule_id,
        )
    if kind == "matches":
        if "pattern" not in raw:
            raise PolicyError(f"{where}: rule '{rule_id}' requires 'pattern'")
        return matches(str(raw["pattern"]), rule_id=rule_id)
    raise PolicyError(
        f"{where}: rule '{rule_id}' has unknown kind {kind!r}. "
        "Valid values: ['forbid_sequence', 'forbid_substrings', 'matches', 'no_consecutive']"
    )


def _parse_validation_policy(name: str, raw: object) -> ValidationPolicy:
    where = f"validation.{name}"
    if not isinstance(raw, dict):
        raise PolicyError(f"{where} must be a mapping, got {type(raw).__name__}")
    if "max_length" not in raw:
        raise PolicyError(f"{where} is missing required field 'max_length'")
    if "charset" not in raw:
        raise PolicyError(f"{where} is missing required field 'charset'")
    raw_rules = raw.get("rules") or []
    if not isinstance(raw_rules, list):
        raise PolicyError(f"{where}.rules must be a list")
    return ValidationPolicy(
        name=name,
        max_length=raw["max_length"],
        min_length=raw.get("min_length", 0),
        allowed_charset=str(raw["charset"]),
        forbidden=str(raw.get("forbidden", "")),
        rules=tuple(_parse_rule(r, where) for r in raw_rules),
    )


def _parse_html_policy(name: str, raw: object) -> AllowListPolicy:
    where = f"html.{name}"
    if not isinstance(raw, dict):
        raise PolicyError(f"{where} must be a mapping, got {type(raw).__name__}")
    elements = raw.get("elements") or {}
    if not isinstance(elements, dict):
        raise PolicyError(f"{where}.elements must be a mapping of element -> attributes")
    protocols = raw.get("protocols")
    if protocols is not None and not isinstance(protocols, list):
        raise PolicyError(f"{where}.protocols must be a list")
    return AllowListPolicy.of(elements, protocols=protocols, name=name)


def parse_policies(data: object, source: str = "") -> PolicySet:
    """Build a PolicySet from already-parsed YAML data.

    Every policy is parsed even after a failure, so the raised PolicyError
    lists all problems in `.errors`.
    """
    if data is None:
        return PolicySet(source=source)
    if not isinstance(data, dict):
        raise PolicyError(f"Policy file {source} must contain a mapping at top level")

    unknown = sorted(set(data) - {"html", "validation"})
    errors: list[str] = [f"Unknown top-level key: '{key}'" for key in unknown]
    html: dict[str, AllowListPolicy] = {}
    validation: dict[str, ValidationPolicy] = {}

    for section, parser, target in (
        ("html", _parse_html_policy, html),
        ("validation", _parse_validation_policy, validation),
    ):
        entries = data.get(section) or {}
        if not isinstance(entries, dict):
            errors.append(f"'{section}' must be a mapping of name -> policy")
            continue
        for name, raw in entries.items():
            try:
                target[str(name)] = parser(str(name), raw)
            except PolicyError as exc:
                errors.extend(exc.errors or [str(exc)])

    if errors:
        raise PolicyError(
            f"Invalid policy file {source}: {len(errors)} problem(s)", errors=errors
        )
    return PolicySet(html=html, validation=validation, source=source)


def load_policy_file(path: Path | str) -> PolicySet:
    """Load named policies from a YAML file.

    Args:
        path: Path to the YAML policy file.

    Returns:
        PolicySet with the file's policies (no built-in defaults).

    Raises:
        PolicyError: If the file is missing, is not valid YAML, or any
            policy in it is malformed.
    """
    path = Path(path)
    source = str(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise PolicyError(f"Cannot read policy file {source}: {exc}") from exc

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise PolicyError(f"Invalid YAML in {source}: {exc}") from exc

    policies = parse_policies(data, source=source)
    logger.debug(
        "Loaded %d HTML and %d validation policies from %s",
        len(policies.html), len(policies.validation), source,
    )
    return policies
