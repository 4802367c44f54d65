"""Allow-list HTML sanitizer.

Markup is parsed leniently by lxml's HTML parser, converted into an
immutable tree of Element and Text nodes, filtered by a pure recursive
transform against an AllowListPolicy, serialized, and finally encoded for
an HTML text context.

Sanitizing happens before encoding. Encoding first would turn permitted
tags into inert text before the policy could see them.
"""

import logging
from dataclasses import dataclass

from lxml import etree

from .codec import Context, EncodedOutput, encode, for_html, for_html_attribute
from .errors import PolicyError
from .policy import RAW_TEXT_ELEMENTS, AllowListPolicy

logger = logging.getLogger(__name__)

VOID_ELEMENTS = frozenset({
    "area", "base", "br", "col", "embed", "hr", "img", "input", "link",
    "meta", "param", "source", "track", "wbr",
})

# Wrappers the parser adds around a fragment; their content is spliced in.
DOCUMENT_ELEMENTS = frozenset({"html", "head", "body"})

# Elements nested deeper than this are flattened to their text (raw-text
# content excluded) so the recursive walk stays well below the
# interpreter's recursion limit.
MAX_NESTING_DEPTH = 200


@dataclass(frozen=True)
class Text:
    content: str


@dataclass(frozen=True)
class Element:
    name: str
    attrs: tuple[tuple[str, str | None], ...] = ()
    children: tuple["Node", ...] = ()


Node = Element | Text


def _html_parser() -> etree.HTMLParser:
    # lxml parsers must not be shared between threads, so build one per call.
    return etree.HTMLParser(
        remove_comments=True,
        remove_pis=True,
        no_network=True,
        huge_tree=True,
    )


def _append(nodes: list[Node], node: Node) -> None:
    if isinstance(node, Text):
        if not node.content:
            return
        if nodes and isinstance(nodes[-1], Text):
            nodes[-1] = Text(nodes[-1].content + node.content)
            return
    nodes.append(node)


def _flat_text(element) -> str:
    """Text of a subtree without its markup, skipping raw-text elements."""
    parts: list[str] = []
    pending = [element]
    while pending:
        item = pending.pop()
        if isinstance(item, str):
            parts.append(item)
            continue
        if not isinstance(item.tag, str) or item.tag in RAW_TEXT_ELEMENTS:
            continue
        following: list = [item.text] if item.text else []
        for child in item:
            following.append(child)
            if child.tail:
                following.append(child.tail)
        pending.extend(reversed(following))
    return "".join(parts)


def _convert_children(parent, depth: int) -> list[Node]:
    nodes: list[Node] = []
    if parent.text:
        _append(nodes, Text(parent.text))
    for child in parent:
        for node in _convert(child, depth):
            _append(nodes, node)
        if child.tail:
            _append(nodes, Text(child.tail))
    return nodes


def _convert(element, depth: int) -> list[Node]:
    if not isinstance(element.tag, str):
        # Comments, processing instructions and entity references.
        return []
    if element.tag in DOCUMENT_ELEMENTS:
        return _convert_children(element, depth)
    if depth >= MAX_NESTING_DEPTH:
        return [Text(_flat_text(element))]
    return [Element(
        name=element.tag,
        attrs=tuple(element.attrib.items()),
        children=tuple(_convert_children(element, depth + 1)),
    )]


def parse_markup(markup: str) -> tuple[Node, ...]:
    """Parse markup into a tuple of top-level nodes.

    The parser never runs scripts or fetches anything. Stray end tags are
    ignored, elements left open are closed at end of input, repeated
    attributes keep their first value, and comments and processing
    instructions are discarded.
    """
    root = etree.fromstring(f"<html><body>{markup}</body></html>", _html_parser())
    return tuple(_convert(root, 0))


def _filter_node(node: Node, policy: AllowListPolicy) -> tuple[Node, ...]:
    if isinstance(node, Text):
        return (node,)
    if node.name in RAW_TEXT_ELEMENTS:
        return ()

    children = filter_tree(node.children, policy)
    if not policy.allows_element(node.name):
        # Unwrap: the children take the element's place in its parent.
        return children

    attrs = tuple(
        (name, value) for name, value in node.attrs
        if policy.allows_attribute(node.name, name, value)
    )
    if children is node.children and len(attrs) == len(node.attrs):
        return (node,)
    return (Element(name=node.name, attrs=attrs, children=children),)


def filter_tree(nodes: tuple[Node, ...], policy: AllowListPolicy) -> tuple[Node, ...]:
    """Return a new tree containing only what the policy permits.

    Unchanged subtrees are returned as-is (the same objects), so callers
    can detect "nothing removed" with an identity check.
    """
    filtered: list[Node] = []
    changed = False
    for node in nodes:
        result = _filter_node(node, policy)
        if len(result) != 1 or result[0] is not node:
            changed = True
        filtered.extend(result)
    return tuple(filtered) if changed else nodes


def _write(nodes: tuple[Node, ...], out: list[str], escape: bool) -> None:
    for node in nodes:
        if isinstance(node, Text):
            out.append(for_html(node.content) if escape else node.content)
            continue
        out.append(f"<{node.name}")
        for name, value in node.attrs:
            if value is None:
                out.append(f" {name}")
            else:
                out.append(f' {name}="{for_html_attribute(value) if escape else value}"')
        out.append(">")
        if node.name in VOID_ELEMENTS:
            continue
        _write(node.children, out, escape)
        out.append(f"</{node.name}>")


def serialize(nodes: tuple[Node, ...], *, escape: bool = False) -> str:
    """Serialize nodes back to markup.

    With escape=False text and attribute values are written as-is (the
    result is meant to be encoded afterwards). With escape=True they are
    encoded for their HTML context, giving renderable markup.
    """
    out: list[str] = []
    _write(nodes, out, escape)
    return "".join(out)


def _check_policy(policy: AllowListPolicy) -> None:
    if not isinstance(policy, AllowListPolicy):
        raise PolicyError(
            f"Sanitizing requires an AllowListPolicy, got {type(policy).__name__}"
        )


def sanitize(markup: str, policy: AllowListPolicy) -> EncodedOutput:
    """Strip everything the policy does not allow, then HTML-encode the result.

    Example:
        >>> sanitize("You <p>user login</p><script>x</script>",
        ...          AllowListPolicy.of({"p": []})).text
        'You &lt;p&gt;user login&lt;/p&gt;'
    """
    _check_policy(policy)
    tree = parse_markup(markup)
    filtered = filter_tree(tree, policy)
    if filtered is not tree:
        logger.debug("Sanitizer removed content under policy %s", policy.name or "<unnamed>")
    return encode(serialize(filtered), Context.HTML_TEXT)


def clean(markup: str, policy: AllowListPolicy) -> str:
    """Strip everything the policy does not allow and return renderable HTML.

    Permitted tags stay as markup; text and attribute values are encoded
    for their contexts.
    """
    _check_policy(policy)
    return serialize(filter_tree(parse_markup(markup), policy), escape=True)
