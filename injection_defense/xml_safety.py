"""Hardened XML loading for documents queried with XPath.

The XPath adapter assumes documents were parsed with external entities,
DTD loading, network access and XInclude disabled. parse_document()
enforces that and additionally refuses any DOCTYPE declaration, the
primary XXE defense.
"""

import logging
import re
from pathlib import Path

from lxml import etree

from .errors import UnsafeDocumentError

logger = logging.getLogger(__name__)

# Text input is already decoded, so its declared encoding no longer applies.
_XML_DECLARATION_RE = re.compile(r"^\ufeff?<\?xml\b[^>]*?\?>")


def hardened_parser() -> etree.XMLParser:
    """A new lxml parser with every external-resource feature off."""
    return etree.XMLParser(
        resolve_entities=False,
        no_network=True,
        load_dtd=False,
        dtd_validation=False,
        attribute_defaults=False,
        huge_tree=False,
        remove_pis=True,
    )


def parse_document(source: bytes | str | Path) -> etree._ElementTree:
    """Parse XML from bytes, text or a file path.

    Bytes and files are decoded as their XML declaration says. Text is
    taken as already decoded and any XML declaration on it is dropped.

    Raises:
        UnsafeDocumentError: If the document has a DOCTYPE or is malformed.
    """
    parser = hardened_parser()
    try:
        if isinstance(source, Path):
            tree = etree.parse(str(source), parser)
        else:
            data = _XML_DECLARATION_RE.sub("", source, count=1) if isinstance(source, str) else source
            tree = etree.fromstring(data, parser).getroottree()
    except (etree.XMLSyntaxError, OSError, ValueError) as exc:
        raise UnsafeDocumentError(f"Cannot parse XML document: {exc}") from exc

    if tree.docinfo.doctype or tree.docinfo.internalDTD is not None:
        logger.warning("Rejected XML document with DOCTYPE declaration")
        raise UnsafeDocumentError("DOCTYPE declarations are not allowed")
    return tree
