"""Shared fixtures for injection_defense tests."""

import sqlite3

import pytest

from injection_defense.xml_safety import parse_document


BOOKS_XML = """<?xml version="1.0"?>
<catalog>
   <book id="bk101">
      <author>Gambardella, Matthew</author>
      <title>XML Developer's Guide</title>
      <price>44</price>
   </book>
   <book id="bk102">
      <author>Ralls, Kim</author>
      <title>Midnight Rain</title>
      <price>5</price>
   </book>
   <book id="bk103">
      <author>Corets, Eva</author>
      <title>Maeve Ascendant</title>
      <price>6</price>
   </book>
</catalog>
"""

POLICY_YAML = """
html:
  profile:
    elements:
      p: []
      strong: []
      a: [href, title]
    protocols: [https]
validation:
  borough:
    max_length: 50
    min_length: 1
    charset: "A-Za-z "
    forbidden: "'\\"\\\\;{}$"
  comment:
    max_length: 200
    charset: "a-zA-Z0-9\\\\s\\\\-.,!?"
    rules:
      - id: no-double-dash
        kind: no_consecutive
        char: "-"
      - id: no-union
        kind: forbid_substrings
        values: ["union select"]
"""


@pytest.fixture
def books_document():
    """Parsed book catalog used by the XPath samples."""
    return parse_document(BOOKS_XML)


@pytest.fixture
def color_db():
    """In-memory database with the color table, seeded with yellow."""
    con = sqlite3.connect(":memory:")
    con.execute(
        "create table color (friendly_name text primary key, red integer, green integer, blue integer)"
    )
    con.execute("insert into color values ('yellow', 213, 242, 26)")
    con.execute("insert into color values ('blue', 0, 0, 255)")
    con.commit()
    yield con
    con.close()


@pytest.fixture
def policy_file(tmp_path):
    """A valid YAML policy file."""
    path = tmp_path / "policies.yaml"
    path.write_text(POLICY_YAML)
    return path
