"""Tests for the package's public surface."""

import sys

import pytest

import injection_defense


class TestVersion:
    def test_version_is_set(self):
        assert injection_defense.__version__ == "0.1.0"

    @pytest.mark.skipif(
        sys.version_info < (3, 11), reason="tomllib requires 3.11+"
    )
    def test_version_matches_pyproject(self):
        """Ensure __init__.__version__ matches pyproject.toml."""
        import tomllib
        from pathlib import Path

        pyproject = Path(__file__).parent.parent / "pyproject.toml"
        with open(pyproject, "rb") as f:
            data = tomllib.load(f)
        assert injection_defense.__version__ == data["project"]["version"]


class TestAll:
    def test_every_name_is_importable(self):
        for name in injection_defense.__all__:
            assert hasattr(injection_defense, name), name

    def test_core_names_exported(self):
        expected = {
            "Toolkit",
            "ParameterBinder",
            "AllowListPolicy",
            "ValidationPolicy",
            "Context",
            "encode",
            "sanitize",
            "validate",
            "bind",
        }
        assert expected <= set(injection_defense.__all__)

    def test_all_is_sorted(self):
        assert injection_defense.__all__ == sorted(injection_defense.__all__)


class TestEndToEnd:
    def test_query_and_output_paths(self, color_db):
        toolkit = injection_defense.Toolkit()
        query = toolkit.sql(
            "select friendly_name from color where friendly_name = :name",
            {"name": "yellow"},
            checks={"name": "display-text"},
        )
        (name,) = query.execute(color_db.cursor()).fetchone()
        assert toolkit.render_html(f"<em>{name}</em><script>x</script>").text == (
            "&lt;em&gt;yellow&lt;/em&gt;"
        )
