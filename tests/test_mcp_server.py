"""Tests for the MCP server tools, driven through an in-memory client."""

from unittest.mock import patch

import pytest
from fastmcp.client import Client
from fastmcp.exceptions import ToolError

from injection_defense import mcp_server
from injection_defense.mcp_server import MAX_INPUT_LENGTH, mcp


@pytest.fixture(autouse=True)
def fresh_toolkit(monkeypatch):
    """Each test builds its own Toolkit from a clean environment."""
    for name in ("PARAMSTYLE", "HTML_POLICY", "POLICY_FILE", "MAX_MESSAGE_ECHO"):
        monkeypatch.delenv(f"INJECTION_DEFENSE_{name}", raising=False)
    monkeypatch.setattr(mcp_server, "_toolkit", None)


@pytest.fixture
async def client():
    """In-memory MCP client, no subprocess and no network."""
    async with Client(mcp) as c:
        yield c


class TestSanitizeHtml:
    async def test_encoded_by_default(self, client):
        result = await client.call_tool(
            "sanitize_html", {"markup": "<p>hi</p><script>alert(1)</script>"}
        )
        assert result.data == "&lt;p&gt;hi&lt;/p&gt;"

    async def test_renderable(self, client):
        result = await client.call_tool(
            "sanitize_html",
            {"markup": '<a href="javascript:x()">hi</a>', "policy": "links", "renderable": True},
        )
        assert result.data == "<a>hi</a>"

    async def test_unknown_policy(self, client):
        with pytest.raises(ToolError, match="Unknown HTML policy"):
            await client.call_tool("sanitize_html", {"markup": "x", "policy": "nope"})

    async def test_input_too_long(self, client):
        with pytest.raises(ToolError, match="Input too long"):
            await client.call_tool("sanitize_html", {"markup": "x" * (MAX_INPUT_LENGTH + 1)})


class TestEncodeText:
    async def test_log_line(self, client):
        result = await client.call_tool(
            "encode_text", {"text": "a\nINFO forged", "context": "log_line"}
        )
        assert result.data == "a\\nINFO forged"

    async def test_unknown_context(self, client):
        with pytest.raises(ToolError, match="Unknown context"):
            await client.call_tool("encode_text", {"text": "x", "context": "css"})


class TestValidateInput:
    async def test_accepted(self, client):
        result = await client.call_tool(
            "validate_input", {"value": "Brooklyn", "policy": "nosql-value"}
        )
        assert result.data == "accepted"

    async def test_rejected_does_not_echo(self, client):
        result = await client.call_tool(
            "validate_input", {"value": "<script>", "policy": "display-text"}
        )
        assert result.data == "rejected: character at index 0 is not allowed"

    async def test_unknown_policy(self, client):
        with pytest.raises(ToolError, match="Unknown validation policy"):
            await client.call_tool("validate_input", {"value": "x", "policy": "nope"})


class TestListPolicies:
    async def test_lists_builtins(self, client):
        result = await client.call_tool("list_policies", {})
        lines = result.data.splitlines()
        assert "- html: basic" in lines
        assert "- validation: nosql-value" in lines

    async def test_includes_policy_file(self, client, monkeypatch, policy_file):
        monkeypatch.setenv("INJECTION_DEFENSE_POLICY_FILE", str(policy_file))
        result = await client.call_tool("list_policies", {})
        assert "- validation: borough" in result.data.splitlines()


class TestMain:
    def test_stdio_is_default(self, monkeypatch):
        monkeypatch.delenv("MCP_TRANSPORT", raising=False)
        with patch("dotenv.load_dotenv"), patch.object(mcp, "run") as mock_run:
            mcp_server.main()
        mock_run.assert_called_once_with(transport="stdio")

    def test_http_transport(self, monkeypatch):
        monkeypatch.setenv("MCP_TRANSPORT", "http")
        monkeypatch.setenv("MCP_PORT", "9001")
        monkeypatch.delenv("MCP_HOST", raising=False)
        with patch("dotenv.load_dotenv"), patch.object(mcp, "run") as mock_run:
            mcp_server.main()
        mock_run.assert_called_once_with(transport="http", host="127.0.0.1", port=9001)

    def test_bad_port(self, monkeypatch):
        monkeypatch.setenv("MCP_TRANSPORT", "http")
        monkeypatch.setenv("MCP_PORT", "eighty")
        with patch("dotenv.load_dotenv"), pytest.raises(SystemExit):
            mcp_server.main()

    def test_unknown_transport(self, monkeypatch):
        monkeypatch.setenv("MCP_TRANSPORT", "carrier-pigeon")
        with patch("dotenv.load_dotenv"), pytest.raises(SystemExit):
            mcp_server.main()
