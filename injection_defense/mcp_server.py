"""MCP server exposing the injection defense toolkit as tools."""

import logging
import os
import sys

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError

from injection_defense.codec import Context
from injection_defense.config import ToolkitConfig
from injection_defense.errors import PolicyError
from injection_defense.logsafe import configure_logging
from injection_defense.toolkit import Toolkit

logger = logging.getLogger(__name__)

MAX_INPUT_LENGTH = 100_000

mcp = FastMCP(
    "Injection Defense",
    instructions=(
        "Sanitize untrusted HTML against allow-list policies, encode text for "
        "HTML or log output, and validate input against named policies."
    ),
)

_toolkit: Toolkit | None = None


def get_toolkit() -> Toolkit:
    """Build the shared Toolkit on first use from INJECTION_DEFENSE_* settings."""
    global _toolkit
    if _toolkit is None:
        _toolkit = Toolkit(ToolkitConfig.from_env())
    return _toolkit


def _check_length(text: str) -> None:
    if len(text) > MAX_INPUT_LENGTH:
        raise ToolError(
            f"Input too long ({len(text)} chars, max {MAX_INPUT_LENGTH})."
        )


@mcp.tool
def sanitize_html(markup: str, policy: str | None = None, renderable: bool = False) -> str:
    """Remove every element and attribute the policy does not allow.

    Args:
        markup: Untrusted HTML.
        policy: HTML policy name (see list_policies). Defaults to the
                configured policy.
        renderable: If True, return HTML where allowed tags stay live.
                    If False (default), return fully encoded text.
    """
    _check_length(markup)
    toolkit = get_toolkit()
    try:
        if renderable:
            return toolkit.clean_html(markup, policy)
        return toolkit.render_html(markup, policy).text
    except PolicyError as e:
        raise ToolError(str(e))


@mcp.tool
def encode_text(text: str, context: str = "html_text") -> str:
    """Encode text for an output context: html_text, html_attribute or log_line."""
    _check_length(text)
    try:
        return get_toolkit().encode(text, Context.from_name(context)).text
    except ValueError as e:
        raise ToolError(str(e))


@mcp.tool
def validate_input(value: str, policy: str) -> str:
    """Check a value against a named validation policy.

    Returns "accepted", or "rejected: <reason>". The value is never echoed.
    """
    _check_length(value)
    try:
        result = get_toolkit().validate(value, policy, source="mcp")
    except PolicyError as e:
        raise ToolError(str(e))
    if result:
        return "accepted"
    return f"rejected: {result.reason.describe()}"


@mcp.tool
def list_policies() -> str:
    """List available HTML and validation policy names."""
    policies = get_toolkit().policies
    lines = [f"- html: {name}" for name in sorted(policies.html)]
    lines += [f"- validation: {name}" for name in sorted(policies.validation)]
    return "\n".join(lines)


def main():
    """Entry point for the injection-defense-mcp console script."""
    from dotenv import load_dotenv

    load_dotenv()

    configure_logging(os.environ.get("MCP_LOG_LEVEL", "WARNING"))

    transport = os.environ.get("MCP_TRANSPORT", "stdio").lower()

    if transport == "stdio":
        mcp.run(transport="stdio")
    elif transport == "http":
        host = os.environ.get("MCP_HOST", "127.0.0.1")
        try:
            port = int(os.environ.get("MCP_PORT", "8000"))
        except ValueError:
            sys.exit(f"MCP_PORT must be an integer, got: {os.environ['MCP_PORT']!r}")

        if host not in ("127.0.0.1", "localhost"):
            logger.warning(
                "MCP server binding to %s:%d, which is reachable from the network. "
                "No authentication is configured.", host, port,
            )

        mcp.run(transport="http", host=host, port=port)
    else:
        sys.exit(f"Unknown MCP_TRANSPORT: {transport!r}. Use 'stdio' or 'http'.")


if __name__ == "__main__":
    main()
