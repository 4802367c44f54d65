#!/usr/bin/env python3
"""CLI for the injection defense toolkit."""

import argparse
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from injection_defense.codec import Context
from injection_defense.config import ToolkitConfig
from injection_defense.errors import PolicyError
from injection_defense.logsafe import configure_logging
from injection_defense.policy import load_policy_file
from injection_defense.toolkit import Toolkit

logger = logging.getLogger(__name__)


def _read_text(value: str | None) -> str:
    """Use the positional argument, or stdin when it is omitted or "-"."""
    if value is None or value == "-":
        return sys.stdin.read()
    return value


def _build_toolkit(args: argparse.Namespace) -> Toolkit:
    config = ToolkitConfig.from_env()
    if args.policy_file is not None:
        config = ToolkitConfig(
            sql_paramstyle=config.sql_paramstyle,
            html_policy=config.html_policy,
            policy_file=args.policy_file,
            max_message_echo=config.max_message_echo,
        )
    return Toolkit(config)


def cmd_sanitize(args: argparse.Namespace) -> int:
    toolkit = _build_toolkit(args)
    markup = _read_text(args.text)
    if args.clean:
        print(toolkit.clean_html(markup, args.policy))
    else:
        print(toolkit.render_html(markup, args.policy))
    return 0


def cmd_encode(args: argparse.Namespace) -> int:
    context = Context.from_name(args.context)
    text = _read_text(args.text)
    if args.text is None and context is Context.LOG_LINE and text.endswith("\n"):
        # Trailing newline added by the shell pipe, not part of the payload.
        text = text[:-1]
    print(Toolkit().encode(text, context))
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    toolkit = _build_toolkit(args)
    result = toolkit.validate(_read_text(args.text).rstrip("\n"), args.policy, source="cli")
    if result:
        print("accepted")
        return 0
    print(f"rejected: {result.reason.describe()}")
    return 1


def cmd_check_policy(args: argparse.Namespace) -> int:
    try:
        policies = load_policy_file(args.file)
    except PolicyError as e:
        print(f"Error: {e}", file=sys.stderr)
        for problem in e.errors:
            print(f"  - {problem}", file=sys.stderr)
        return 1

    for name, policy in sorted(policies.html.items()):
        elements = ", ".join(
            f"{el}[{','.join(sorted(attrs))}]" if attrs else el
            for el, attrs in sorted(policy.elements.items())
        )
        print(f"html.{name}: {elements or '(text only)'}")
    for name, policy in sorted(policies.validation.items()):
        rules = ", ".join(r.rule_id for r in policy.rules) or "no rules"
        print(f"validation.{name}: max_length={policy.max_length}, {rules}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Sanitize, encode and validate untrusted input.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py sanitize "<p>hi</p><script>x</script>" --policy basic
  python main.py encode $'line1\\nline2' --context log_line
  python main.py validate "Brooklyn" --policy nosql-value
  python main.py check-policy policies.yaml
        """,
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--policy-file",
        type=Path,
        default=None,
        help="YAML file with extra named policies",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_sanitize = sub.add_parser("sanitize", help="Strip markup not allowed by a policy")
    p_sanitize.add_argument("text", nargs="?", default=None, help="Markup (default: stdin)")
    p_sanitize.add_argument("--policy", default=None, help="HTML policy name")
    p_sanitize.add_argument(
        "--clean", action="store_true",
        help="Output renderable HTML instead of fully encoded text",
    )
    p_sanitize.set_defaults(func=cmd_sanitize)

    p_encode = sub.add_parser("encode", help="Encode text for an output context")
    p_encode.add_argument("text", nargs="?", default=None, help="Text (default: stdin)")
    p_encode.add_argument(
        "--context", "-c",
        default="html_text",
        choices=[c.value for c in Context],
        help="Output context (default: html_text)",
    )
    p_encode.set_defaults(func=cmd_encode)

    p_validate = sub.add_parser("validate", help="Check input against a validation policy")
    p_validate.add_argument("text", nargs="?", default=None, help="Input (default: stdin)")
    p_validate.add_argument("--policy", required=True, help="Validation policy name")
    p_validate.set_defaults(func=cmd_validate)

    p_check = sub.add_parser("check-policy", help="Load a policy file and report problems")
    p_check.add_argument("file", type=Path, help="YAML policy file")
    p_check.set_defaults(func=cmd_check_policy)

    return parser


def main(argv: list[str] | None = None) -> int:
    # Load environment variables from .env file
    load_dotenv()

    args = build_parser().parse_args(argv)
    configure_logging(
        logging.DEBUG if args.verbose
        else os.environ.get("INJECTION_DEFENSE_LOG_LEVEL", "WARNING")
    )

    try:
        return args.func(args)
    except (PolicyError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
