"""Toolkit: the public entry point wiring validation, binding and encoding.

    untrusted input -> validate -> bind (query path) | sanitize + encode (output path)

A Toolkit is built once from a ToolkitConfig and a PolicySet and is then
read-only, so one instance can be shared by concurrent callers.
"""

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from .binder import (
    BoundValue,
    ExecutableQuery,
    FilterQuery,
    NoSqlFilterAdapter,
    ParameterBinder,
    SqlAdapter,
    SqlQuery,
    XPathAdapter,
    XPathQuery,
    collect_values,
)
from .codec import Context, EncodedOutput, encode
from .config import ToolkitConfig
from .errors import BindingError, PolicyError, ValidationError
from .policy import DEFAULT_POLICIES, AllowListPolicy, PolicySet, load_policy_file
from .sanitizer import clean, sanitize
from .templates import FilterClause, FilterTemplate, SqlTemplate, XPathTemplate
from .validation import (
    NOSQL_VALUE_POLICY,
    RawInput,
    ValidationPolicy,
    ValidationResult,
    validate,
)

logger = logging.getLogger(__name__)

Values = Mapping[str, Any] | Iterable[BoundValue] | None
Checks = Mapping[str, str | ValidationPolicy] | None


class Toolkit:
    """Injection defense for SQL, NoSQL filters, XPath, HTML and logs."""

    def __init__(self, config: ToolkitConfig | None = None,
                 policies: PolicySet | None = None) -> None:
        """Build the toolkit.

        Raises:
            PolicyError: If the policy file is invalid or the configured
                HTML policy does not exist.
        """
        self.config = config or ToolkitConfig()

        merged = DEFAULT_POLICIES
        if self.config.policy_file is not None:
            merged = merged.merged(load_policy_file(self.config.policy_file))
        if policies is not None:
            merged = merged.merged(policies)
        self.policies = merged

        self.html_policy = self.policies.html_policy(self.config.html_policy)
        nosql_policy = self.policies.validation.get("nosql-value", NOSQL_VALUE_POLICY)

        self._sql = ParameterBinder(SqlAdapter(self.config.sql_paramstyle))
        self._nosql = ParameterBinder(NoSqlFilterAdapter(nosql_policy))
        self._xpath = ParameterBinder(XPathAdapter())

    # --- policy lookup ---

    def _validation_policy(self, policy: str | ValidationPolicy) -> ValidationPolicy:
        if isinstance(policy, ValidationPolicy):
            return policy
        if isinstance(policy, str):
            return self.policies.validation_policy(policy)
        raise PolicyError(f"Expected a validation policy or its name, got {type(policy).__name__}")

    def _allow_list(self, policy: str | AllowListPolicy | None) -> AllowListPolicy:
        if policy is None:
            return self.html_policy
        if isinstance(policy, AllowListPolicy):
            return policy
        if isinstance(policy, str):
            return self.policies.html_policy(policy)
        raise PolicyError(f"Expected an HTML policy or its name, got {type(policy).__name__}")

    # --- validation ---

    def validate(self, value: str | RawInput, policy: str | ValidationPolicy,
                 source: str = "") -> ValidationResult:
        """Validate one value against a named or explicit policy."""
        raw = value if isinstance(value, RawInput) else RawInput(value=value, source=source)
        return validate(raw, self._validation_policy(policy))

    def _run_checks(self, template: Any, values: dict[str, Any], checks: Checks) -> None:
        if not checks:
            return
        names = {p.name for p in template.placeholders}
        unknown = sorted(name for name in checks if name not in names)
        if unknown:
            raise PolicyError(
                f"Checks name unknown placeholders: {', '.join(unknown)}",
                errors=[f"No placeholder named {name!r}" for name in unknown],
            )
        for name, policy in checks.items():
            value = values.get(name)
            if not isinstance(value, str):
                # Missing names surface as UnboundPlaceholder during binding.
                continue
            self.validate(value, policy, source=name).raise_for_rejection()

    # --- output path ---

    def render_html(self, markup: str, policy: str | AllowListPolicy | None = None) -> EncodedOutput:
        """Sanitize markup with an allow-list policy, then HTML-encode it."""
        return sanitize(markup, self._allow_list(policy))

    def clean_html(self, markup: str, policy: str | AllowListPolicy | None = None) -> str:
        """Sanitize markup and return renderable HTML."""
        return clean(markup, self._allow_list(policy))

    def encode(self, text: str, context: Context | str) -> EncodedOutput:
        if isinstance(context, str):
            context = Context.from_name(context)
        return encode(text, context)

    def log_safe(self, text: str) -> EncodedOutput:
        """Encode text for a single log line."""
        return encode(text, Context.LOG_LINE)

    # --- query path ---

    def _bind(self, binder: ParameterBinder, template: Any, values: Values,
              checks: Checks) -> ExecutableQuery:
        collected = collect_values(values)
        self._run_checks(template, collected, checks)
        return binder.bind(template, collected)

    def sql(self, template: str | SqlTemplate, values: Values = None,
            checks: Checks = None) -> SqlQuery:
        """Validate the checked values, then bind them to a SQL template.

        Args:
            template: SQL text with :name markers, or a parsed SqlTemplate.
            values: Values for every placeholder.
            checks: placeholder name -> validation policy (or its name) to
                apply before binding.

        Raises:
            ValidationError: If a checked value is rejected.
            PolicyError: If checks name a placeholder the template lacks.
            BindingError: If the values do not match the placeholders.
        """
        if isinstance(template, str):
            template = SqlTemplate.parse(template)
        return self._bind(self._sql, template, values, checks)

    def nosql(self, template: FilterTemplate | Iterable[FilterClause | tuple[str, str, str]],
              values: Values = None, checks: Checks = None) -> FilterQuery:
        """Validate, then build a structured filter (see sql() for arguments)."""
        if not isinstance(template, FilterTemplate):
            template = FilterTemplate.parse(template)
        return self._bind(self._nosql, template, values, checks)

    def xpath(self, template: str | XPathTemplate, values: Values = None,
              checks: Checks = None) -> XPathQuery:
        """Validate, then bind XPath variables (see sql() for arguments)."""
        if isinstance(template, str):
            template = XPathTemplate.parse(template)
        return self._bind(self._xpath, template, values, checks)

    # --- user-facing errors ---

    def rejection_message(self, error: ValidationError | BindingError,
                          raw: str | None = None) -> EncodedOutput:
        """Turn a rejection into HTML-safe text for the end user.

        The optional raw input is truncated and the whole message is
        encoded, so attacker input is never reflected verbatim.
        """
        if isinstance(error, ValidationError):
            detail = error.reason.describe() if error.reason is not None else "invalid value"
            message = f"Input rejected: {detail}"
        elif isinstance(error, BindingError):
            message = f"Query rejected: {error}"
        else:
            raise TypeError(f"Cannot build a rejection message for {type(error).__name__}")

        limit = self.config.max_message_echo
        if raw is not None and limit > 0:
            echoed = raw if len(raw) <= limit else raw[:limit] + "..."
            message = f'{message} (received "{echoed}")'
        logger.info("%s", encode(message, Context.LOG_LINE).text)
        return encode(message, Context.HTML_TEXT)
