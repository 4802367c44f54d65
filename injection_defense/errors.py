"""Custom exceptions for the injection defense toolkit."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .validation import RejectionReason


class ToolkitError(Exception):
    """Base exception for injection defense toolkit errors."""
    pass


class ValidationError(ToolkitError):
    """Untrusted input was rejected by a validation policy. Recoverable.

    Carries the typed rejection reason. The rejected value itself is never
    stored in the message.
    """

    def __init__(self, message: str = "", *, reason: RejectionReason | None = None) -> None:
        super().__init__(message)
        self.reason = reason


class PolicyError(ToolkitError):
    """Malformed or missing sanitizer/validator policy. Programming error.

    Carries a list of problems so callers see all of them at once.
    """

    def __init__(self, message: str = "", *, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors: list[str] = errors if errors is not None else []


class TemplateError(ToolkitError):
    """Query template could not be parsed or is structurally invalid."""
    pass


class BindingError(ToolkitError):
    """Base exception for placeholder binding failures. Recoverable.

    Raised before any query object exists, so a partially bound query
    never reaches an execution driver.
    """

    def __init__(self, message: str = "", *, name: str = "") -> None:
        super().__init__(message)
        self.name = name


class UnboundPlaceholder(BindingError):
    """Template references a placeholder with no supplied value."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Placeholder {name!r} is not bound", name=name)


class UnusedValue(BindingError):
    """A value was supplied for a name the template does not reference."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Value {name!r} does not match any placeholder", name=name)


class DuplicateBinding(BindingError):
    """The same placeholder was bound more than once."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Placeholder {name!r} is bound more than once", name=name)


class TypeMismatch(BindingError):
    """A value's type conflicts with what the slot or adapter accepts."""

    def __init__(self, name: str, expected: str, actual: str) -> None:
        super().__init__(
            f"Placeholder {name!r} expects {expected}, got {actual}", name=name
        )
        self.expected = expected
        self.actual = actual


class UnsafeDocumentError(ToolkitError):
    """XML document declares a DTD or could not be parsed safely."""
    pass
