"""Injection defense toolkit: safe binding and encoding for SQL, NoSQL, XPath, HTML and logs."""

__version__ = "0.1.0"

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
    bind,
)
from .codec import Context, EncodedOutput, encode, for_html, for_html_attribute, for_log
from .config import ToolkitConfig
from .errors import (
    BindingError,
    DuplicateBinding,
    PolicyError,
    TemplateError,
    ToolkitError,
    TypeMismatch,
    UnboundPlaceholder,
    UnsafeDocumentError,
    UnusedValue,
    ValidationError,
)
from .policy import AllowListPolicy, PolicySet, load_policy_file
from .sanitizer import clean, sanitize
from .templates import FilterTemplate, SqlTemplate, ValueType, XPathTemplate
from .toolkit import Toolkit
from .validation import RawInput, ValidationPolicy, ValidationResult, validate
from .xml_safety import parse_document

__all__ = [
    "AllowListPolicy",
    "BindingError",
    "BoundValue",
    "Context",
    "DuplicateBinding",
    "EncodedOutput",
    "ExecutableQuery",
    "FilterQuery",
    "FilterTemplate",
    "NoSqlFilterAdapter",
    "ParameterBinder",
    "PolicyError",
    "PolicySet",
    "RawInput",
    "SqlAdapter",
    "SqlQuery",
    "SqlTemplate",
    "TemplateError",
    "Toolkit",
    "ToolkitConfig",
    "ToolkitError",
    "TypeMismatch",
    "UnboundPlaceholder",
    "UnsafeDocumentError",
    "UnusedValue",
    "ValidationError",
    "ValidationPolicy",
    "ValidationResult",
    "ValueType",
    "XPathAdapter",
    "XPathQuery",
    "XPathTemplate",
    "bind",
    "clean",
    "encode",
    "for_html",
    "for_html_attribute",
    "for_log",
    "load_policy_file",
    "parse_document",
    "sanitize",
    "validate",
]
