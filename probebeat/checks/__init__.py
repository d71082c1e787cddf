"""Protocol checks — model, renderer, registry and all built-in variants."""

from . import dns, ftp, http, icmp, imap, ldap, noop, smtp, ssh, vnc, winrm, xmpp  # noqa: F401  (registration)
from .registry import CHECK_TYPES, UnknownCheckTypeError, new_check, register_check, unpack_definition
from .render import Rendered, render
from .schema import (
    Check,
    CheckDefinitionModel,
    CheckResult,
    CheckValidationError,
    Deadline,
    DefinitionParseError,
)

__all__ = [
    "CHECK_TYPES",
    "Check",
    "CheckDefinitionModel",
    "CheckResult",
    "CheckValidationError",
    "Deadline",
    "DefinitionParseError",
    "Rendered",
    "UnknownCheckTypeError",
    "new_check",
    "register_check",
    "render",
    "unpack_definition",
]
