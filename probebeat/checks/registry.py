"""Check registry — maps a check-type tag to its Check class.

Variants register themselves with :func:`register_check` when their
module is imported (``probebeat.checks`` imports all of them).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .render import render
from .schema import Check

if TYPE_CHECKING:
    from probebeat.definitions import CheckDefinition

logger = logging.getLogger(__name__)

CHECK_TYPES: dict[str, type[Check]] = {}


class UnknownCheckTypeError(Exception):
    """Raised when a definition names a check type nobody registered."""

    def __init__(self, check_type: str) -> None:
        self.check_type = check_type
        super().__init__(f"Unknown check type: {check_type}")


def register_check(cls: type[Check]) -> type[Check]:
    """Class decorator adding ``cls`` to the registry under ``cls.check_type``."""
    if cls.check_type in CHECK_TYPES and CHECK_TYPES[cls.check_type] is not cls:
        logger.warning("Check type %r re-registered by %s", cls.check_type, cls.__name__)
    CHECK_TYPES[cls.check_type] = cls
    return cls


def new_check(check_type: str) -> Check:
    """Return a blank Check of the variant registered for ``check_type``."""
    cls = CHECK_TYPES.get(check_type)
    if cls is None:
        raise UnknownCheckTypeError(check_type)
    return cls()


def unpack_definition(definition: CheckDefinition) -> Check:
    """Render a definition and build the initialized Check it describes.

    Raises UnknownCheckTypeError, DefinitionParseError or CheckValidationError.
    """
    check = new_check(definition.type)
    rendered = render(definition.definition, definition.attributes)
    if rendered.used_fallback:
        logger.debug("Check %s: using unrendered definition (%s)", definition.id, rendered.error)
    check.init(
        definition.id,
        definition.name,
        definition.group,
        definition.score_weight,
        rendered.text,
    )
    return check
