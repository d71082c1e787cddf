"""Definition rendering — substitutes attributes into templated definitions.

Rendering never fails: a template that does not parse, refers to an
attribute the definition does not carry, or raises while evaluating
yields the raw text verbatim and ``used_fallback`` is set on the result.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass

import jinja2

logger = logging.getLogger(__name__)

_env = jinja2.Environment(
    undefined=jinja2.StrictUndefined,
    autoescape=False,
    keep_trailing_newline=True,
)


@dataclass(frozen=True)
class Rendered:
    text: str
    used_fallback: bool = False
    error: str = ""


def render(raw: str, attributes: Mapping[str, str] | None = None) -> Rendered:
    """Render ``raw`` with ``{{ name }}`` placeholders bound to ``attributes``."""
    try:
        text = _env.from_string(raw).render(dict(attributes or {}))
    except Exception as e:
        logger.debug("Template rendering failed, using raw definition: %s", e)
        return Rendered(text=raw, used_fallback=True, error=f"{type(e).__name__}: {e}")
    return Rendered(text=text)
