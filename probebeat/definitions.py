"""Check definitions — YAML loading and the borrow/return hand-off.

The store is the long-lived owner of the definition list.  Each pass
borrows the list through a :class:`DefinitionHandoff` and gives it back
as soon as its checks are launched, so a reload can swap the list in
between passes without racing a pass that is still fanning out.
"""

from __future__ import annotations

import json
import logging
import queue
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)


# ── Data model ───────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class CheckDefinition:
    """Declarative, possibly templated description of one check."""

    id: str
    name: str
    type: str  # noop | http | icmp | ssh | dns | ftp | ldap | vnc | imap | smtp | winrm | xmpp
    definition: str  # templated JSON payload
    group: str = ""
    score_weight: float = 1
    attributes: dict[str, str] = field(default_factory=dict)


# ── Store ────────────────────────────────────────────────────────────────────


class DefinitionStore:
    """Loads and caches check definitions from a YAML file."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        self._definitions: list[CheckDefinition] = []
        self._loaded = False

    def load(self, force: bool = False) -> list[CheckDefinition]:
        """Parse the YAML file and return the definition list."""
        if self._loaded and not force:
            return self._definitions

        self._definitions = []
        if not self._path.exists():
            logger.warning("Definitions file not found: %s", self._path)
            self._loaded = True
            return self._definitions

        try:
            raw = yaml.safe_load(self._path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error("Failed to parse %s: %s", self._path, e)
            self._loaded = True
            return self._definitions

        if not isinstance(raw, dict):
            logger.error("Expected a mapping with a 'checks' list in %s", self._path)
            self._loaded = True
            return self._definitions

        seen: set[str] = set()
        for entry in raw.get("checks") or []:
            try:
                definition = parse_definition(entry)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed check entry: %s", e)
                continue
            if definition.id in seen:
                logger.warning("Skipping duplicate check id: %s", definition.id)
                continue
            seen.add(definition.id)
            self._definitions.append(definition)

        self._loaded = True
        logger.info("Loaded %d check definitions from %s", len(self._definitions), self._path)
        return self._definitions

    @property
    def definitions(self) -> list[CheckDefinition]:
        return self.load()

    def reload(self) -> list[CheckDefinition]:
        """Force reload from disk."""
        return self.load(force=True)


def parse_definition(raw: dict[str, Any]) -> CheckDefinition:
    """Build a CheckDefinition from one YAML entry.

    ``definition`` may be a JSON string or a mapping (serialized to JSON
    before templating).  Attribute values are coerced to strings.
    """
    if not isinstance(raw, dict):
        raise TypeError(f"expected a mapping, got {type(raw).__name__}")

    body = raw.get("definition", "{}")
    if isinstance(body, dict):
        body = json.dumps(body)
    elif not isinstance(body, str):
        raise TypeError(f"check {raw.get('id')!r}: definition must be a string or mapping")

    attributes = raw.get("attributes") or {}
    if not isinstance(attributes, dict):
        raise TypeError(f"check {raw.get('id')!r}: attributes must be a mapping")

    check_id = str(raw["id"])
    return CheckDefinition(
        id=check_id,
        name=str(raw.get("name", check_id)),
        type=str(raw["type"]),
        definition=body,
        group=str(raw.get("group", "")),
        score_weight=float(raw.get("score_weight", 1)),
        attributes={str(k): "" if v is None else str(v) for k, v in attributes.items()},
    )


# ── Hand-off ─────────────────────────────────────────────────────────────────


class DefinitionHandoff:
    """One-slot exchange point for the current definition list.

    ``borrow`` blocks until the list is available; the borrower must
    ``give_back`` it (the same list or a replacement).
    """

    def __init__(self, definitions: list[CheckDefinition] | None = None) -> None:
        self._slot: queue.Queue[list[CheckDefinition]] = queue.Queue(maxsize=1)
        self._slot.put_nowait(list(definitions or []))

    def borrow(self, timeout: float | None = None) -> list[CheckDefinition]:
        try:
            return self._slot.get(timeout=timeout)
        except queue.Empty:
            raise TimeoutError("Definitions were not returned in time") from None

    def give_back(self, definitions: list[CheckDefinition]) -> None:
        self._slot.put_nowait(definitions)

    def replace(self, definitions: list[CheckDefinition], timeout: float | None = None) -> None:
        """Swap in a new list once no pass holds the current one."""
        self.borrow(timeout=timeout)
        self.give_back(list(definitions))
