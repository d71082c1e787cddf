"""Shared check model — results, definition errors, deadlines, the Check base.

Every protocol variant subclasses :class:`Check`, declares a pydantic
``Definition`` model for its JSON payload plus the ordered tuple of
required fields, and implements :meth:`Check.execute`.  The public
:meth:`Check.run` wraps ``execute`` so that exactly one result lands on
the output queue and the wait group is released exactly once, whatever
happens inside ``execute``.
"""

from __future__ import annotations

import abc
import logging
import queue
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, ClassVar

from pydantic import BaseModel, ConfigDict, SecretStr, model_validator
from pydantic import ValidationError as PydanticValidationError

from probebeat.config import settings

if TYPE_CHECKING:
    from probebeat.scheduler import WaitGroup

logger = logging.getLogger(__name__)

TIMED_OUT_PREFIX = "Check timed out: "


# ── Models ───────────────────────────────────────────────────────────────────


@dataclass
class CheckResult:
    """Outcome of a single check for a single pass."""

    id: str
    name: str
    group: str
    score_weight: float
    check_type: str
    passed: bool = False
    message: str = ""
    details: dict[str, Any] | None = None
    timed_out: bool = False
    timestamp: str = ""

    def __post_init__(self) -> None:
        if not self.timestamp:
            self.timestamp = datetime.now(timezone.utc).isoformat()


class CheckValidationError(Exception):
    """A required field is missing from a check definition.

    Only the first missing field (in the variant's fixed order) is reported.
    """

    def __init__(self, check_id: str, check_type: str, field: str) -> None:
        self.check_id = check_id
        self.check_type = check_type
        self.field = field
        super().__init__(
            f"Error validating {check_type} check {check_id}: missing required field {field}"
        )


class DefinitionParseError(Exception):
    """The rendered definition could not be parsed into the variant's fields."""

    def __init__(self, check_id: str, check_type: str, reason: str) -> None:
        self.check_id = check_id
        self.check_type = check_type
        self.reason = reason
        super().__init__(f"Error parsing {check_type} check {check_id}: {reason}")


class Deadline:
    """Monotonic pass deadline handed to each check."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        self._expires = time.monotonic() + timeout

    def remaining(self) -> float:
        return max(0.0, self._expires - time.monotonic())

    @property
    def expired(self) -> bool:
        return time.monotonic() >= self._expires

    def bound(self, limit: float) -> float:
        """Smaller of ``limit`` and the time left, never zero (sockets treat 0 as non-blocking)."""
        return max(0.001, min(limit, self.remaining()))


class CheckDefinitionModel(BaseModel):
    """Base for variant payload models (flat JSON objects)."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        # null leaves the field at its default
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


# ── Check base ───────────────────────────────────────────────────────────────


def _is_missing(value: Any) -> bool:
    if isinstance(value, SecretStr):
        return not value.get_secret_value()
    return value is None or value == ""


class Check(abc.ABC):
    """A single check instance: initialized from a definition, run once per pass."""

    check_type: ClassVar[str]
    Definition: ClassVar[type[CheckDefinitionModel]]
    required_fields: ClassVar[tuple[str, ...]] = ()

    def __init__(self) -> None:
        self.id = ""
        self.name = ""
        self.group = ""
        self.score_weight: float = 0
        self.params: Any = self.Definition()
        self.connect_timeout = settings.connect_timeout
        self._started_at = ""

    def init(
        self,
        check_id: str,
        name: str,
        group: str,
        score_weight: float,
        definition: str | bytes,
    ) -> None:
        """Populate the check from a rendered definition.

        Identity fields come from the arguments only.  Defaults live on the
        ``Definition`` model so they apply before the payload is parsed.
        Raises :class:`DefinitionParseError` or :class:`CheckValidationError`.
        """
        self.id = check_id
        self.name = name
        self.group = group
        self.score_weight = score_weight

        try:
            self.params = self.Definition.model_validate_json(definition)
        except PydanticValidationError as e:
            reason = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'definition'}: {err['msg']}"
                for err in e.errors()
            )
            raise DefinitionParseError(check_id, self.check_type, reason) from e

        for field in self.required_fields:
            if _is_missing(getattr(self.params, field)):
                raise CheckValidationError(check_id, self.check_type, field)

    def run(
        self,
        deadline: Deadline,
        wg: WaitGroup,
        out: queue.Queue[CheckResult],
    ) -> None:
        """Run the check and emit exactly one result, then release ``wg``."""
        try:
            out.put_nowait(self._run_safely(deadline))
        finally:
            wg.done()

    def _run_safely(self, deadline: Deadline) -> CheckResult:
        self._started_at = datetime.now(timezone.utc).isoformat()
        try:
            result = self.execute(deadline)
        except Exception as e:
            logger.exception("Unhandled error in %s check %s", self.check_type, self.id)
            result = self.fail(f"Unexpected error: {type(e).__name__}: {e}")

        if not result.passed and deadline.expired:
            result.timed_out = True
            result.message = TIMED_OUT_PREFIX + result.message
        return result

    @abc.abstractmethod
    def execute(self, deadline: Deadline) -> CheckResult:
        """Probe the remote service and describe the outcome."""

    # -- Result helpers --------------------------------------------------------

    def _result(self, passed: bool, message: str, details: dict[str, Any] | None) -> CheckResult:
        return CheckResult(
            id=self.id,
            name=self.name,
            group=self.group,
            score_weight=self.score_weight,
            check_type=self.check_type,
            passed=passed,
            message=message,
            details=details,
            timestamp=self._started_at,
        )

    def fail(self, message: str, details: dict[str, Any] | None = None) -> CheckResult:
        return self._result(False, message, details)

    def succeed(self, message: str = "", details: dict[str, Any] | None = None) -> CheckResult:
        return self._result(True, message, details)

    def timeout(self, deadline: Deadline) -> float:
        """Transport timeout for the next blocking call."""
        return deadline.bound(self.connect_timeout)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id!r} params={self.params!r}>"
