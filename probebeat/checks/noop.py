"""No-op check — always passes, useful for exercising the pipeline."""

from __future__ import annotations

from .registry import register_check
from .schema import Check, CheckDefinitionModel, CheckResult, Deadline


class NoopDefinition(CheckDefinitionModel):
    Dynamic: str = ""
    Static: str = ""


@register_check
class NoopCheck(Check):
    check_type = "noop"
    Definition = NoopDefinition

    def execute(self, deadline: Deadline) -> CheckResult:
        p = self.params
        return self.succeed(
            f"Static: {p.Static} Dynamic: {p.Dynamic}",
            details={"static": p.Static, "dynamic": p.Dynamic},
        )
