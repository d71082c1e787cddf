"""DNS check — ask a specific server for an A record and compare it."""

from __future__ import annotations

import dns.exception
import dns.resolver

from .registry import register_check
from .schema import Check, CheckDefinitionModel, CheckResult, Deadline


class DNSDefinition(CheckDefinitionModel):
    Server: str = ""
    Fqdn: str = ""
    Ip: str = ""  # expected answer
    Port: str = "53"


@register_check
class DNSCheck(Check):
    check_type = "dns"
    Definition = DNSDefinition
    required_fields = ("Server", "Fqdn", "Ip")

    def execute(self, deadline: Deadline) -> CheckResult:
        p = self.params
        resolver = dns.resolver.Resolver(configure=False)
        resolver.nameservers = [p.Server]
        resolver.port = int(p.Port)
        try:
            answer = resolver.resolve(p.Fqdn, "A", lifetime=self.timeout(deadline))
        except dns.exception.DNSException as e:
            return self.fail(f"Error querying {p.Server} for {p.Fqdn}: {e}")

        records = sorted(r.address for r in answer)
        if p.Ip not in records:
            return self.fail(
                f"Incorrect answer for {p.Fqdn}: expected {p.Ip}, got {', '.join(records)}",
                details={"records": records},
            )
        return self.succeed(f"{p.Fqdn} resolved to {p.Ip}", details={"records": records})
