"""ICMP check — echo requests with an optional packet-loss allowance."""

from __future__ import annotations

from icmplib import ping
from icmplib.exceptions import ICMPLibError

from .registry import register_check
from .schema import Check, CheckDefinitionModel, CheckResult, Deadline


class ICMPDefinition(CheckDefinitionModel):
    IP: str = ""
    Count: int = 1
    AllowPacketLoss: bool = False
    Percent: int = 100  # max acceptable loss when AllowPacketLoss is on


@register_check
class ICMPCheck(Check):
    check_type = "icmp"
    Definition = ICMPDefinition
    required_fields = ("IP",)

    def execute(self, deadline: Deadline) -> CheckResult:
        p = self.params
        count = max(1, p.Count)
        try:
            host = ping(
                p.IP,
                count=count,
                interval=0.2,
                timeout=self.timeout(deadline) / count,
                privileged=False,
            )
        except (ICMPLibError, OSError) as e:
            return self.fail(f"Error pinging {p.IP}: {e}")

        loss_pct = round(host.packet_loss * 100)
        details = {
            "packets_sent": host.packets_sent,
            "packets_received": host.packets_received,
            "avg_rtt_ms": host.avg_rtt,
        }
        if not host.is_alive:
            return self.fail(f"No echo replies from {p.IP}", details=details)
        if loss_pct > 0 and not (p.AllowPacketLoss and loss_pct <= p.Percent):
            return self.fail(f"Packet loss of {loss_pct}% to {p.IP}", details=details)
        return self.succeed(f"{host.packets_received}/{host.packets_sent} replies from {p.IP}", details=details)
