"""IMAP check — log in and list mailboxes."""

from __future__ import annotations

import imaplib
import ssl

from pydantic import SecretStr

from .registry import register_check
from .schema import Check, CheckDefinitionModel, CheckResult, Deadline


class IMAPDefinition(CheckDefinitionModel):
    Host: str = ""
    Username: str = ""
    Password: SecretStr = SecretStr("")
    Encrypted: bool = False  # implicit TLS
    Port: str = "143"


@register_check
class IMAPCheck(Check):
    check_type = "imap"
    Definition = IMAPDefinition
    required_fields = ("Host", "Username", "Password")

    def execute(self, deadline: Deadline) -> CheckResult:
        p = self.params
        try:
            if p.Encrypted:
                ctx = ssl.create_default_context()
                ctx.check_hostname = False
                ctx.verify_mode = ssl.CERT_NONE
                client = imaplib.IMAP4_SSL(p.Host, int(p.Port), ssl_context=ctx, timeout=self.timeout(deadline))
            else:
                client = imaplib.IMAP4(p.Host, int(p.Port), timeout=self.timeout(deadline))
        except (OSError, imaplib.IMAP4.error, ValueError) as e:
            return self.fail(f"Connecting to IMAP server {p.Host} failed: {e}")

        try:
            try:
                client.login(p.Username, p.Password.get_secret_value())
            except (OSError, imaplib.IMAP4.error) as e:
                return self.fail(f"Failed to login with user {p.Username}: {e}")
            try:
                status, mailboxes = client.list()
            except (OSError, imaplib.IMAP4.error) as e:
                return self.fail(f"Listing mailboxes failed: {e}")
            if status != "OK":
                return self.fail(f"Listing mailboxes failed: {status}")
        finally:
            try:
                client.logout()
            except (OSError, imaplib.IMAP4.error):
                pass

        return self.succeed(f"Logged in as {p.Username}", details={"mailboxes": len(mailboxes or [])})
