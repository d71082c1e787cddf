"""SMTP check — authenticate and send a message."""

from __future__ import annotations

import smtplib
import ssl
from email.message import EmailMessage

from pydantic import SecretStr

from .registry import register_check
from .schema import Check, CheckDefinitionModel, CheckResult, Deadline


class SMTPDefinition(CheckDefinitionModel):
    Host: str = ""
    Username: str = ""
    Password: SecretStr = SecretStr("")
    Sender: str = ""
    Recipient: str = ""
    Body: str = "Hello from probebeat"
    Encrypted: bool = False  # STARTTLS
    Port: str = "25"


@register_check
class SMTPCheck(Check):
    check_type = "smtp"
    Definition = SMTPDefinition
    required_fields = ("Host", "Username", "Password", "Sender", "Recipient")

    def message(self) -> EmailMessage:
        p = self.params
        msg = EmailMessage()
        msg["From"] = p.Sender
        msg["To"] = p.Recipient
        msg["Subject"] = f"probebeat check {self.id}"
        msg.set_content(p.Body)
        return msg

    def execute(self, deadline: Deadline) -> CheckResult:
        p = self.params
        try:
            client = smtplib.SMTP(p.Host, int(p.Port), timeout=self.timeout(deadline))
        except (OSError, smtplib.SMTPException, ValueError) as e:
            return self.fail(f"Connecting to server {p.Host} failed: {e}")

        try:
            if p.Encrypted:
                ctx = ssl.create_default_context()
                ctx.check_hostname = False
                ctx.verify_mode = ssl.CERT_NONE
                try:
                    client.starttls(context=ctx)
                except (OSError, smtplib.SMTPException) as e:
                    return self.fail(f"TLS session creation failed: {e}")
            try:
                client.login(p.Username, p.Password.get_secret_value())
            except (OSError, smtplib.SMTPException) as e:
                return self.fail(f"Failed to login with user {p.Username}: {e}")
            try:
                client.send_message(self.message())
            except (OSError, smtplib.SMTPException) as e:
                return self.fail(f"Sending mail to {p.Recipient} failed: {e}")
        finally:
            try:
                client.quit()
            except (OSError, smtplib.SMTPException):
                client.close()

        return self.succeed(f"Mail sent to {p.Recipient}")
