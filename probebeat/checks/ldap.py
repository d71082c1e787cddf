"""LDAP check — bind as a user, optionally after StartTLS."""

from __future__ import annotations

import ssl

import ldap3
from ldap3.core.exceptions import LDAPException
from pydantic import SecretStr

from .registry import register_check
from .schema import Check, CheckDefinitionModel, CheckResult, Deadline


class LDAPDefinition(CheckDefinitionModel):
    User: str = ""  # DN syntax
    Password: SecretStr = SecretStr("")
    Fqdn: str = ""
    Ldaps: bool = False
    Port: str = "389"


@register_check
class LDAPCheck(Check):
    check_type = "ldap"
    Definition = LDAPDefinition
    required_fields = ("User", "Password", "Fqdn")

    def execute(self, deadline: Deadline) -> CheckResult:
        p = self.params
        try:
            server = ldap3.Server(
                p.Fqdn,
                port=int(p.Port),
                connect_timeout=self.timeout(deadline),
                tls=ldap3.Tls(validate=ssl.CERT_NONE),
            )
            conn = ldap3.Connection(
                server,
                user=p.User,
                password=p.Password.get_secret_value(),
                receive_timeout=self.timeout(deadline),
            )
        except (LDAPException, ValueError) as e:
            return self.fail(f"Could not configure connection to {p.Fqdn} : {e}")

        try:
            try:
                conn.open()
            except LDAPException as e:
                return self.fail(f"Could not dial server {p.Fqdn} : {e}")

            if p.Ldaps:
                try:
                    if not conn.start_tls():
                        return self.fail(f"TLS session creation failed : {conn.result}")
                except LDAPException as e:
                    return self.fail(f"TLS session creation failed : {e}")

            try:
                bound = conn.bind()
            except LDAPException as e:
                return self.fail(f"Failed to login with user {p.User} : {e}")
            if not bound:
                desc = (conn.result or {}).get("description", "invalid credentials")
                return self.fail(f"Failed to login with user {p.User} : {desc}")
        finally:
            conn.unbind()

        return self.succeed()
