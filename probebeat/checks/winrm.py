"""WinRM check — run a command on a Windows host over WS-Management."""

from __future__ import annotations

import math

import requests
import winrm
from pydantic import SecretStr
from winrm.exceptions import WinRMError, WinRMOperationTimeoutError, WinRMTransportError

from .content import match_content
from .registry import register_check
from .schema import Check, CheckDefinitionModel, CheckResult, Deadline


class WinRMDefinition(CheckDefinitionModel):
    Host: str = ""
    Username: str = ""
    Password: SecretStr = SecretStr("")
    Cmd: str = ""
    Encrypted: bool = True
    MatchContent: bool = False
    ContentRegex: str = ".*"
    Port: str = "5986"


@register_check
class WinRMCheck(Check):
    check_type = "winrm"
    Definition = WinRMDefinition
    required_fields = ("Host", "Username", "Password", "Cmd")

    def endpoint(self) -> str:
        p = self.params
        scheme = "https" if p.Encrypted else "http"
        return f"{scheme}://{p.Host}:{int(p.Port)}/wsman"

    def execute(self, deadline: Deadline) -> CheckResult:
        p = self.params
        # pywinrm wants whole seconds and read > operation
        operation_timeout = max(1, math.ceil(self.timeout(deadline)))
        try:
            session = winrm.Session(
                self.endpoint(),
                auth=(p.Username, p.Password.get_secret_value()),
                transport="ntlm",
                server_cert_validation="ignore",
                operation_timeout_sec=operation_timeout,
                read_timeout_sec=operation_timeout + 1,
            )
        except (WinRMError, ValueError) as e:
            return self.fail(f"Login to WinRM host {p.Host} failed : {e}")

        try:
            response = session.run_cmd(p.Cmd)
        except (
            WinRMError,
            WinRMTransportError,
            WinRMOperationTimeoutError,
            requests.RequestException,
        ) as e:
            return self.fail(f"Running command {p.Cmd} failed : {e}")

        output = response.std_out.decode("utf-8", errors="replace")
        if response.status_code != 0:
            stderr = response.std_err.decode("utf-8", errors="replace")
            return self.fail(
                f"Executing command {p.Cmd} failed : {stderr}",
                details={"status_code": response.status_code},
            )

        if not p.MatchContent:
            return self.succeed(f"Command {p.Cmd} executed successfully: {output}")

        failure = match_content(True, p.ContentRegex, output)
        if failure:
            return self.fail(failure)
        return self.succeed()
