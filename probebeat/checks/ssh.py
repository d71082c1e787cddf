"""SSH check — log in with a password and run a command."""

from __future__ import annotations

import socket

import paramiko
from pydantic import SecretStr, ValidationInfo, field_validator

from .content import match_content
from .registry import register_check
from .schema import Check, CheckDefinitionModel, CheckResult, Deadline


class SSHDefinition(CheckDefinitionModel):
    IP: str = ""
    Username: str = ""
    Password: SecretStr = SecretStr("")
    Cmd: str = ""
    MatchContent: bool = False
    ContentRegex: str = ".*"
    Port: str = "22"

    @field_validator("Port", "ContentRegex", mode="after")
    @classmethod
    def _empty_means_default(cls, value: str, info: ValidationInfo) -> str:
        return value or cls.model_fields[info.field_name].default


@register_check
class SSHCheck(Check):
    check_type = "ssh"
    Definition = SSHDefinition
    required_fields = ("IP", "Username", "Password", "Cmd")

    def execute(self, deadline: Deadline) -> CheckResult:
        p = self.params
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            try:
                timeout = self.timeout(deadline)
                client.connect(
                    p.IP,
                    port=int(p.Port),
                    username=p.Username,
                    password=p.Password.get_secret_value(),
                    timeout=timeout,
                    banner_timeout=timeout,
                    auth_timeout=timeout,
                    allow_agent=False,
                    look_for_keys=False,
                )
            except (paramiko.SSHException, OSError, ValueError) as e:
                return self.fail(f"Error creating ssh client: {e}")

            try:
                _, stdout, _ = client.exec_command(p.Cmd, timeout=self.timeout(deadline))
                stdout.channel.set_combine_stderr(True)
                output = stdout.read().decode("utf-8", errors="replace")
                status = stdout.channel.recv_exit_status()
            except (paramiko.SSHException, socket.timeout, OSError) as e:
                return self.fail(f"Error executing command: {e}")
            if status != 0:
                return self.fail(
                    f"Error executing command: exit status {status}",
                    details={"output": output},
                )
        finally:
            client.close()

        if not p.MatchContent:
            return self.succeed(f"Command {p.Cmd} executed successfully: {output}")

        failure = match_content(True, p.ContentRegex, output)
        if failure:
            return self.fail(failure)
        return self.succeed()
