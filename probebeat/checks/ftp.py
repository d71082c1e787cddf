"""FTP check — log in and retrieve a file."""

from __future__ import annotations

import ftplib
import io

from pydantic import SecretStr

from .content import match_content
from .registry import register_check
from .schema import Check, CheckDefinitionModel, CheckResult, Deadline


class FTPDefinition(CheckDefinitionModel):
    Host: str = ""
    Username: str = ""
    Password: SecretStr = SecretStr("")
    File: str = ""
    MatchContent: bool = False
    ContentRegex: str = ".*"
    Port: str = "21"


@register_check
class FTPCheck(Check):
    check_type = "ftp"
    Definition = FTPDefinition
    required_fields = ("Host", "Username", "Password", "File")

    def execute(self, deadline: Deadline) -> CheckResult:
        p = self.params
        ftp = ftplib.FTP(timeout=self.timeout(deadline))
        try:
            try:
                ftp.connect(p.Host, int(p.Port))
            except (OSError, ftplib.Error, ValueError) as e:
                return self.fail(f"Could not connect to FTP server {p.Host}: {e}")
            try:
                ftp.login(p.Username, p.Password.get_secret_value())
            except (OSError, ftplib.Error) as e:
                return self.fail(f"Failed to login with user {p.Username}: {e}")

            buf = io.BytesIO()
            try:
                ftp.retrbinary(f"RETR {p.File}", buf.write)
            except (OSError, ftplib.Error) as e:
                return self.fail(f"Failed to retrieve file {p.File}: {e}")
        finally:
            ftp.close()

        failure = match_content(p.MatchContent, p.ContentRegex, buf.getvalue().decode("utf-8", errors="replace"))
        if failure:
            return self.fail(failure)
        return self.succeed(f"Retrieved {p.File} ({buf.tell()} bytes)")
