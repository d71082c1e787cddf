"""HTTP(S) check — one request, optional status-code and content matching."""

from __future__ import annotations

import httpx

from .content import match_content
from .registry import register_check
from .schema import Check, CheckDefinitionModel, CheckResult, Deadline


class HTTPDefinition(CheckDefinitionModel):
    Host: str = ""
    Path: str = "/"
    Https: bool = False
    Port: str = ""  # 80 or 443 depending on Https
    Method: str = "GET"
    Headers: dict[str, str] = {}
    Body: str = ""
    Verify: bool = False
    MatchCode: bool = False
    Code: int = 200
    MatchContent: bool = False
    ContentRegex: str = ".*"


@register_check
class HTTPCheck(Check):
    check_type = "http"
    Definition = HTTPDefinition
    required_fields = ("Host",)

    def url(self) -> str:
        p = self.params
        scheme = "https" if p.Https else "http"
        port = p.Port or ("443" if p.Https else "80")
        path = p.Path if p.Path.startswith("/") else f"/{p.Path}"
        return f"{scheme}://{p.Host}:{port}{path}"

    def execute(self, deadline: Deadline) -> CheckResult:
        p = self.params
        url = self.url()
        try:
            with httpx.Client(timeout=self.timeout(deadline), verify=p.Verify) as client:
                resp = client.request(p.Method, url, headers=p.Headers, content=p.Body or None)
        except httpx.TimeoutException as e:
            return self.fail(f"Request to {url} timed out: {e}")
        except httpx.HTTPError as e:
            return self.fail(f"Error making request to {url}: {e}")

        details = {"status_code": resp.status_code}
        if p.MatchCode and resp.status_code != p.Code:
            return self.fail(
                f"Incorrect status code. Expected {p.Code}, got {resp.status_code}",
                details=details,
            )

        failure = match_content(p.MatchContent, p.ContentRegex, resp.text)
        if failure:
            return self.fail(failure, details=details)
        return self.succeed(f"{p.Method} {url} returned {resp.status_code}", details=details)
