"""Content matching shared by command-running checks (ssh, winrm, ftp, http)."""

from __future__ import annotations

import re

CONTENT_NOT_FOUND = "Matching content not found"


def match_content(match: bool, pattern: str, output: str) -> str | None:
    """Return a failure message, or None when the output is acceptable.

    With ``match`` off any output passes.  Otherwise ``pattern`` must
    compile and be found somewhere in ``output``.
    """
    if not match:
        return None
    try:
        regex = re.compile(pattern)
    except re.error as e:
        return f"Error compiling regex string {pattern} : {e}"
    if not regex.search(output):
        return CONTENT_NOT_FOUND
    return None
