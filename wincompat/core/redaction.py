# wincompat/core/redaction.py
from __future__ import annotations

import re
from collections.abc import Mapping

__all__ = ["redactText", "redactEnvironment", "isSensitiveName"]

MASK = "***"

# Variable-name fragments that mark a credential: GITHUB_TOKEN, STEAM_API_KEY, DB_PASSWORD...
_SECRET_WORDS = r"TOKEN|SECRET|PASSWORD|PASSWD|API_?KEY|ACCESS_?KEY"
_SECRET_NAME = rf"[A-Za-z0-9_]*(?:{_SECRET_WORDS})[A-Za-z0-9_]*"

_SENSITIVE_NAME_RE = re.compile(_SECRET_WORDS, re.IGNORECASE)

# Applied in order to rendered log lines and command strings
_SENSITIVE_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(rf"\b({_SECRET_NAME}=)[^\s'\",}}]+", re.IGNORECASE), rf"\1{MASK}"),
    (re.compile(rf"(['\"]{_SECRET_NAME}['\"]\s*:\s*['\"])[^'\"]*(['\"])", re.IGNORECASE), rf"\1{MASK}\2"),
    (re.compile(r"(Bearer\s+)[A-Za-z0-9._\-]+", re.IGNORECASE), rf"\1{MASK}"),
    (re.compile(r"(://[^/\s:@]+:)[^@\s/]+(@)"), rf"\1{MASK}\2"),
]



def redactText(text: str) -> str:
    """Mask credentials in environment dumps, dict reprs, auth headers and URLs."""
    for pattern, replacement in _SENSITIVE_PATTERNS:
        text = pattern.sub(replacement, text)
    return text



def isSensitiveName(name: str) -> bool:
    return bool(name) and _SENSITIVE_NAME_RE.search(name) is not None



def redactEnvironment(env: Mapping[str, str]) -> dict[str, str]:
    """Copy of `env` safe to log: values of secret-looking variables are masked."""
    return {key: MASK if isSensitiveName(key) else value for key, value in env.items()}
