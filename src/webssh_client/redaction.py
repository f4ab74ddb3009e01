"""
Secret masking for anything that is about to be logged.

Credentials payloads are logged at debug level while authenticating; this
module makes sure passwords, passphrases and key material never reach a
log line or a JSONL event.
"""
from __future__ import annotations

import re
from typing import Any

MASK = "[REDACTED]"

SECRET_PATTERNS = [
    (re.compile(r'"(password|passphrase)"\s*:\s*"[^"]*"', re.IGNORECASE), r'"\1": "[REDACTED]"'),
    (re.compile(r"(password|passphrase)\s*=\s*[^\s,&}]+", re.IGNORECASE), r"\1=[REDACTED]"),
    (
        re.compile(
            r"-----BEGIN[^-]+PRIVATE KEY-----.*?-----END[^-]+PRIVATE KEY-----",
            re.DOTALL,
        ),
        "[REDACTED PRIVATE KEY]",
    ),
    (re.compile(r"[A-Za-z0-9+/]{100,}={0,2}"), "[REDACTED BASE64]"),
]

# Keys whose values are always masked in dicts (compared case-insensitively,
# ignoring underscores so privateKey and private_key both match)
SECRET_KEYS = frozenset({
    "password",
    "passphrase",
    "privatekey",
    "secret",
    "token",
    "responses",
})


def _normalise_key(key: str) -> str:
    return key.replace("_", "").replace("-", "").lower()


def mask_string(text: str) -> str:
    """Replace secrets embedded in free text."""
    for pattern, replacement in SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def mask_secrets(data: Any) -> Any:
    """
    Return a copy of data with secret values masked.

    Dict values under secret keys are replaced entirely; other strings are
    scanned for embedded secrets. Lists and tuples are walked recursively.
    """
    if isinstance(data, dict):
        masked = {}
        for key, value in data.items():
            if isinstance(key, str) and _normalise_key(key) in SECRET_KEYS:
                masked[key] = MASK if value not in (None, "") else value
            else:
                masked[key] = mask_secrets(value)
        return masked
    if isinstance(data, (list, tuple)):
        return type(data)(mask_secrets(item) for item in data)
    if isinstance(data, str):
        return mask_string(data)
    return data
