"""Sensitive data sanitization for log output.

Provides :func:`sanitize_for_logs` which redacts private key and
certificate material from data structures before they are logged.
PEM blocks keep their BEGIN/END markers so the object type is still
visible; secret payloads (``data`` / ``stringData`` of a Secret) are
replaced wholesale, keeping only the key names.
"""

from __future__ import annotations

import re
from typing import Any

REDACTED = "[REDACTED]"

# Secret manifest fields whose values are base64 or plain payloads
_SECRET_PAYLOAD_FIELDS = frozenset({"data", "stringData"})

_PEM_BODY_RE = re.compile(
    r"(-----BEGIN [A-Z0-9 ]+-----)"
    r"([\s\S]*?)"
    r"(-----END [A-Z0-9 ]+-----)",
)


def sanitize_pem(pem: str | bytes) -> str:
    """Replace the base64 body of PEM blocks with ``[REDACTED]``."""
    if isinstance(pem, bytes):
        pem = pem.decode("ascii", errors="replace")

    def _redact(m) -> str:
        return f"{m.group(1)}\n{REDACTED}\n{m.group(3)}"

    return _PEM_BODY_RE.sub(_redact, pem)


def _is_secret_manifest(data: dict) -> bool:
    if data.get("kind") == "Secret":
        return True
    return "type" in data and any(field in data for field in _SECRET_PAYLOAD_FIELDS)


def sanitize_for_logs(data: Any) -> Any:
    """Recursively sanitize sensitive material in *data*.

    Handles dicts (Secret manifests, PEM strings in values), lists,
    tuples, strings and bytes.  Non-sensitive data passes through
    unchanged.
    """
    if isinstance(data, dict):
        if _is_secret_manifest(data):
            return {
                k: (
                    {name: REDACTED for name in v}
                    if k in _SECRET_PAYLOAD_FIELDS and isinstance(v, dict)
                    else sanitize_for_logs(v)
                )
                for k, v in data.items()
            }
        return {k: sanitize_for_logs(v) for k, v in data.items()}

    if isinstance(data, (list, tuple)):
        return type(data)(sanitize_for_logs(item) for item in data)

    if isinstance(data, bytes):
        if b"-----BEGIN " in data:
            return sanitize_pem(data)
        return data

    if isinstance(data, str):
        if "-----BEGIN " in data:
            return sanitize_pem(data)
        return data

    return data
