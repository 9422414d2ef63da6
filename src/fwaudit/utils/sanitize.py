"""Error message sanitization for plugin failures that end up in reports."""

from __future__ import annotations

import os
import re

MAX_ERROR_LENGTH = 500


def sanitize_error(message: str, max_length: int = MAX_ERROR_LENGTH) -> str:
    """Redact secrets and local paths from a plugin error message."""
    if not message:
        return message

    sanitized = message
    # Redact credentials a plugin may have echoed from the device config
    sanitized = re.sub(r"(?i)(password|passwd|secret|community|token)(\s*[=:]\s*)\S+", r"\1\2[REDACTED]", sanitized)
    sanitized = re.sub(r"Bearer\s+\S+", "Bearer [REDACTED]", sanitized)
    sanitized = re.sub(r"Authorization:\s*\S+", "Authorization: [REDACTED]", sanitized)
    sanitized = re.sub(r"-----BEGIN [A-Z ]+-----.*?-----END [A-Z ]+-----", "[REDACTED_KEY]", sanitized, flags=re.S)

    # Redact user home paths
    home = os.environ.get("USERPROFILE") or os.environ.get("HOME") or ""
    if home and home != "/":
        sanitized = sanitized.replace(home, "[USER_HOME]")

    # Single line, bounded length
    sanitized = " ".join(sanitized.split())
    if len(sanitized) > max_length:
        sanitized = sanitized[: max_length - 3] + "..."
    return sanitized
