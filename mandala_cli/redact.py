"""Centralized secret redaction for logs."""

import logging
import os
import re

# Env vars whose values should be redacted from all output
_SECRET_ENV_VARS = [
    "MANDALA_IDENTITY_KEY",
    "MANDALA_PRIVATE_KEY",
    "AGENT_PRIVATE_KEY",
]

# Manifest env keys whose values are treated as secrets
_SECRET_KEY_RE = re.compile(r"(KEY|TOKEN|SECRET|PASSWORD|PASSWD|CREDENTIAL)", re.IGNORECASE)

_MIN_SECRET_LENGTH = 8  # skip short values to avoid false positives

_extra_values: set[str] = set()


def _collect_secret_values() -> set[str]:
    values = set(_extra_values)
    for var in _SECRET_ENV_VARS:
        val = os.environ.get(var, "")
        if len(val) >= _MIN_SECRET_LENGTH:
            values.add(val)
    return values


def _build_patterns(values: set[str]) -> list[re.Pattern]:
    # Longer values first so a secret containing another is fully masked
    return [re.compile(re.escape(v)) for v in sorted(values, key=len, reverse=True)]


# Lazy-initialized module cache
_patterns: list[re.Pattern] | None = None


def _get_patterns() -> list[re.Pattern]:
    global _patterns
    if _patterns is None:
        _patterns = _build_patterns(_collect_secret_values())
    return _patterns


def is_secret_key(name: str) -> bool:
    return bool(_SECRET_KEY_RE.search(name))


def register_secret_values(env: dict) -> int:
    """Add values of secret-looking keys in *env* to the redaction set.

    Returns the number of values newly registered.
    """
    global _patterns
    added = 0
    for key, value in env.items():
        if is_secret_key(key) and isinstance(value, str) and len(value) >= _MIN_SECRET_LENGTH and value not in _extra_values:
            _extra_values.add(value)
            added += 1
    if added:
        _patterns = None
    return added


def reset_secret_cache():
    """Forget registered values and re-read env vars on next use."""
    global _patterns
    _extra_values.clear()
    _patterns = None


def _apply(text: str, patterns: list[re.Pattern]) -> str:
    for p in patterns:
        text = p.sub("***", text)
    return text


def redact_secrets(text: str) -> str:
    """Replace known secret values with '***'."""
    return _apply(text, _get_patterns())


class SecretRedactingFilter(logging.Filter):
    """Logging filter that replaces secret values in log records with '***'.

    Handles both f-string messages (msg is pre-formatted) and
    %-style messages (msg + args).
    """

    def filter(self, record: logging.LogRecord) -> bool:
        patterns = _get_patterns()
        if patterns:
            record.msg = _apply(str(record.msg), patterns)
            if record.args:
                if isinstance(record.args, dict):
                    record.args = {k: _apply(v, patterns) if isinstance(v, str) else v for k, v in record.args.items()}
                elif isinstance(record.args, tuple):
                    record.args = tuple(_apply(a, patterns) if isinstance(a, str) else a for a in record.args)
        return True
