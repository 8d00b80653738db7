"""
Sensitive value handling.

Secret strings are wrapped so that printing, formatting, logging or JSON
encoding them never shows the plaintext. Call ``reveal()`` to get it back.
"""

import json
import logging
from typing import Any, Set

REDACTED = "(sensitive value)"


class Sensitive:
    """Wrapper around a secret string whose default representation is redacted."""

    __slots__ = ("_value",)

    def __init__(self, value: str):
        if isinstance(value, Sensitive):
            value = value.reveal()
        self._value = value

    def reveal(self) -> str:
        """Return the wrapped plaintext."""
        return self._value

    def __str__(self) -> str:
        return REDACTED

    def __repr__(self) -> str:
        return f"Sensitive({REDACTED!r})"

    def __format__(self, format_spec: str) -> str:
        return format(REDACTED, format_spec)

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, Sensitive):
            return self._value == other._value
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._value)

    def __bool__(self) -> bool:
        return bool(self._value)

    def __len__(self) -> int:
        return len(self._value)


def reveal(value: Any) -> Any:
    """Unwrap a Sensitive value, passing anything else through unchanged."""
    if isinstance(value, Sensitive):
        return value.reveal()
    return value


class SensitiveJSONEncoder(json.JSONEncoder):
    """JSON encoder that redacts Sensitive values."""

    def default(self, o: Any) -> Any:
        if isinstance(o, Sensitive):
            return REDACTED
        return super().default(o)


class RedactingFilter(logging.Filter):
    """
    Logging filter that scrubs registered secret plaintexts from records.

    Secrets are registered once (usually right after they are created or read)
    and every record passing through the filter is rewritten.
    """

    def __init__(self, name: str = ""):
        super().__init__(name)
        self._secrets: Set[str] = set()

    def register(self, value: Any) -> None:
        """Register a secret (plain string or Sensitive) for redaction."""
        plaintext = reveal(value)
        if plaintext:
            self._secrets.add(plaintext)

    def redact(self, text: str) -> str:
        for secret in self._secrets:
            text = text.replace(secret, REDACTED)
        return text

    def filter(self, record: logging.LogRecord) -> bool:
        if self._secrets:
            message = record.getMessage()
            record.msg = self.redact(message)
            record.args = ()
        return True


# Shared filter instance; the CLI installs it on the root handlers.
redacting_filter = RedactingFilter()


def register_secret(value: Any) -> None:
    """Register a secret with the shared redacting filter."""
    redacting_filter.register(value)
