"""
Tests for sensitive value handling.
"""

import json
import logging

from sensitive import REDACTED, RedactingFilter, Sensitive, SensitiveJSONEncoder, reveal


class TestSensitive:
    """Test the redacting wrapper type."""

    def test_string_forms_are_redacted(self):
        secret = Sensitive("wJalrXUtnFEMI/K7MDENG/bPxRfiCYEXAMPLEKEY")

        assert str(secret) == REDACTED
        assert "wJalr" not in repr(secret)
        assert f"{secret}" == REDACTED
        assert "value=%s" % secret == f"value={REDACTED}"

    def test_reveal(self):
        secret = Sensitive("plain")
        assert secret.reveal() == "plain"
        assert reveal(secret) == "plain"
        assert reveal("not wrapped") == "not wrapped"

    def test_equality_and_hash(self):
        assert Sensitive("a") == Sensitive("a")
        assert Sensitive("a") != Sensitive("b")
        assert len({Sensitive("a"), Sensitive("a")}) == 1

    def test_no_double_wrapping(self):
        assert Sensitive(Sensitive("x")).reveal() == "x"

    def test_json_encoder(self):
        payload = {"id": "AKIA", "secret": Sensitive("hidden")}
        encoded = json.dumps(payload, cls=SensitiveJSONEncoder)

        assert "hidden" not in encoded
        assert json.loads(encoded)["secret"] == REDACTED


class TestRedactingFilter:
    """Test log redaction of registered secrets."""

    def test_registered_secret_is_scrubbed(self):
        log_filter = RedactingFilter()
        log_filter.register(Sensitive("s3cr3t-value"))

        record = logging.LogRecord(
            "test", logging.INFO, __file__, 1, "leaked %s here", ("s3cr3t-value",), None
        )
        assert log_filter.filter(record) is True
        assert record.getMessage() == f"leaked {REDACTED} here"

    def test_unregistered_text_untouched(self):
        log_filter = RedactingFilter()
        record = logging.LogRecord("test", logging.INFO, __file__, 1, "nothing %d", (1,), None)

        log_filter.filter(record)
        assert record.getMessage() == "nothing 1"

    def test_empty_values_ignored(self):
        log_filter = RedactingFilter()
        log_filter.register("")
        assert log_filter.redact("abc") == "abc"
