"""Tests for the mail dispatcher against a mocked provider."""
import json

import httpx

from app.services.mailer import MAX_BODY_LENGTH, MAX_SUBJECT_LENGTH, Mailer, is_plausible_email


def _mailer(handler, api_key="re_test_key", sender="GGBang <noreply@ggbang.app>"):
    return Mailer(api_key=api_key, sender=sender, transport=httpx.MockTransport(handler))


def _never_called(request):
    raise AssertionError("provider must not be called")


class TestPreflight:
    """Validation that happens before any network call."""

    def test_missing_credential(self):
        """No API key → missing_credential."""
        result = _mailer(_never_called, api_key="").send("alice@example.com", "Hi", "Body")
        assert result.ok is False
        assert result.error == "missing_credential"

    def test_missing_sender(self):
        """No from address → missing_sender."""
        result = _mailer(_never_called, sender="").send("alice@example.com", "Hi", "Body")
        assert result.error == "missing_sender"

    def test_invalid_recipient(self):
        """Implausible address → invalid_recipient."""
        for address in ("", "alice", "alice@example", "a b@example.com"):
            assert _mailer(_never_called).send(address, "Hi", "Body").error == "invalid_recipient"

    def test_plausible_email_shape(self):
        """Minimal user@domain.tld shape."""
        assert is_plausible_email("alice@example.com")
        assert not is_plausible_email(None)


class TestDelivery:
    """Provider round-trips."""

    def test_success_returns_provider_id(self):
        """2xx → ok with the provider message id; payload and auth header are sent."""
        seen = {}

        def handler(request):
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "email_123"})

        result = _mailer(handler).send("alice@example.com", "Approved", "See you there")
        assert result.ok is True
        assert result.provider_message_id == "email_123"
        assert seen["auth"] == "Bearer re_test_key"
        assert seen["body"]["to"] == ["alice@example.com"]
        assert seen["body"]["from"] == "GGBang <noreply@ggbang.app>"

    def test_subject_and_body_are_truncated(self):
        """Oversized subject/body are cut before sending."""
        seen = {}

        def handler(request):
            seen.update(json.loads(request.content))
            return httpx.Response(200, json={"id": "email_1"})

        _mailer(handler).send("alice@example.com", "s" * 500, "b" * 20000)
        assert len(seen["subject"]) == MAX_SUBJECT_LENGTH
        assert len(seen["text"]) == MAX_BODY_LENGTH
        assert seen["subject"].endswith("…")
        assert seen["text"].endswith("…")

    def test_values_at_the_limit_are_untouched(self):
        """Exactly-at-limit subject and body pass through unchanged."""
        seen = {}

        def handler(request):
            seen.update(json.loads(request.content))
            return httpx.Response(200, json={"id": "email_1"})

        subject, text = "s" * MAX_SUBJECT_LENGTH, "b" * MAX_BODY_LENGTH
        _mailer(handler).send("alice@example.com", subject, text)
        assert seen["subject"] == subject
        assert seen["text"] == text

    def test_provider_json_error(self):
        """Non-2xx JSON → '<status>: <message>'."""

        def handler(request):
            return httpx.Response(422, json={"name": "validation_error", "message": "Invalid `to` field"})

        result = _mailer(handler).send("alice@example.com", "Hi", "Body")
        assert result.ok is False
        assert result.error == "422: Invalid `to` field"

    def test_provider_text_error_is_shortened(self):
        """Non-JSON body falls back to raw text, cut to 300 chars."""

        def handler(request):
            return httpx.Response(502, text="gateway " * 100)

        result = _mailer(handler).send("alice@example.com", "Hi", "Body")
        assert result.error.startswith("502: gateway")
        assert len(result.error) == len("502: ") + 300
        assert result.error.endswith("…")

    def test_timeout(self):
        """Transport timeout → timeout."""

        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        assert _mailer(handler).send("alice@example.com", "Hi", "Body").error == "timeout"

    def test_network_error(self):
        """Connection failure → network_error."""

        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        result = _mailer(handler).send("alice@example.com", "Hi", "Body")
        assert result.ok is False
        assert result.error == "network_error"
