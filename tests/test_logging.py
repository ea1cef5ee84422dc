"""Tests for credential redaction in log events."""

from arena.logging import redact_secrets


class TestRedactSecrets:
    def test_top_level_credentials_masked(self) -> None:
        event = {"event": "request_signed", "signature": "abc", "api_key": "k", "path": "/x"}
        result = redact_secrets(None, "info", event)
        assert result["signature"] == "***"
        assert result["api_key"] == "***"
        assert result["path"] == "/x"

    def test_params_copy_masked(self) -> None:
        params = {"symbol": "BTCUSDT", "signature": "abc"}
        result = redact_secrets(None, "debug", {"event": "x", "params": params})
        assert result["params"] == {"symbol": "BTCUSDT", "signature": "***"}
        # caller's dict is untouched
        assert params["signature"] == "abc"

    def test_plain_event_unchanged(self) -> None:
        event = {"event": "cache_hit", "key": "snapshots"}
        assert redact_secrets(None, "info", dict(event)) == event
