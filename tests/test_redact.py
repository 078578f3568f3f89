from __future__ import annotations

from drivenest._redact import redact_for_log, redact_url


def test_redact_for_log_redacts_sensitive_keys() -> None:
    payload = {
        "af_status": "Non-organic",
        "devkey": "DEVKEY",
        "push_token": "PUSH",
        "af_id": "0000000000000-0000000",
        "nested": {"Cookie": "sid=abc", "campaign": "spring"},
        "list": [{"fcm_token": "FCM"}],
    }

    redacted = redact_for_log(payload)
    assert redacted["af_status"] == "Non-organic"
    assert redacted["devkey"] == "<redacted>"
    assert redacted["push_token"] == "<redacted>"
    assert redacted["af_id"] == "<redacted>"
    assert redacted["nested"] == {"Cookie": "<redacted>", "campaign": "spring"}
    assert redacted["list"] == [{"fcm_token": "<redacted>"}]


def test_redact_for_log_truncates_long_strings() -> None:
    long_value = "x" * 600
    redacted = redact_for_log({"value": long_value}, max_string=10)
    assert redacted["value"].startswith("x" * 10)
    assert "<truncated>" in redacted["value"]


def test_redact_url_masks_query_credentials() -> None:
    url = "https://gcdsdk.example.com/install_data/v4.0/id1?devkey=SECRET&device_id=DEV&lang=en"
    redacted = redact_url(url)
    assert "SECRET" not in redacted
    assert "DEV&" not in redacted
    assert "devkey=<redacted>" in redacted
    assert "lang=en" in redacted
    assert redact_url("https://example.com/path") == "https://example.com/path"
