from __future__ import annotations

import json
import logging

import pytest

from coursepay.logging_config import JsonFormatter, _sanitize_obj, _sanitize_str, setup_logging
from coursepay.utils.correlation import correlation_scope


def test_sanitize_authorization_bearer_masked() -> None:
    s = "Authorization: Bearer ABCDEFGHIJKLMNOP"
    out = _sanitize_str(s)
    assert "Bearer [REDACTED]" in out


def test_sanitize_api_token_kv_masked() -> None:
    s = '{"api_token":"abc.def.ghi","other":"x"}'
    out = _sanitize_str(s)
    assert '"api_token":"[REDACTED]"' in out


def test_sanitize_bot_url_token_masked() -> None:
    s = "POST https://api.telegram.org/bot123456:AAH-secret_value/sendMessage failed"
    out = _sanitize_str(s)
    assert "/bot[REDACTED]/sendMessage" in out
    assert "AAH-secret_value" not in out


def test_sanitize_mobile_account_keeps_prefix_and_tail() -> None:
    out = _sanitize_str("sender 01712345678 and +8801899000000")
    assert "017****5678" in out
    assert "018****0000" in out
    assert "12345678" not in out


def test_sanitize_nested_objects() -> None:
    obj = {
        "authorization": "Authorization: Bearer VERYSECRETTOKEN",
        "nested": [
            {"api_token": "abc123"},
            {"sender_account": "01899000000"},
        ],
        "claim_id": 7,
    }
    out = _sanitize_obj(obj)
    assert out["nested"][0]["api_token"].startswith("***") or out["nested"][0]["api_token"] == "[REDACTED]"
    assert out["nested"][1]["sender_account"] == "***0000"
    assert "[REDACTED]" in out["authorization"]
    assert out["claim_id"] == 7


def test_json_formatter_includes_correlation_and_extra() -> None:
    record = logging.LogRecord("coursepay.test", logging.INFO, __file__, 1, "claim submitted", None, None)
    record.extra = {"claim_id": 3, "sender_account": "01712345678"}
    with correlation_scope("tg-", "42"):
        payload = json.loads(JsonFormatter().format(record))
    assert payload["message"] == "claim submitted"
    assert payload["correlation_id"] == "42"
    assert payload["claim_id"] == 3
    assert payload["sender_account"] == "***5678"


def test_httpx_logger_level_warning_in_production(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.setenv("LOG_TO_FILE", "0")
    setup_logging()
    logger = logging.getLogger("httpx")
    assert logger.level == logging.WARNING or logger.getEffectiveLevel() == logging.WARNING
