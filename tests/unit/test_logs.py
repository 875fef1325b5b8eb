from __future__ import annotations

import io
import json
import logging

from credgate.core.config import LoggingConfig
from credgate.core.logs import configure_logging
from credgate.security.redaction import REDACTED, SecretScrubFilter, redact_secrets, sanitize_for_log


def test_redact_secrets_patterns() -> None:
    text = "key sk_live_abcdef and ghp_" + "a" * 30 + " and password=hunter2"
    out = redact_secrets(text)
    assert "sk_live_abcdef" not in out
    assert "ghp_" not in out
    assert "hunter2" not in out


def test_sanitize_for_log_walks_nested_structures() -> None:
    data = {"credential_id": "c1", "nested": {"clientSecret": "s", "items": [{"apiKey": "k"}]}}
    out = sanitize_for_log(data)
    assert out["credential_id"] == "c1"
    assert out["nested"]["clientSecret"] == REDACTED
    assert out["nested"]["items"][0]["apiKey"] == REDACTED
    assert data["nested"]["clientSecret"] == "s"


def _capture(json_output: bool) -> tuple[logging.Logger, io.StringIO]:
    handler = configure_logging(LoggingConfig(level="DEBUG", json_output=json_output), filters=[SecretScrubFilter()])
    buf = io.StringIO()
    handler.setStream(buf)
    return logging.getLogger("credgate.test"), buf


def test_json_lines_carry_extras_and_scrub_secrets() -> None:
    log, buf = _capture(json_output=True)
    log.info("credential_created", extra={"credential_id": "c1", "password": "hunter2"})

    line = json.loads(buf.getvalue().strip().splitlines()[-1])
    assert line["event"] == "credential_created"
    assert line["credential_id"] == "c1"
    assert line["password"] == REDACTED


def test_plain_lines_scrub_message_text() -> None:
    log, buf = _capture(json_output=False)
    log.warning("leaked token=%s", "abc123")

    out = buf.getvalue()
    assert "abc123" not in out
    assert "WARNING" in out


def test_configure_logging_is_idempotent() -> None:
    configure_logging(LoggingConfig())
    configure_logging(LoggingConfig())
    owned = [h for h in logging.getLogger("credgate").handlers if getattr(h, "_credgate", False)]
    assert len(owned) == 1
