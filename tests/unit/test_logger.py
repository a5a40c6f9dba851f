"""
Unit tests for the structured JSON log format.
"""
import json
import logging
import sys

import aws_cdk as cdk
import pytest

from counter import logger as counter_logger
from counter.logger import REDACTED, UNRESOLVED, JsonFormatter, get_logger


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="counter.preflight", level=logging.INFO, pathname=__file__, lineno=1,
        msg="VPC %s resolved", args=("jenkins-vpc",), exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_record_is_one_json_object_with_extras():
    line = JsonFormatter().format(_record(vpc_id="vpc-123", event="preflight.resolved"))

    parsed = json.loads(line)
    assert parsed["level"] == "INFO"
    assert parsed["logger"] == "counter.preflight"
    assert parsed["message"] == "VPC jenkins-vpc resolved"
    assert parsed["vpc_id"] == "vpc-123"
    assert parsed["event"] == "preflight.resolved"
    assert "lineno" not in parsed
    assert "\n" not in line


def test_exception_is_included():
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = _record()
        record.exc_info = sys.exc_info()

    parsed = json.loads(JsonFormatter().format(record))
    assert "RuntimeError: boom" in parsed["exception"]


def test_non_json_values_are_stringified():
    parsed = json.loads(JsonFormatter().format(_record(features={"cdn"})))
    assert parsed["features"] == "{'cdn'}"


def test_get_logger_configures_root_once(monkeypatch):
    monkeypatch.setattr(counter_logger, "_configured", False)
    monkeypatch.setenv("LOG_LEVEL", "debug")
    root = logging.getLogger()
    monkeypatch.setattr(root, "handlers", [])
    monkeypatch.setattr(root, "level", root.level)

    first = get_logger("counter.a")
    get_logger("counter.b")

    assert first.name == "counter.a"
    assert len(root.handlers) == 1
    assert isinstance(root.handlers[0].formatter, JsonFormatter)
    assert root.level == logging.DEBUG


# ---------------------------------------------------------------------------
# Redaction
# ---------------------------------------------------------------------------

def test_password_extra_never_reaches_output():
    line = JsonFormatter().format(_record(password="hunter2", db_user="counter"))

    parsed = json.loads(line)
    assert parsed["password"] == REDACTED
    assert parsed["db_user"] == "counter"
    assert "hunter2" not in line


@pytest.mark.parametrize("key", ["DB_PASSWORD", "client_secret", "session_token", "aws_credentials"])
def test_secret_like_keys_are_redacted(key):
    parsed = json.loads(JsonFormatter().format(_record(**{key: "s3cr3t"})))
    assert parsed[key] == REDACTED


def test_nested_secret_keys_are_redacted():
    parsed = json.loads(JsonFormatter().format(
        _record(environment={"DB_NAME": "counter", "DB_PASSWORD": "hunter2"})
    ))
    assert parsed["environment"] == {"DB_NAME": "counter", "DB_PASSWORD": REDACTED}


def test_unresolved_tokens_are_masked():
    parsed = json.loads(JsonFormatter().format(
        _record(account=cdk.Aws.ACCOUNT_ID, apply_order=["Cluster", cdk.Aws.REGION])
    ))
    assert parsed["account"] == UNRESOLVED
    assert parsed["apply_order"] == ["Cluster", UNRESOLVED]
