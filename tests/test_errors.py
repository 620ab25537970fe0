from __future__ import annotations

import pytest

from models.schemas import ErrorKind
from utils.errors import (
    NON_RETRYABLE_KINDS,
    ConfigError,
    RetryableTaskError,
    ValidationError,
    classify,
    fault_message,
    truncate_error,
)


def test_connection_refused_is_retryable_target_unreachable():
    record = classify(Exception("ECONNREFUSED"))
    assert record.kind is ErrorKind.TARGET_UNREACHABLE
    assert record.retryable is True


def test_invalid_api_key_is_non_retryable_auth_error():
    record = classify(Exception("401 unauthorized invalid api key"))
    assert record.kind is ErrorKind.AUTH_ERROR
    assert record.retryable is False


@pytest.mark.parametrize("message, kind, retryable", [
    ("ssh: connect to host 10.0.0.5 port 22: Connection reset by peer", ErrorKind.CONNECTION_ERROR, True),
    ("Permission denied (publickey,password)", ErrorKind.PERMISSION_DENIED, False),
    ("nmap: command not found", ErrorKind.TOOL_NOT_FOUND, False),
    ("Request timed out after 600s", ErrorKind.TIMEOUT_ERROR, True),
    ("429 Too Many Requests", ErrorKind.RATE_LIMIT, True),
    ("502 Bad Gateway", ErrorKind.TRANSIENT_ERROR, True),
    ("The model returned malformed JSON", ErrorKind.EXECUTION_ERROR, True),
    ("Deliverable check failed: pentest-report.md", ErrorKind.VALIDATION_ERROR, False),
    ("Invalid config: missing 'rules' section", ErrorKind.CONFIG_ERROR, False),
])
def test_message_rules(message, kind, retryable):
    record = classify(RuntimeError(message))
    assert (record.kind, record.retryable) == (kind, retryable)


def test_unmatched_fault_is_unknown_and_retryable():
    record = classify(RuntimeError("something odd happened"))
    assert record.kind is ErrorKind.UNKNOWN_ERROR
    assert record.retryable is True
    assert record.cause == "RuntimeError"


def test_exception_class_names_are_matched():
    assert classify(TimeoutError()).kind is ErrorKind.TIMEOUT_ERROR
    assert classify(FileNotFoundError("x")).kind is ErrorKind.TOOL_NOT_FOUND
    assert classify(PermissionError("x")).kind is ErrorKind.PERMISSION_DENIED


def test_first_matching_rule_wins():
    # Mentions both an auth failure and a refused connection; auth is checked first.
    record = classify(Exception("authentication failed: connection refused by proxy"))
    assert record.kind is ErrorKind.AUTH_ERROR


def test_task_names_do_not_look_like_connection_errors():
    record = classify(Exception("ssh-vuln produced nothing useful"))
    assert record.kind is not ErrorKind.CONNECTION_ERROR


def test_classification_is_deterministic():
    fault = Exception("503 Service Unavailable")
    first = classify(fault)
    second = classify(fault)
    assert (first.kind, first.retryable) == (second.kind, second.retryable)


def test_pipeline_errors_keep_their_kind():
    assert classify(ConfigError("anything")).kind is ErrorKind.CONFIG_ERROR
    assert classify(ValidationError("anything")).retryable is False
    retry = classify(RetryableTaskError("anything", ErrorKind.RATE_LIMIT))
    assert (retry.kind, retry.retryable) == (ErrorKind.RATE_LIMIT, True)


def test_non_retryable_kinds_follow_the_table():
    assert ErrorKind.AUTH_ERROR in NON_RETRYABLE_KINDS
    assert ErrorKind.VALIDATION_ERROR in NON_RETRYABLE_KINDS
    assert ErrorKind.TIMEOUT_ERROR not in NON_RETRYABLE_KINDS
    assert ErrorKind.UNKNOWN_ERROR not in NON_RETRYABLE_KINDS


def test_truncate_error():
    assert truncate_error("short") == "short"
    assert len(truncate_error("x" * 10_000)) == 5_000
    assert truncate_error("abcdef", limit=3) == "abc"


def test_fault_message_uses_innermost_cause():
    try:
        try:
            raise ValueError("ECONNREFUSED 10.0.0.5:22")
        except ValueError as inner:
            raise RuntimeError("Activity task failed") from inner
    except RuntimeError as outer:
        assert fault_message(outer) == "ECONNREFUSED 10.0.0.5:22"

    assert fault_message(KeyError()) == "KeyError"
