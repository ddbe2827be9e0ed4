#!/usr/bin/env python3
"""
Tests for error classification and friendly messages.
"""

import pytest

from error_handler import (
    ERROR_MATCHERS,
    GENERIC_DEFAULT,
    KIND_MESSAGES,
    OPERATION_DEFAULTS,
    RETRYABLE_KINDS,
    ErrorClassifier,
    ErrorKind,
    friendly_message,
)


@pytest.mark.parametrize("message, kind", [
    ("network timeout", ErrorKind.NETWORK),
    ("Failed to fetch", ErrorKind.NETWORK),
    ("Connection refused", ErrorKind.NETWORK),
    ("401: Unauthorized", ErrorKind.UNAUTHORIZED),
    ("Token refresh failed", ErrorKind.UNAUTHORIZED),
    ("403 forbidden", ErrorKind.FORBIDDEN),
    ("404: Email not found", ErrorKind.NOT_FOUND),
    ("429: Too Many Requests", ErrorKind.RATE_LIMITED),
    ("503: Service Unavailable", ErrorKind.SERVER_UNAVAILABLE),
    ("500 internal server error", ErrorKind.SERVER_UNAVAILABLE),
    ("Not connected to Google", ErrorKind.PROVIDER_DISCONNECTED),
    ("something odd happened", ErrorKind.UNKNOWN),
    ("", ErrorKind.UNKNOWN),
])
def test_classify_table(message, kind):
    assert ErrorClassifier.classify(message).kind == kind


def test_classify_none():
    classification = ErrorClassifier.classify(None)
    assert classification.kind == ErrorKind.UNKNOWN
    assert classification.retryable is False


def test_first_match_wins():
    """A status code outranks a generic network word in the same message"""
    assert ErrorClassifier.classify("403: connection not allowed").kind == ErrorKind.FORBIDDEN
    assert ErrorClassifier.classify("500: not connected to google").kind == ErrorKind.PROVIDER_DISCONNECTED


def test_status_code_needs_word_boundary():
    assert ErrorClassifier.classify("order 14035 rejected").kind == ErrorKind.UNKNOWN


def test_retryable_kinds():
    assert RETRYABLE_KINDS == {ErrorKind.NETWORK, ErrorKind.RATE_LIMITED, ErrorKind.SERVER_UNAVAILABLE}
    assert ErrorClassifier.is_retryable("network timeout")
    assert ErrorClassifier.is_retryable("429")
    assert ErrorClassifier.is_retryable("502 bad gateway")
    assert not ErrorClassifier.is_retryable("403 forbidden")
    assert not ErrorClassifier.is_retryable("mystery")


def test_every_kind_has_a_matcher_or_is_unknown():
    matched = {matcher.kind for matcher in ERROR_MATCHERS}
    assert matched | {ErrorKind.UNKNOWN} == set(ErrorKind)


@pytest.mark.parametrize("status, kind", [
    (0, ErrorKind.NETWORK),
    (408, ErrorKind.NETWORK),
    (401, ErrorKind.UNAUTHORIZED),
    (403, ErrorKind.FORBIDDEN),
    (404, ErrorKind.NOT_FOUND),
    (429, ErrorKind.RATE_LIMITED),
    (500, ErrorKind.SERVER_UNAVAILABLE),
    (503, ErrorKind.SERVER_UNAVAILABLE),
])
def test_classify_status(status, kind):
    assert ErrorClassifier.classify_status(status).kind == kind


def test_classify_status_falls_back_to_message():
    assert ErrorClassifier.classify_status(400, "rate limit reached").kind == ErrorKind.RATE_LIMITED
    assert ErrorClassifier.classify_status(400, "bad input").kind == ErrorKind.UNKNOWN


def test_classify_status_provider_disconnected_overrides():
    classification = ErrorClassifier.classify_status(400, "Google account not connected")
    assert classification.kind == ErrorKind.PROVIDER_DISCONNECTED
    classification = ErrorClassifier.classify_status(401, "Not connected to Google")
    assert classification.kind == ErrorKind.PROVIDER_DISCONNECTED


def test_friendly_message_is_total():
    operations = list(OPERATION_DEFAULTS) + ["some_new_operation", ""]
    for kind in ErrorKind:
        for operation in operations:
            message = friendly_message(kind, operation)
            assert message
            assert "Error" not in message


def test_friendly_message_examples():
    assert friendly_message(ErrorKind.UNAUTHORIZED, "archive") == "Your session has expired. Please sign in again."
    assert friendly_message(ErrorKind.FORBIDDEN, "archive") == KIND_MESSAGES[ErrorKind.FORBIDDEN]
    assert friendly_message(ErrorKind.UNKNOWN, "archive") == "Failed to archive email. Please try again."
    assert friendly_message(ErrorKind.UNKNOWN, "unheard_of") == GENERIC_DEFAULT


def test_subject_specific_not_found():
    assert "email" in friendly_message(ErrorKind.NOT_FOUND, "archive")
    assert "task" in friendly_message(ErrorKind.NOT_FOUND, "complete_task")
    assert friendly_message(ErrorKind.NOT_FOUND, "regenerate_plan") == KIND_MESSAGES[ErrorKind.NOT_FOUND]


def test_classification_friendly_message_never_raw():
    classification = ErrorClassifier.classify("503: upstream exploded at line 42")
    assert classification.technical_details == "503: upstream exploded at line 42"
    assert "line 42" not in classification.friendly_message("archive")
