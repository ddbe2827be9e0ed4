"""
Error Classification and Friendly Messages

Maps raw backend failures (error strings, status codes) onto a small set of
kinds the UI has to tell apart:
- Transient kinds (network, rate limiting, server unavailable) are retried
- Permanent kinds (auth, permission, missing resource, disconnected provider)
  surface immediately
- Every kind maps to a short human sentence, never a raw error string

Classification is a pure lookup against an ordered, versioned matcher table,
so it can be unit-tested without any network code.

Version: 2.0
"""

import re
from enum import Enum
from typing import Dict, List, Optional, Tuple
from dataclasses import dataclass


# Bump when the matcher table changes meaning
MATCHER_TABLE_VERSION = 2


class ErrorKind(str, Enum):
    """Kinds of failure the UI distinguishes"""
    NETWORK = "network"                          # No connectivity / timeout - retry
    UNAUTHORIZED = "unauthorized"                # Session expired - sign in again
    FORBIDDEN = "forbidden"                      # No permission - stop
    NOT_FOUND = "not_found"                      # Resource gone - stop
    RATE_LIMITED = "rate_limited"                # Backend throttling - retry
    SERVER_UNAVAILABLE = "server_unavailable"    # 5xx - retry
    PROVIDER_DISCONNECTED = "provider_disconnected"  # Google account unlinked - reconnect
    UNKNOWN = "unknown"                          # Anything else - stop


RETRYABLE_KINDS = frozenset({
    ErrorKind.NETWORK,
    ErrorKind.RATE_LIMITED,
    ErrorKind.SERVER_UNAVAILABLE,
})


@dataclass(frozen=True)
class KindMatcher:
    """Keywords and an optional regex that identify one error kind"""
    kind: ErrorKind
    keywords: Tuple[str, ...]
    pattern: Optional[str] = None

    def matches(self, text: str) -> bool:
        """Check a lower-cased message against this matcher"""
        if any(keyword in text for keyword in self.keywords):
            return True
        return self.pattern is not None and re.search(self.pattern, text) is not None


# Checked in order: the first matching kind wins, so more specific kinds come first.
ERROR_MATCHERS: List[KindMatcher] = [
    KindMatcher(ErrorKind.PROVIDER_DISCONNECTED, (
        'not connected to google',
        'google account not connected',
        'provider disconnected',
        'reconnect your account',
    )),
    KindMatcher(ErrorKind.UNAUTHORIZED, (
        'unauthorized',
        'not authenticated',
        'token refresh failed',
        'session expired',
    ), pattern=r'\b401\b'),
    KindMatcher(ErrorKind.FORBIDDEN, (
        'forbidden',
        'permission denied',
        'access denied',
    ), pattern=r'\b403\b'),
    KindMatcher(ErrorKind.NOT_FOUND, (
        'not found',
    ), pattern=r'\b404\b'),
    KindMatcher(ErrorKind.RATE_LIMITED, (
        'rate limit',
        'too many requests',
        'quota exceeded',
        'throttled',
    ), pattern=r'\b429\b'),
    KindMatcher(ErrorKind.SERVER_UNAVAILABLE, (
        'service unavailable',
        'internal server error',
        'bad gateway',
        'server error',
    ), pattern=r'\b5\d\d\b'),
    KindMatcher(ErrorKind.NETWORK, (
        'network',
        'timeout',
        'timed out',
        'fetch',
        'connection',
        'unreachable',
        'offline',
    )),
]


# Default sentence per kind. UNKNOWN has none: it always uses the operation default.
KIND_MESSAGES: Dict[ErrorKind, str] = {
    ErrorKind.NETWORK: "Unable to connect. Please check your internet connection and try again.",
    ErrorKind.UNAUTHORIZED: "Your session has expired. Please sign in again.",
    ErrorKind.FORBIDDEN: "You don't have permission to perform this action.",
    ErrorKind.NOT_FOUND: "This item could not be found. It may have been deleted.",
    ErrorKind.RATE_LIMITED: "Too many requests. Please wait a moment and try again.",
    ErrorKind.SERVER_UNAVAILABLE: "Server is temporarily unavailable. Please try again in a moment.",
    ErrorKind.PROVIDER_DISCONNECTED: "Not connected to Google. Please reconnect your account.",
}

# What each operation acts on, for subject-specific sentences
OPERATION_SUBJECTS: Dict[str, str] = {
    'archive': 'email',
    'mark_read': 'email',
    'to_task': 'email',
    'generate_summary': 'email',
    'create_task': 'task',
    'complete_task': 'task',
    'update_task': 'task',
    'delete_task': 'task',
    'regenerate_plan': 'plan',
    'mark_notification_read': 'notification',
}

SUBJECT_MESSAGES: Dict[Tuple[ErrorKind, str], str] = {
    (ErrorKind.NOT_FOUND, 'email'): "This email could not be found. It may have been deleted.",
    (ErrorKind.NOT_FOUND, 'task'): "This task could not be found. It may have been deleted.",
    (ErrorKind.NOT_FOUND, 'notification'): "This notification could not be found.",
}

OPERATION_DEFAULTS: Dict[str, str] = {
    'archive': "Failed to archive email. Please try again.",
    'mark_read': "Failed to mark email as read. Please try again.",
    'to_task': "Failed to create task from email. Please try again.",
    'generate_summary': "Failed to generate summary. Please try again.",
    'create_task': "Failed to create task. Please try again.",
    'complete_task': "Failed to complete task. Please try again.",
    'update_task': "Failed to update task. Please try again.",
    'delete_task': "Failed to delete task. Please try again.",
    'regenerate_plan': "Failed to regenerate plan. Please try again.",
    'mark_notification_read': "Failed to mark notification as read. Please try again.",
    'fetch_plan': "Failed to load your plan. Please try again.",
    'load_summary': "Failed to load summary. Please try again.",
    'load_notifications': "Failed to load notifications. Please try again.",
    'checkout': "Failed to start checkout. Please try again.",
    'billing_portal': "Failed to open the billing portal. Please try again.",
    'set_model': "Failed to update the model. Please try again.",
    'cancel_subscription': "Failed to cancel your subscription. Please try again.",
    'reactivate_subscription': "Failed to reactivate your subscription. Please try again.",
}

GENERIC_DEFAULT = "Something went wrong. Please try again."


def friendly_message(kind: ErrorKind, operation: str) -> str:
    """
    Human sentence for a failure kind during an operation.

    Total over every (kind, operation) pair: subject-specific sentence first,
    then the kind's sentence, then the operation default, then a generic one.
    """
    subject = OPERATION_SUBJECTS.get(operation)
    if subject is not None and (kind, subject) in SUBJECT_MESSAGES:
        return SUBJECT_MESSAGES[(kind, subject)]

    if kind in KIND_MESSAGES:
        return KIND_MESSAGES[kind]

    return OPERATION_DEFAULTS.get(operation, GENERIC_DEFAULT)


@dataclass(frozen=True)
class Classification:
    """Result of classifying one raw failure"""
    kind: ErrorKind
    retryable: bool
    technical_details: str = ""

    def friendly_message(self, operation: str) -> str:
        return friendly_message(self.kind, operation)


class ErrorClassifier:
    """
    Table-driven error classification.

    Pure functions only: the same message always yields the same kind.
    """

    @staticmethod
    def classify(error_msg: Optional[str]) -> Classification:
        """
        Classify a raw error message.

        Args:
            error_msg: The error text as returned by the backend or raised locally

        Returns:
            Classification with kind and retry decision
        """
        text = (error_msg or "").lower()
        kind = ErrorClassifier.match_kind(text)
        return Classification(
            kind=kind,
            retryable=kind in RETRYABLE_KINDS,
            technical_details=error_msg or "",
        )

    @staticmethod
    def classify_status(status: int, error_msg: Optional[str] = None) -> Classification:
        """
        Classify a response that carries a status code.

        Status 0 means the server was never reached.
        """
        if status == 0 or status == 408:
            kind = ErrorKind.NETWORK
        elif status == 401:
            kind = ErrorKind.UNAUTHORIZED
        elif status == 403:
            kind = ErrorKind.FORBIDDEN
        elif status == 404:
            kind = ErrorKind.NOT_FOUND
        elif status == 429:
            kind = ErrorKind.RATE_LIMITED
        elif 500 <= status <= 599:
            kind = ErrorKind.SERVER_UNAVAILABLE
        else:
            # Other codes carry no kind of their own; fall back to the message
            return ErrorClassifier.classify(error_msg)

        # A disconnected provider is reported with a generic status but a specific message
        if error_msg and ErrorClassifier.match_kind(error_msg.lower()) == ErrorKind.PROVIDER_DISCONNECTED:
            kind = ErrorKind.PROVIDER_DISCONNECTED

        return Classification(
            kind=kind,
            retryable=kind in RETRYABLE_KINDS,
            technical_details=error_msg or f"HTTP {status}",
        )

    @staticmethod
    def match_kind(text: str) -> ErrorKind:
        """First matching kind in table order, or UNKNOWN"""
        for matcher in ERROR_MATCHERS:
            if matcher.matches(text):
                return matcher.kind
        return ErrorKind.UNKNOWN

    @staticmethod
    def is_retryable(error_msg: Optional[str]) -> bool:
        return ErrorClassifier.classify(error_msg).retryable
