"""
Error classification and pipeline exceptions.

`classify` maps any raised fault to an ErrorKind and a retry decision using an
ordered rule table. The first matching rule wins, so credential failures are
checked before the generic transport rules.
"""

from __future__ import annotations

from dataclasses import dataclass

import config
from models.schemas import ErrorKind, ErrorRecord


class PipelineError(Exception):
    """Pipeline failure with an explicit classification."""

    def __init__(self, message: str, kind: ErrorKind, retryable: bool, cause: BaseException | None = None):
        super().__init__(message)
        self.kind = kind
        self.retryable = retryable
        self.cause = cause


class ConfigError(PipelineError):
    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message, ErrorKind.CONFIG_ERROR, False, cause)


class ValidationError(PipelineError):
    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message, ErrorKind.VALIDATION_ERROR, False, cause)


class RetryableTaskError(PipelineError):
    """Raised out of the task wrapper so the host retries the attempt."""

    def __init__(self, message: str, kind: ErrorKind, cause: BaseException | None = None):
        super().__init__(message, kind, True, cause)


class PipelineFatalError(Exception):
    """A sequential phase failed; the whole pipeline is aborted."""


class RegistryError(Exception):
    """Task registry is missing an implementation."""


@dataclass(frozen=True)
class _Rule:
    kind: ErrorKind
    retryable: bool
    messages: tuple[str, ...] = ()
    names: tuple[str, ...] = ()  # lowercase exception class names, exact match


CLASSIFICATION_RULES: tuple[_Rule, ...] = (
    _Rule(
        ErrorKind.AUTH_ERROR, False,
        messages=("api key", "unauthorized", "authentication failed", "invalid api"),
        names=("authenticationerror",),
    ),
    _Rule(
        ErrorKind.CONFIG_ERROR, False,
        messages=("config", "schema validation"),
        names=("configerror",),
    ),
    _Rule(
        ErrorKind.TARGET_UNREACHABLE, True,
        messages=("econnrefused", "ehostunreach", "host unreachable", "no route to host",
                  "connection refused"),
        names=("connectionrefusederror",),
    ),
    _Rule(
        ErrorKind.CONNECTION_ERROR, True,
        messages=("ssh:", "ssh connection", "connection reset", "broken pipe", "econnreset",
                  "connection closed"),
        names=("connectionreseterror", "brokenpipeerror", "apiconnectionerror"),
    ),
    _Rule(
        ErrorKind.PERMISSION_DENIED, False,
        messages=("permission denied", "access denied", "eperm"),
        names=("permissionerror",),
    ),
    _Rule(
        ErrorKind.TOOL_NOT_FOUND, False,
        messages=("not found", "command not found", "enoent"),
        names=("filenotfounderror",),
    ),
    _Rule(
        ErrorKind.TIMEOUT_ERROR, True,
        messages=("timeout", "etimedout", "timed out"),
        names=("timeouterror", "timeoutexpired", "apitimeouterror"),
    ),
    _Rule(
        ErrorKind.RATE_LIMIT, True,
        messages=("rate limit", "429", "too many requests"),
        names=("ratelimiterror",),
    ),
    _Rule(
        ErrorKind.TRANSIENT_ERROR, True,
        messages=("500", "502", "503", "temporary", "transient"),
        names=("internalservererror",),
    ),
    _Rule(
        ErrorKind.EXECUTION_ERROR, True,
        messages=("agent", "openai", "model"),
    ),
    _Rule(
        ErrorKind.VALIDATION_ERROR, False,
        messages=("validation", "deliverable", "expected output"),
        names=("validationerror",),
    ),
)

NON_RETRYABLE_KINDS: tuple[ErrorKind, ...] = tuple(
    rule.kind for rule in CLASSIFICATION_RULES if not rule.retryable
)


def classify(fault: BaseException) -> ErrorRecord:
    """Classify a fault. Total and deterministic: unmatched faults are `unknown_error`, retryable."""
    message = str(fault)
    cause = type(fault).__name__

    if isinstance(fault, PipelineError):
        return ErrorRecord(kind=fault.kind, retryable=fault.retryable, message=message, cause=cause)

    lowered = message.lower()
    name = cause.lower()
    for rule in CLASSIFICATION_RULES:
        if name in rule.names or any(p in lowered for p in rule.messages):
            return ErrorRecord(kind=rule.kind, retryable=rule.retryable, message=message, cause=cause)

    return ErrorRecord(kind=ErrorKind.UNKNOWN_ERROR, retryable=True, message=message, cause=cause)


def truncate_error(message: str, limit: int = config.MAX_ERROR_LENGTH) -> str:
    if len(message) <= limit:
        return message
    return message[:limit]


def fault_message(fault: BaseException) -> str:
    """Message of the innermost cause; host wrappers (e.g. ActivityError) carry generic text."""
    seen = set()
    while fault.__cause__ is not None and id(fault) not in seen:
        seen.add(id(fault))
        fault = fault.__cause__
    return str(fault) or type(fault).__name__
