"""
RecoveryEngine - Error classification, retry and fallback routing.

This module provides:
- OperationTarget / OperationContext: which external call an operation makes
- ErrorClassifier: maps an exception plus its context to an ErrorKind
- RecoveryStrategy: per-kind attempt budget, backoff and fallback action
- ErrorLedger: per-kind occurrence records for the process lifetime
- RetryExecutor: bounded retries with increasing backoff, then fallback
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Type, TypeVar

from pydantic import ValidationError

from claude_live.core.errors import (
    CommandError,
    CommandFailedError,
    CommandNotFoundError,
    CommandTimeoutError,
    ConfigInvalidError,
    ErrorKind,
    MalformedResponseError,
    StoreError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class OperationTarget(str, Enum):
    """The external dependency an operation talks to."""
    UPSTREAM = "upstream"
    STORE = "store"
    CONFIG = "config"
    INTERNAL = "internal"


@dataclass
class OperationContext:
    name: str
    target: OperationTarget = OperationTarget.INTERNAL


class FallbackAction(str, Enum):
    """What to do once retries are exhausted."""
    RETURN_DEFAULT = "return_default"   # Continue with a safe default value
    LOG_ONLY = "log_only"               # Log guidance, continue with the default
    SURFACE = "surface"                 # Re-raise to the caller


@dataclass(frozen=True)
class RecoveryStrategy:
    max_attempts: int
    backoff_ms: int
    fallback: FallbackAction
    guidance: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_attempts": self.max_attempts,
            "backoff_ms": self.backoff_ms,
            "fallback": self.fallback.value,
        }


DEFAULT_STRATEGIES: Dict[ErrorKind, RecoveryStrategy] = {
    ErrorKind.UPSTREAM_MISSING: RecoveryStrategy(
        3, 5000, FallbackAction.RETURN_DEFAULT,
        "Install ccusage (npm install -g ccusage) and make sure it is on PATH",
    ),
    ErrorKind.UPSTREAM_TIMEOUT: RecoveryStrategy(
        2, 2000, FallbackAction.RETURN_DEFAULT,
        "ccusage is slow to respond; check system load or raise CLAUDE_LIVE_UPSTREAM_TIMEOUT",
    ),
    ErrorKind.MALFORMED_RESPONSE: RecoveryStrategy(
        1, 0, FallbackAction.SURFACE,
        "ccusage output could not be parsed; check the installed ccusage version",
    ),
    ErrorKind.STORE_UNAVAILABLE: RecoveryStrategy(
        2, 500, FallbackAction.LOG_ONLY,
        "Install tmux or check that the tmux binary is reachable",
    ),
    ErrorKind.STORE_NO_SESSION: RecoveryStrategy(
        1, 0, FallbackAction.LOG_ONLY,
        "Start a tmux session first: tmux new-session",
    ),
    ErrorKind.STORE_PERMISSION: RecoveryStrategy(
        1, 0, FallbackAction.LOG_ONLY,
        "Check permissions on the tmux socket directory",
    ),
    ErrorKind.CONFIG_INVALID: RecoveryStrategy(
        1, 0, FallbackAction.RETURN_DEFAULT,
        "Fix the @ccusage_* options in tmux.conf; defaults are used meanwhile",
    ),
    ErrorKind.UNKNOWN: RecoveryStrategy(
        1, 1000, FallbackAction.LOG_ONLY,
        "Unexpected error; see the log for details",
    ),
}


# =============================================================================
# Classification
# =============================================================================


class ErrorClassifier:
    """Classifies exceptions into ErrorKind using type first, then context, then text."""

    # Exception types whose kind does not depend on the operation context
    CLASSIFICATION_RULES: Dict[Type[BaseException], ErrorKind] = {
        MalformedResponseError: ErrorKind.MALFORMED_RESPONSE,
        json.JSONDecodeError: ErrorKind.MALFORMED_RESPONSE,
        ValidationError: ErrorKind.MALFORMED_RESPONSE,
        ConfigInvalidError: ErrorKind.CONFIG_INVALID,
    }

    # Message fragments, checked only when type and context gave no answer
    STORE_KEYWORDS = (
        ("no server running", ErrorKind.STORE_NO_SESSION),
        ("no current session", ErrorKind.STORE_NO_SESSION),
        ("permission denied", ErrorKind.STORE_PERMISSION),
    )

    def classify(self, error: BaseException, context: Optional[OperationContext] = None) -> ErrorKind:
        """
        Classify an exception raised by an operation.

        Args:
            error: The exception
            context: The operation's declared target (optional)

        Returns:
            The ErrorKind used to pick a RecoveryStrategy
        """
        target = context.target if context else OperationTarget.INTERNAL

        if isinstance(error, StoreError):
            return error.kind

        for exc_type, kind in self.CLASSIFICATION_RULES.items():
            if isinstance(error, exc_type):
                return kind

        if isinstance(error, (CommandError, asyncio.TimeoutError, FileNotFoundError, PermissionError)):
            return self._classify_by_target(error, target)

        return self._classify_by_message(str(error), target)

    def _classify_by_target(self, error: BaseException, target: OperationTarget) -> ErrorKind:
        timed_out = isinstance(error, (CommandTimeoutError, asyncio.TimeoutError))
        missing = isinstance(error, (CommandNotFoundError, FileNotFoundError))

        if target == OperationTarget.STORE:
            if isinstance(error, PermissionError):
                return ErrorKind.STORE_PERMISSION
            if isinstance(error, CommandFailedError):
                return self._classify_by_message(error.stderr or str(error), target)
            return ErrorKind.STORE_UNAVAILABLE

        if target == OperationTarget.CONFIG:
            # config is read from tmux options
            if timed_out or missing:
                return ErrorKind.STORE_UNAVAILABLE
            return ErrorKind.CONFIG_INVALID

        if timed_out:
            return ErrorKind.UPSTREAM_TIMEOUT
        if missing:
            return ErrorKind.UPSTREAM_MISSING
        if isinstance(error, CommandFailedError):
            # shells report a missing executable as exit status 127
            if error.returncode == 127:
                return ErrorKind.UPSTREAM_MISSING
            return self._classify_by_message(error.stderr or str(error), target)
        return ErrorKind.UNKNOWN

    def _classify_by_message(self, message: str, target: OperationTarget) -> ErrorKind:
        text = message.lower()

        if target in (OperationTarget.STORE, OperationTarget.CONFIG) or "tmux" in text:
            for fragment, kind in self.STORE_KEYWORDS:
                if fragment in text:
                    return kind
            if target == OperationTarget.STORE:
                return ErrorKind.STORE_UNAVAILABLE

        if "timeout" in text or "timed out" in text:
            return ErrorKind.UPSTREAM_TIMEOUT
        if target == OperationTarget.UPSTREAM and ("not found" in text or "enoent" in text):
            return ErrorKind.UPSTREAM_MISSING
        if "json" in text or "parse" in text or "unexpected token" in text:
            return ErrorKind.MALFORMED_RESPONSE
        if target == OperationTarget.CONFIG:
            return ErrorKind.CONFIG_INVALID
        return ErrorKind.UNKNOWN


# =============================================================================
# Ledger
# =============================================================================


@dataclass
class ErrorRecord:
    kind: ErrorKind
    strategy: RecoveryStrategy
    occurrence_count: int = 0
    last_occurrence: Optional[float] = None
    last_message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "occurrence_count": self.occurrence_count,
            "last_occurrence": self.last_occurrence,
            "last_message": self.last_message,
            "recovery_strategy": self.strategy.to_dict(),
        }


@dataclass
class ErrorLedger:
    """One ErrorRecord per kind plus a recovered counter. Owned by the orchestrator."""
    strategies: Dict[ErrorKind, RecoveryStrategy] = field(default_factory=lambda: dict(DEFAULT_STRATEGIES))
    records: Dict[ErrorKind, ErrorRecord] = field(default_factory=dict)
    recoveries: int = 0
    last_error: Optional[BaseException] = None
    clock: Callable[[], float] = time.time

    def strategy_for(self, kind: ErrorKind) -> RecoveryStrategy:
        return self.strategies.get(kind, self.strategies[ErrorKind.UNKNOWN])

    def record(self, kind: ErrorKind, error: BaseException) -> ErrorRecord:
        record = self.records.get(kind)
        if record is None:
            record = ErrorRecord(kind=kind, strategy=self.strategy_for(kind))
            self.records[kind] = record
        record.occurrence_count += 1
        record.last_occurrence = self.clock()
        record.last_message = str(error)
        self.last_error = error
        return record

    def record_recovery(self) -> None:
        self.recoveries += 1

    @property
    def total_errors(self) -> int:
        return sum(r.occurrence_count for r in self.records.values())

    def stats(self) -> Dict[str, Any]:
        return {
            "total_errors": self.total_errors,
            "recoveries": self.recoveries,
            "by_kind": {kind.value: record.to_dict() for kind, record in self.records.items()},
        }

    @property
    def last_error_time(self) -> Optional[float]:
        times = [r.last_occurrence for r in self.records.values() if r.last_occurrence is not None]
        return max(times) if times else None

    def clear(self) -> None:
        self.records.clear()
        self.recoveries = 0
        self.last_error = None


# =============================================================================
# Retry executor
# =============================================================================


class RetryExecutor:
    """
    Runs an async operation with bounded retries.

    Between attempts it sleeps base_backoff_ms * attempt_number, so every
    delay is longer than the one before. When attempts run out, the error
    is classified, recorded in the ledger and handed to the kind's fallback
    action.
    """

    def __init__(
        self,
        ledger: Optional[ErrorLedger] = None,
        classifier: Optional[ErrorClassifier] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.ledger = ledger if ledger is not None else ErrorLedger()
        self.classifier = classifier or ErrorClassifier()
        self._sleep = sleep

    async def with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        context: OperationContext,
        max_attempts: Optional[int] = None,
        base_backoff_ms: Optional[int] = None,
        default: Any = None,
        fallback: Optional[Callable[[BaseException], Any]] = None,
    ) -> T:
        """
        Execute operation, retrying on failure.

        Args:
            operation: Zero-argument coroutine factory
            context: Which operation this is and what it talks to
            max_attempts: Attempt budget (the kind's strategy may lower it)
            base_backoff_ms: Backoff unit (the kind's strategy value if None)
            default: Value returned when a fallback recovers
            fallback: Called once with the final error to produce the default

        Returns:
            The operation result, or the recovered default

        Raises:
            The last error when the kind's fallback action is SURFACE
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                return await operation()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                kind = self.classifier.classify(e, context)
                strategy = self.ledger.strategy_for(kind)
                limit = strategy.max_attempts if max_attempts is None else min(max_attempts, strategy.max_attempts)

                if attempt >= limit:
                    return self._exhausted(e, kind, strategy, context, attempt, default, fallback)

                backoff_ms = strategy.backoff_ms if base_backoff_ms is None else base_backoff_ms
                delay_ms = backoff_ms * attempt
                logger.warning(
                    f"[Retry] {context.name} attempt {attempt}/{limit} failed ({kind.value}): {e}; "
                    f"retrying in {delay_ms}ms"
                )
                await self._sleep(delay_ms / 1000.0)

    def _exhausted(
        self,
        error: Exception,
        kind: ErrorKind,
        strategy: RecoveryStrategy,
        context: OperationContext,
        attempts: int,
        default: Any,
        fallback: Optional[Callable[[BaseException], Any]],
    ) -> Any:
        self.ledger.record(kind, error)

        if strategy.fallback == FallbackAction.SURFACE:
            logger.error(
                f"[Retry] {context.name} failed after {attempts} attempt(s) ({kind.value}): {error}. "
                f"{strategy.guidance}"
            )
            raise error

        if strategy.fallback == FallbackAction.RETURN_DEFAULT:
            logger.warning(
                f"[Retry] {context.name} failed after {attempts} attempt(s) ({kind.value}), "
                f"using fallback value. {strategy.guidance}"
            )
        else:
            logger.error(
                f"[Retry] {context.name} failed after {attempts} attempt(s) ({kind.value}): {error}. "
                f"{strategy.guidance}"
            )

        self.ledger.record_recovery()
        return fallback(error) if fallback is not None else default
