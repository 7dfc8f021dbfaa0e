"""
Retry policy with exponential backoff and a per-operation circuit breaker.

Each operation key (for example ``db.fetch_page`` or ``storage.write``) has
its own RetryState. Transient failures are retried with exponential backoff;
once a key exhausts its retries ``failure_threshold`` times in a row the
circuit opens and further calls fail fast with CircuitOpenError until the
cooldown has elapsed.
"""

import asyncio
import inspect
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from .error_handler import ErrorContext, ErrorHandler
from .exceptions import CircuitOpenError, ConfigurationError


logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry logic and the circuit breaker."""
    max_retries: int = 3
    base_delay: float = 0.1
    multiplier: float = 2.0
    max_delay: float = 5.0
    failure_threshold: int = 5
    cooldown: float = 30.0

    def __post_init__(self):
        if self.max_retries < 0:
            raise ConfigurationError("max_retries must not be negative")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ConfigurationError("retry delays must not be negative")
        if self.multiplier < 1:
            raise ConfigurationError("multiplier must be at least 1")
        if self.failure_threshold < 1:
            raise ConfigurationError("failure_threshold must be at least 1")
        if self.cooldown < 0:
            raise ConfigurationError("cooldown must not be negative")

    def delay_for(self, attempt: int) -> float:
        """Backoff delay before the retry following ``attempt`` (0-based)."""
        return min(self.base_delay * (self.multiplier ** attempt), self.max_delay)


@dataclass
class RetryState:
    """Failure bookkeeping for one operation key."""
    consecutive_failures: int = 0
    last_failure_at: Optional[float] = None


class RetryPolicy:
    """
    Executes operations with retries and a circuit breaker.

    The state map is owned by the instance and guarded by a lock, so a
    policy can be shared between jobs without corrupting its counters.
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        error_handler: Optional[ErrorHandler] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config or RetryConfig()
        self.error_handler = error_handler or ErrorHandler()
        self._clock = clock
        self._sleep = sleep
        self._states: Dict[str, RetryState] = {}
        self._lock = threading.Lock()

    def get_state(self, key: str) -> RetryState:
        """Return a snapshot of the state for ``key``."""
        with self._lock:
            state = self._states.get(key, RetryState())
            return RetryState(state.consecutive_failures, state.last_failure_at)

    def is_open(self, key: str) -> bool:
        """True while the circuit for ``key`` rejects calls."""
        with self._lock:
            return self._remaining_cooldown(key) > 0

    def reset(self, key: Optional[str] = None) -> None:
        """Forget failures for one key, or for every key."""
        with self._lock:
            if key is None:
                self._states.clear()
            else:
                self._states.pop(key, None)

    def _remaining_cooldown(self, key: str) -> float:
        # Caller holds the lock.
        state = self._states.get(key)
        if state is None or state.consecutive_failures < self.config.failure_threshold:
            return 0.0
        elapsed = self._clock() - (state.last_failure_at or 0.0)
        return max(self.config.cooldown - elapsed, 0.0)

    def _admit(self, key: str) -> None:
        with self._lock:
            state = self._states.get(key)
            if state is None or state.consecutive_failures < self.config.failure_threshold:
                return
            remaining = self._remaining_cooldown(key)
            if remaining > 0:
                raise CircuitOpenError(
                    f"Circuit open for '{key}' after {state.consecutive_failures} "
                    f"consecutive failures; retry in {remaining:.1f}s",
                    key=key,
                    retry_after=remaining,
                )
            # Cooldown elapsed: close the circuit and try again.
            logger.info(f"Circuit for '{key}' closed after cooldown")
            self._states.pop(key, None)

    def _record_success(self, key: str) -> None:
        with self._lock:
            self._states.pop(key, None)

    def _record_failure(self, key: str) -> RetryState:
        with self._lock:
            state = self._states.setdefault(key, RetryState())
            state.consecutive_failures += 1
            state.last_failure_at = self._clock()
            if state.consecutive_failures >= self.config.failure_threshold:
                logger.warning(
                    f"Circuit opened for '{key}' after {state.consecutive_failures} consecutive failures"
                )
            return RetryState(state.consecutive_failures, state.last_failure_at)

    async def execute(self, key: str, operation: Callable, *args, **kwargs) -> Any:
        """
        Run ``operation`` under the policy for ``key``.

        ``operation`` may be a plain callable or return an awaitable.

        Raises:
            CircuitOpenError: if the circuit for ``key`` is open
            Exception: the operation's own error when it is fatal, or the
                last transient error once retries are exhausted
        """
        self._admit(key)

        config = self.config
        attempt = 0
        while True:
            try:
                result = operation(*args, **kwargs)
                if inspect.isawaitable(result):
                    result = await result
            except Exception as e:
                error_info = self.error_handler.handle_error(
                    e, ErrorContext(operation=key, attempt=attempt + 1)
                )
                if not error_info.is_transient:
                    raise

                if attempt >= config.max_retries:
                    self._record_failure(key)
                    raise

                delay = config.delay_for(attempt)
                logger.info(
                    f"Retrying '{key}' in {delay:.2f} seconds "
                    f"(attempt {attempt + 1}/{config.max_retries + 1})"
                )
                await self._sleep(delay)
                attempt += 1
            else:
                self._record_success(key)
                return result


def create_database_retry_config() -> RetryConfig:
    """Create retry configuration for source database reads."""
    return RetryConfig(
        max_retries=3,
        base_delay=0.1,
        multiplier=2.0,
        max_delay=5.0,
        failure_threshold=5,
        cooldown=30.0,
    )


def create_storage_retry_config() -> RetryConfig:
    """Create retry configuration for storage writes."""
    return RetryConfig(
        max_retries=2,
        base_delay=0.5,
        multiplier=2.0,
        max_delay=5.0,
        failure_threshold=3,
        cooldown=60.0,
    )
