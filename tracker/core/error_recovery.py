"""Retry for record-source I/O and component health checks."""

import asyncio
import time
import random
from dataclasses import dataclass
from typing import Callable, Any, Optional, Dict, List, Type
from functools import wraps
from datetime import datetime

from .exceptions import TrackerError, RecordSourceError
from .logging import get_logger


logger = get_logger(__name__)


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 0.2,
        max_delay: float = 5.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
        retryable_exceptions: Optional[List[Type[Exception]]] = None
    ):
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.retryable_exceptions = retryable_exceptions or [RecordSourceError]

    def should_retry(self, exception: Exception, attempt: int) -> bool:
        """Determine if an exception should be retried."""
        if attempt >= self.max_attempts:
            return False

        if isinstance(exception, TrackerError):
            return exception.recoverable

        return any(isinstance(exception, exc_type) for exc_type in self.retryable_exceptions)

    def get_delay(self, attempt: int) -> float:
        """Calculate delay for the given attempt."""
        delay = self.base_delay * (self.exponential_base ** (attempt - 1))
        delay = min(delay, self.max_delay)

        if self.jitter:
            delay *= (0.5 + random.random() * 0.5)

        return delay


def with_retry(config: Optional[RetryConfig] = None):
    """Decorator retrying a record-source call on recoverable errors."""
    if config is None:
        config = RetryConfig()

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            return _execute_with_retry(func, config, *args, **kwargs)
        return wrapper

    return decorator


def _execute_with_retry(func: Callable, config: RetryConfig, *args, **kwargs) -> Any:
    operation = func.__qualname__

    for attempt in range(1, config.max_attempts + 1):
        try:
            return func(*args, **kwargs)
        except Exception as e:
            fields = {
                "operation": operation,
                "attempt": attempt,
                "max_attempts": config.max_attempts,
                "error_type": type(e).__name__,
            }
            if not config.should_retry(e, attempt):
                logger.error(
                    f"{operation} failed after {attempt} attempt(s): {e}",
                    extra={"extra_fields": fields}
                )
                raise

            logger.warning(
                f"{operation} failed on attempt {attempt}/{config.max_attempts}, retrying: {e}",
                extra={"extra_fields": fields}
            )
            time.sleep(config.get_delay(attempt))


@dataclass
class ComponentCheck:
    """A registered check of one service component."""
    name: str
    func: Callable[[], Dict[str, Any]]
    timeout: float = 5.0
    critical: bool = True


class HealthChecker:
    """
    Runs component checks for the detailed health endpoint.

    Checks are plain callables returning a dict of details; a check fails by
    raising. Blocking checks such as a record-source count run in a worker
    thread so a slow database cannot stall the event loop beyond ``timeout``.
    The overall status is ``unhealthy`` when a critical check fails and
    ``degraded`` when only non-critical ones do.
    """

    def __init__(self):
        self.checks: Dict[str, ComponentCheck] = {}

    def register_check(
        self,
        name: str,
        check_func: Callable[[], Dict[str, Any]],
        timeout: float = 5.0,
        critical: bool = True
    ) -> None:
        """Register a component check under ``name``."""
        self.checks[name] = ComponentCheck(name, check_func, timeout, critical)
        logger.debug(f"Registered health check: {name}")

    async def run_check(self, name: str) -> Dict[str, Any]:
        """
        Run one registered check.

        Raises:
            KeyError: If no check is registered under ``name``
        """
        check = self.checks[name]
        start_time = time.time()

        try:
            details = await asyncio.wait_for(asyncio.to_thread(check.func), timeout=check.timeout)
            result = {"status": "healthy", **(details or {})}
        except asyncio.TimeoutError:
            result = {"status": "timeout", "message": f"No answer within {check.timeout}s"}
        except Exception as e:
            logger.warning(f"Health check '{name}' failed: {e}")
            result = {"status": "unhealthy", "message": str(e), "error_type": type(e).__name__}

        result["critical"] = check.critical
        result["duration_ms"] = round((time.time() - start_time) * 1000, 2)
        return result

    async def run_all_checks(self) -> Dict[str, Any]:
        """Run every check and derive the overall status."""
        results = {name: await self.run_check(name) for name in self.checks}

        failed = [result for result in results.values() if result["status"] != "healthy"]
        if any(result["critical"] for result in failed):
            overall_status = "unhealthy"
        elif failed:
            overall_status = "degraded"
        else:
            overall_status = "healthy"

        return {
            "overall_status": overall_status,
            "checks": results,
            "timestamp": datetime.utcnow().isoformat()
        }
