# Exponential backoff with full jitter for backing-store calls
import logging
import random as random_module
import time
from typing import Callable, Optional, TypeVar

from kyc_review_service.app.config import settings, AppSettings
from kyc_review_service.app.service.errors import ErrorClassifier
from kyc_review_service.app.observability import tracer

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy:
    """
    Re-invokes an operation until it succeeds, the error is not retryable, or
    ``max_attempts`` calls have been made.

    The delay before retry ``n`` (1-based) is drawn uniformly from
    ``[0, min(max_delay, base_delay * multiplier ** (n - 1))]``.
    ``sleep`` and ``random`` are injectable so tests run without waiting.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 0.1,
        max_delay: float = 5.0,
        multiplier: float = 2.0,
        classifier: Optional[ErrorClassifier] = None,
        sleep: Callable[[float], None] = time.sleep,
        random: Optional[random_module.Random] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if base_delay < 0 or max_delay < base_delay:
            raise ValueError("Delays must satisfy 0 <= base_delay <= max_delay")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.multiplier = multiplier
        self.classifier = classifier or ErrorClassifier()
        self._sleep = sleep
        self._random = random or random_module.Random()

    @classmethod
    def from_settings(cls, app_settings: Optional[AppSettings] = None, classifier: Optional[ErrorClassifier] = None) -> "RetryPolicy":
        app_settings = app_settings or settings
        return cls(
            max_attempts=app_settings.RETRY_MAX_ATTEMPTS,
            base_delay=app_settings.RETRY_BASE_DELAY_SECONDS,
            max_delay=app_settings.RETRY_MAX_DELAY_SECONDS,
            multiplier=app_settings.RETRY_BACKOFF_MULTIPLIER,
            classifier=classifier,
        )

    def delay_ceiling(self, retry_number: int) -> float:
        return min(self.max_delay, self.base_delay * (self.multiplier ** (retry_number - 1)))

    def worst_case_total_delay(self) -> float:
        return sum(self.delay_ceiling(n) for n in range(1, self.max_attempts))

    def execute(self, operation: Callable[[], T], label: str = "operation") -> T:
        total_delay = 0.0
        attempt = 0
        while True:
            attempt += 1
            try:
                result = operation()
                if attempt > 1:
                    logger.info(f"{label} succeeded on attempt {attempt} after {total_delay:.3f}s of backoff.")
                return result
            except Exception as e:
                if not self.classifier.is_retryable(e):
                    logger.debug(f"{label} failed with non-retryable error {type(e).__name__}; not retrying.")
                    raise
                if attempt >= self.max_attempts:
                    logger.error(
                        f"{label} failed after {attempt} attempts ({total_delay:.3f}s of backoff): {e}",
                        exc_info=True,
                    )
                    self._annotate(e, attempt, total_delay)
                    raise
                delay = self._random.uniform(0, self.delay_ceiling(attempt))
                total_delay += delay
                logger.warning(
                    f"{label} attempt {attempt}/{self.max_attempts} failed with {type(e).__name__}: {e}. "
                    f"Retrying in {delay:.3f}s."
                )
                with tracer.start_as_current_span("retry.backoff") as span:
                    span.set_attribute("retry.label", label)
                    span.set_attribute("retry.attempt", attempt)
                    span.set_attribute("retry.delay_seconds", delay)
                    self._sleep(delay)

    @staticmethod
    def _annotate(error: Exception, attempts: int, total_delay: float) -> None:
        error.retry_attempts = attempts
        error.retry_total_delay = total_delay
        error.add_note(f"Gave up after {attempts} attempts and {total_delay:.3f}s of backoff.")
