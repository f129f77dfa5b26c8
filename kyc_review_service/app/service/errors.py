# Error classification: raw store/domain errors -> category, status code and safe message
import enum
import logging
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field
from pymongo import errors as pymongo_errors

from kyc_review_service.app.service.exceptions import BaseKYCReviewError

logger = logging.getLogger(__name__)

GENERIC_USER_MESSAGE = "An unexpected error occurred. Please try again later."
CONFLICT_USER_MESSAGE = "The operation could not be completed due to a conflict."

# Mongo server error codes signalling throttling (Cosmos DB API for MongoDB / Atlas limits)
RATE_LIMIT_ERROR_CODES = {16500, 429}


class ErrorCategory(str, enum.Enum):
    VALIDATION = "validation"
    RESOURCE_NOT_FOUND = "resource_not_found"
    RATE_LIMIT = "rate_limit"
    TRANSIENT = "transient"
    UNKNOWN = "unknown"
    CRITICAL = "critical"


class ErrorDetails(BaseModel):
    category: ErrorCategory
    error_code: str
    http_status_code: int
    user_message: str
    technical_message: str
    retryable: bool
    context: Dict[str, Any] = Field(default_factory=dict)


class _Rule(BaseModel):
    category: ErrorCategory
    http_status_code: int
    retryable: bool
    user_message: Optional[str] = None  # None: the error's own message is safe to show


_RULES: Dict[str, _Rule] = {
    # Domain
    "InvalidReviewRequest": _Rule(category=ErrorCategory.VALIDATION, http_status_code=400, retryable=False),
    "DocumentNotAwaitingReview": _Rule(category=ErrorCategory.VALIDATION, http_status_code=400, retryable=False),
    "InvalidPageToken": _Rule(
        category=ErrorCategory.VALIDATION, http_status_code=400, retryable=False,
        user_message="Invalid page token",
    ),
    "ConditionalCheckFailed": _Rule(
        category=ErrorCategory.VALIDATION, http_status_code=409, retryable=False,
        user_message=CONFLICT_USER_MESSAGE,
    ),
    "ItemAlreadyExists": _Rule(
        category=ErrorCategory.VALIDATION, http_status_code=409, retryable=False,
        user_message="The resource already exists.",
    ),
    "DocumentNotFound": _Rule(
        category=ErrorCategory.RESOURCE_NOT_FOUND, http_status_code=404, retryable=False,
        user_message="Document not found",
    ),
    "ResourceNotFound": _Rule(
        category=ErrorCategory.RESOURCE_NOT_FOUND, http_status_code=404, retryable=False,
        user_message="The requested resource was not found.",
    ),
    "CriticalInconsistency": _Rule(
        category=ErrorCategory.CRITICAL, http_status_code=500, retryable=False,
        user_message="A critical error occurred while processing the review. The operations team has been alerted.",
    ),
    # Store (pymongo)
    "DuplicateKeyError": _Rule(
        category=ErrorCategory.VALIDATION, http_status_code=409, retryable=False,
        user_message="The resource already exists.",
    ),
    "ThrottlingException": _Rule(
        category=ErrorCategory.RATE_LIMIT, http_status_code=429, retryable=True,
        user_message="Too many requests. Please try again later.",
    ),
    "ProvisionedThroughputExceededException": _Rule(
        category=ErrorCategory.RATE_LIMIT, http_status_code=429, retryable=True,
        user_message="Too many requests. Please try again later.",
    ),
    "ExecutionTimeout": _Rule(
        category=ErrorCategory.TRANSIENT, http_status_code=408, retryable=True,
        user_message="The request timed out. Please try again.",
    ),
    "NetworkTimeout": _Rule(
        category=ErrorCategory.TRANSIENT, http_status_code=408, retryable=True,
        user_message="The request timed out. Please try again.",
    ),
    "WTimeoutError": _Rule(
        category=ErrorCategory.TRANSIENT, http_status_code=408, retryable=True,
        user_message="The request timed out. Please try again.",
    ),
    "AutoReconnect": _Rule(
        category=ErrorCategory.TRANSIENT, http_status_code=503, retryable=True,
        user_message="Service temporarily unavailable. Please try again.",
    ),
    "ConnectionFailure": _Rule(
        category=ErrorCategory.TRANSIENT, http_status_code=503, retryable=True,
        user_message="Service temporarily unavailable. Please try again.",
    ),
    "ServerSelectionTimeoutError": _Rule(
        category=ErrorCategory.TRANSIENT, http_status_code=503, retryable=True,
        user_message="Service temporarily unavailable. Please try again.",
    ),
    "NotPrimaryError": _Rule(
        category=ErrorCategory.TRANSIENT, http_status_code=503, retryable=True,
        user_message="Service temporarily unavailable. Please try again.",
    ),
    "ServiceUnavailable": _Rule(
        category=ErrorCategory.TRANSIENT, http_status_code=503, retryable=True,
        user_message="Service temporarily unavailable. Please try again.",
    ),
    "InternalServerError": _Rule(
        category=ErrorCategory.TRANSIENT, http_status_code=503, retryable=True,
        user_message="Service temporarily unavailable. Please try again.",
    ),
    # Network
    "RequestTimeout": _Rule(
        category=ErrorCategory.TRANSIENT, http_status_code=408, retryable=True,
        user_message="The request timed out. Please try again.",
    ),
    "TimeoutError": _Rule(
        category=ErrorCategory.TRANSIENT, http_status_code=408, retryable=True,
        user_message="The request timed out. Please try again.",
    ),
    "NetworkingError": _Rule(
        category=ErrorCategory.TRANSIENT, http_status_code=503, retryable=True,
        user_message="Network error. Please check your connection and try again.",
    ),
    "ConnectionError": _Rule(
        category=ErrorCategory.TRANSIENT, http_status_code=503, retryable=True,
        user_message="Network error. Please check your connection and try again.",
    ),
}

_RATE_LIMIT_RULE = _RULES["ThrottlingException"]


def raw_error_code(error: BaseException) -> str:
    """Identifier used for table lookup: a string ``error_code`` attribute, else the class name."""
    code = getattr(error, "error_code", None)
    if isinstance(code, str) and code:
        return code
    return type(error).__name__


class ErrorClassifier:
    """
    Maps any raised error to ErrorDetails.

    Lookup order: static table by raw error identifier, Mongo throttling codes,
    then the ``http_status`` carried on the error. Everything else is ``unknown``
    and retryable; unknown errors are never reported as validation failures.
    """

    def classify(self, error: BaseException, context: Optional[Dict[str, Any]] = None) -> ErrorDetails:
        context = dict(context or {})
        code = raw_error_code(error)
        technical_message = str(error) or code

        rule = _RULES.get(code)
        if rule is None and self._is_throttled(error):
            rule = _RATE_LIMIT_RULE
        if rule is None:
            rule = self._rule_from_http_status(error)

        if rule is None:
            logger.warning(
                f"Unclassified error {code}: {technical_message}",
                extra={"error_code": code, "context": context},
            )
            return ErrorDetails(
                category=ErrorCategory.UNKNOWN,
                error_code=code,
                http_status_code=500,
                user_message=GENERIC_USER_MESSAGE,
                technical_message=technical_message,
                retryable=True,
                context=context,
            )

        user_message = rule.user_message
        if user_message is None:
            user_message = str(error) if isinstance(error, BaseKYCReviewError) else GENERIC_USER_MESSAGE
        return ErrorDetails(
            category=rule.category,
            error_code=code,
            http_status_code=rule.http_status_code,
            user_message=user_message,
            technical_message=technical_message,
            retryable=rule.retryable,
            context=context,
        )

    def is_retryable(self, error: BaseException) -> bool:
        return self.classify(error).retryable

    @staticmethod
    def _is_throttled(error: BaseException) -> bool:
        if not isinstance(error, pymongo_errors.OperationFailure):
            return False
        if error.code in RATE_LIMIT_ERROR_CODES:
            return True
        details = error.details or {}
        return "TooManyRequests" in str(details.get("errmsg", "")) or "TooManyRequests" in str(error)

    @staticmethod
    def _rule_from_http_status(error: BaseException) -> Optional[_Rule]:
        status = getattr(error, "http_status", None)
        if not isinstance(status, int):
            return None
        if status == 429:
            return _RATE_LIMIT_RULE
        if status >= 500:
            return _Rule(
                category=ErrorCategory.TRANSIENT, http_status_code=status, retryable=True,
                user_message="Service temporarily unavailable. Please try again.",
            )
        if 400 <= status < 500:
            return _Rule(
                category=ErrorCategory.VALIDATION, http_status_code=status, retryable=False,
                user_message="The request could not be processed.",
            )
        return None
