import logging

import pytest
from pymongo.errors import (
    AutoReconnect,
    ConnectionFailure,
    DuplicateKeyError,
    ExecutionTimeout,
    NetworkTimeout,
    NotPrimaryError,
    OperationFailure,
    ServerSelectionTimeoutError,
)

from kyc_review_service.app.service.errors import (
    CONFLICT_USER_MESSAGE,
    GENERIC_USER_MESSAGE,
    ErrorCategory,
    ErrorClassifier,
    raw_error_code,
)
from kyc_review_service.app.service.exceptions import (
    CriticalInconsistencyError,
    DocumentNotAwaitingReviewError,
    DocumentNotFoundError,
    InvalidReviewRequestError,
    ItemAlreadyExistsError,
    PreconditionFailedError,
)


@pytest.fixture
def classifier():
    return ErrorClassifier()


class ThrottlingException(Exception):
    pass


class HttpError(Exception):
    def __init__(self, message, http_status):
        super().__init__(message)
        self.http_status = http_status


@pytest.mark.parametrize("error, category, status, retryable", [
    (InvalidReviewRequestError("Invalid user ID"), ErrorCategory.VALIDATION, 400, False),
    (DocumentNotAwaitingReviewError("d1", "approved"), ErrorCategory.VALIDATION, 400, False),
    (PreconditionFailedError("USER#u", "KYC#d", "pending_review", "approved"), ErrorCategory.VALIDATION, 409, False),
    (ItemAlreadyExistsError("USER#u", "KYC#d"), ErrorCategory.VALIDATION, 409, False),
    (DocumentNotFoundError("u", "d"), ErrorCategory.RESOURCE_NOT_FOUND, 404, False),
    (CriticalInconsistencyError("d", "u", "approved", RuntimeError("x")), ErrorCategory.CRITICAL, 500, False),
    (DuplicateKeyError("E11000 duplicate key"), ErrorCategory.VALIDATION, 409, False),
    (ExecutionTimeout("operation exceeded time limit"), ErrorCategory.TRANSIENT, 408, True),
    (NetworkTimeout("timed out"), ErrorCategory.TRANSIENT, 408, True),
    (AutoReconnect("reconnecting"), ErrorCategory.TRANSIENT, 503, True),
    (ConnectionFailure("refused"), ErrorCategory.TRANSIENT, 503, True),
    (ServerSelectionTimeoutError("no primary"), ErrorCategory.TRANSIENT, 503, True),
    (NotPrimaryError("not primary"), ErrorCategory.TRANSIENT, 503, True),
    (ThrottlingException("slow down"), ErrorCategory.RATE_LIMIT, 429, True),
    (TimeoutError("socket timeout"), ErrorCategory.TRANSIENT, 408, True),
    (ConnectionError("reset by peer"), ErrorCategory.TRANSIENT, 503, True),
])
def test_static_table(classifier, error, category, status, retryable):
    details = classifier.classify(error)

    assert details.category == category
    assert details.http_status_code == status
    assert details.retryable is retryable
    assert details.technical_message


def test_precondition_failure_uses_conflict_message(classifier):
    details = classifier.classify(PreconditionFailedError("USER#u", "KYC#d", "pending_review", "approved"))

    assert details.error_code == "ConditionalCheckFailed"
    assert details.user_message == CONFLICT_USER_MESSAGE


def test_domain_validation_keeps_own_message(classifier):
    details = classifier.classify(InvalidReviewRequestError("Comments are required for rejection"))
    assert details.user_message == "Comments are required for rejection"

    details = classifier.classify(DocumentNotAwaitingReviewError("d1", "uploaded"))
    assert details.user_message == "Document is not awaiting review (current status: uploaded)"


@pytest.mark.parametrize("code, errmsg", [
    (16500, "Request rate is large"),
    (None, "TooManyRequests: request rate exceeded"),
])
def test_mongo_throttling_is_rate_limit(classifier, code, errmsg):
    error = OperationFailure(errmsg, code=code, details={"errmsg": errmsg})

    details = classifier.classify(error)

    assert details.category == ErrorCategory.RATE_LIMIT
    assert details.http_status_code == 429
    assert details.retryable is True


@pytest.mark.parametrize("http_status, category, retryable", [
    (429, ErrorCategory.RATE_LIMIT, True),
    (500, ErrorCategory.TRANSIENT, True),
    (503, ErrorCategory.TRANSIENT, True),
    (403, ErrorCategory.VALIDATION, False),
])
def test_http_status_fallback(classifier, http_status, category, retryable):
    details = classifier.classify(HttpError("upstream said no", http_status))

    assert details.category == category
    assert details.http_status_code == http_status
    assert details.retryable is retryable


def test_unknown_error_is_retryable_and_generic(classifier, caplog):
    with caplog.at_level(logging.WARNING):
        details = classifier.classify(KeyError("secret internal detail"), context={"step": "get_document"})

    assert details.category == ErrorCategory.UNKNOWN
    assert details.category != ErrorCategory.VALIDATION
    assert details.retryable is True
    assert details.http_status_code == 500
    assert details.user_message == GENERIC_USER_MESSAGE
    assert "secret internal detail" not in details.user_message
    assert details.context == {"step": "get_document"}
    assert any("Unclassified error" in r.getMessage() for r in caplog.records)


def test_unclassified_operation_failure_is_unknown(classifier):
    details = classifier.classify(OperationFailure("bad things", code=2))
    assert details.category == ErrorCategory.UNKNOWN


def test_raw_error_code_prefers_error_code_attribute():
    assert raw_error_code(PreconditionFailedError("p", "s", None)) == "ConditionalCheckFailed"
    assert raw_error_code(ValueError("x")) == "ValueError"
