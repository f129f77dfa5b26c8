"""
Custom exceptions for the KYC review service.

Every exception carries an ``error_code``; the error classifier looks it up in its
static table to decide category, retryability and the HTTP-equivalent status.
"""
from typing import Optional


class BaseKYCReviewError(Exception):
    """Base class for exceptions in this module."""
    error_code: str = "KYCReviewError"


# --- Store adapter failures ---

class StoreError(BaseKYCReviewError):
    """Raised by document store adapters for failures they detect themselves."""
    error_code = "StoreError"


class ItemAlreadyExistsError(StoreError):
    """Raised by put_if_absent when an item with the same key is already stored."""
    error_code = "ItemAlreadyExists"

    def __init__(self, pk: str, sk: str):
        self.pk = pk
        self.sk = sk
        super().__init__(f"Item with key ({pk}, {sk}) already exists.")


class PreconditionFailedError(StoreError):
    """Raised by conditional_update when the stored status no longer matches the expectation."""
    error_code = "ConditionalCheckFailed"

    def __init__(self, pk: str, sk: str, expected_status: Optional[str], actual_status: Optional[str] = None):
        self.pk = pk
        self.sk = sk
        self.expected_status = expected_status
        self.actual_status = actual_status
        if expected_status is None:
            detail = "item does not exist"
        else:
            detail = f"expected status '{expected_status}', found '{actual_status}'"
        super().__init__(f"Conditional update of ({pk}, {sk}) failed: {detail}.")


class InvalidPageTokenError(StoreError):
    """Raised when a pagination token cannot be decoded."""
    error_code = "InvalidPageToken"


# --- Review state machine failures ---

class InvalidReviewRequestError(BaseKYCReviewError):
    """Raised when a review or listing request fails input validation."""
    error_code = "InvalidReviewRequest"


class DocumentNotFoundError(BaseKYCReviewError):
    """Raised when the document named by a request does not exist."""
    error_code = "DocumentNotFound"

    def __init__(self, user_id: str, document_id: str):
        self.user_id = user_id
        self.document_id = document_id
        super().__init__("Document not found")


class DocumentNotAwaitingReviewError(BaseKYCReviewError):
    """Raised when a decision targets a document that is not in pending_review."""
    error_code = "DocumentNotAwaitingReview"

    def __init__(self, document_id: str, current_status: str, expected_status: str = "pending_review"):
        self.document_id = document_id
        self.current_status = current_status
        self.expected_status = expected_status
        if expected_status == "pending_review":
            message = f"Document is not awaiting review (current status: {current_status})"
        else:
            message = f"Document is not in {expected_status} status (current status: {current_status})"
        super().__init__(message)


class CriticalInconsistencyError(BaseKYCReviewError):
    """
    Raised when a later step fails after an earlier step of the same operation
    already committed, leaving the document and the user record out of step.
    """
    error_code = "CriticalInconsistency"

    def __init__(self, document_id: str, user_id: str, committed_status: str, cause: Exception):
        self.document_id = document_id
        self.user_id = user_id
        self.committed_status = committed_status
        self.cause = cause
        super().__init__(
            f"Document {document_id} is {committed_status} but user {user_id} status update failed: {cause}"
        )


# --- Event publication ---

class EventValidationError(BaseKYCReviewError):
    """Raised when a domain event does not match its registered schema."""
    error_code = "EventValidationError"

    def __init__(self, event_type: str, errors: list):
        self.event_type = event_type
        self.errors = errors
        super().__init__(f"Event {event_type} failed schema validation: {', '.join(errors)}")


class KafkaProducerError(BaseKYCReviewError):
    """Raised when there's an issue with Kafka message production."""
    error_code = "KafkaProducerError"
