# Review & status-transition engine for KYC documents
import logging
import time
import uuid
from typing import Any, Callable, Dict, Optional, TypeVar, Union

from opentelemetry import trace
from pydantic import ValidationError

from kyc_review_service.app.config import settings
from kyc_review_service.app.models import (
    DocumentStatus,
    DocumentType,
    KYCDocumentDB,
    KYCStatus,
    ReviewDecision,
    UserType,
    document_key,
    document_status_index_key,
    kyc_status_index_key,
    normalize_document_status,
    profile_key,
    utc_now_iso,
)
from kyc_review_service.app.observability import MetricsRecorder, tracer
from kyc_review_service.app.service.audit import AuditPipeline
from kyc_review_service.app.service.errors import ErrorCategory, ErrorClassifier
from kyc_review_service.app.service.events.publisher import EventPublisher
from kyc_review_service.app.service.exceptions import (
    CriticalInconsistencyError,
    DocumentNotAwaitingReviewError,
    DocumentNotFoundError,
    InvalidReviewRequestError,
    PreconditionFailedError,
)
from kyc_review_service.app.service.interfaces.document_store import AbstractDocumentStore
from kyc_review_service.app.service.retry import RetryPolicy
from kyc_review_service.app.service.review.models import (
    DocumentListResponse,
    DocumentStatsResponse,
    DocumentSummary,
    OperationResult,
    ReviewContext,
    ReviewRequest,
    ReviewResponse,
    UploadRequest,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Steps that talk to the document store; failures there also count as database errors
STORE_STEPS = frozenset({
    "get_document",
    "update_document_status",
    "update_user_status",
    "query_documents",
    "create_document",
})

_CATEGORY_METRIC_SUFFIX = {
    ErrorCategory.VALIDATION: "ValidationError",
    ErrorCategory.RESOURCE_NOT_FOUND: "NotFoundError",
    ErrorCategory.RATE_LIMIT: "RetryableError",
    ErrorCategory.TRANSIENT: "RetryableError",
    ErrorCategory.UNKNOWN: "Error",
    ErrorCategory.CRITICAL: "CriticalError",
}

_METRIC_PREFIX = {
    ReviewDecision.APPROVE: "KYCApproval",
    ReviewDecision.REJECT: "KYCRejection",
}

_SUCCESS_MESSAGE = {
    ReviewDecision.APPROVE: "Document approved successfully",
    ReviewDecision.REJECT: "Document rejected successfully",
}


def _document_resource(document_id: Any) -> str:
    if isinstance(document_id, str) and document_id.strip():
        return f"kyc_document:{document_id}"
    return "kyc_document:unknown"


def _is_valid_identifier(value: Any) -> bool:
    # '#' and '|' are key separators in the single-table layout
    return isinstance(value, str) and bool(value.strip()) and "#" not in value and "|" not in value


class ReviewOrchestrator:
    """
    Drives a KYC document through its review lifecycle.

    Each public operation returns an OperationResult and never raises: failures are
    classified once, audited once, metered, and turned into a status code with a
    caller-safe message. Store calls go through the retry policy; audit writes and
    event publication are single-attempt and cannot fail an operation.
    """

    def __init__(
        self,
        document_store: AbstractDocumentStore,
        retry_policy: RetryPolicy,
        audit: AuditPipeline,
        events: EventPublisher,
        metrics: MetricsRecorder,
        classifier: Optional[ErrorClassifier] = None,
        default_page_size: Optional[int] = None,
        max_page_size: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.document_store = document_store
        self.retry_policy = retry_policy
        self.audit = audit
        self.events = events
        self.metrics = metrics
        self.classifier = classifier or retry_policy.classifier
        self.default_page_size = default_page_size or settings.DEFAULT_PAGE_SIZE
        self.max_page_size = max_page_size or settings.MAX_PAGE_SIZE
        self._clock = clock

    # --- Decisions ---

    def approve(self, request: Union[ReviewRequest, Dict[str, Any]], context: ReviewContext) -> OperationResult:
        return self._decide(ReviewDecision.APPROVE, request, context)

    def reject(self, request: Union[ReviewRequest, Dict[str, Any]], context: ReviewContext) -> OperationResult:
        return self._decide(ReviewDecision.REJECT, request, context)

    def _decide(self, decision: ReviewDecision, request: Union[ReviewRequest, Dict[str, Any]], context: ReviewContext) -> OperationResult:
        started = self._clock()
        action = f"kyc_{decision.value}"
        metric_prefix = _METRIC_PREFIX[decision]
        if not isinstance(request, ReviewRequest):
            request = ReviewRequest.model_validate(request if isinstance(request, dict) else {})
        resource = _document_resource(request.document_id)
        step = "validate_request"

        with tracer.start_as_current_span(f"kyc_review.{decision.value}") as span:
            span.set_attribute("kyc_review.request_id", context.request_id)
            span.set_attribute("kyc_review.actor_id", context.actor_id)
            try:
                self._validate_review_request(decision, request)
                user_id, document_id = request.user_id, request.document_id
                comments = request.comments.strip() if isinstance(request.comments, str) and request.comments.strip() else None
                span.set_attribute("kyc_review.user_id", user_id)
                span.set_attribute("kyc_review.document_id", document_id)
                target = {"target_user_id": user_id, "document_id": document_id}

                self.audit.record_attempt(context, "admin_access", resource, {"operation": action, **target})

                step = "get_document"
                document = self._load_document(user_id, document_id)
                if document.status is not DocumentStatus.PENDING_REVIEW:
                    raise DocumentNotAwaitingReviewError(document_id, document.status.value)

                self.events.publish_review_started(document, context.actor_id)
                self.audit.record_attempt(
                    context, f"{action}_attempt", resource, {**target, "has_comments": comments is not None}
                )

                step = "update_document_status"
                new_status = decision.document_status
                reviewed_at = utc_now_iso()
                changes = {
                    "status": new_status.value,
                    "reviewed_by": context.actor_id,
                    "reviewed_at": reviewed_at,
                    "review_comments": comments,
                    "status_index_pk": document_status_index_key(new_status.value),
                    "status_index_sk": reviewed_at,
                    "transition_id": str(uuid.uuid4()),
                }
                updated_document = KYCDocumentDB.from_item(
                    self._transition_document(user_id, document_id, DocumentStatus.PENDING_REVIEW, changes)
                )
                logger.info(f"Document {document_id} of user {user_id} moved to {new_status.value} by {context.actor_id}.")

                step = "update_user_status"
                updated_user = self._update_user_kyc_status(
                    user_id, document_id, decision.kyc_status, new_status.value, reviewed_at
                )

                processing_time_ms = self._elapsed_ms(started)
                self.events.publish_status_changed(
                    updated_document,
                    previous_status=KYCStatus.PENDING.value,
                    new_status=decision.kyc_status.value,
                    reviewed_by=context.actor_id,
                    user_type=updated_user.get("user_type"),
                    review_comments=comments,
                )
                self.events.publish_review_completed(
                    updated_document,
                    reviewed_by=context.actor_id,
                    review_result=new_status.value,
                    processing_time_ms=processing_time_ms,
                    review_comments=comments,
                )
                self.audit.record_success(context, action, resource, {
                    **target,
                    "document_type": updated_document.document_type.value,
                    "original_file_name": updated_document.original_file_name,
                    "processing_time_ms": processing_time_ms,
                    "has_comments": comments is not None,
                })
                self.metrics.increment(f"{metric_prefix}Success", dimensions={"document_type": updated_document.document_type.value})
                self.metrics.increment("AdminOperationSuccess", dimensions={"operation": action})
                self.metrics.record_duration(f"{metric_prefix}Duration", processing_time_ms)

                body = ReviewResponse(
                    message=_SUCCESS_MESSAGE[decision],
                    document_id=document_id,
                    status=new_status.value,
                    reviewed_by=context.actor_id,
                    reviewed_at=reviewed_at,
                    comments=comments,
                ).model_dump(by_alias=True, exclude_none=True)
                return OperationResult(status_code=200, body=body)
            except Exception as e:
                return self._fail(e, context, action, resource, metric_prefix, step)

    @staticmethod
    def _validate_review_request(decision: ReviewDecision, request: ReviewRequest) -> None:
        if not _is_valid_identifier(request.user_id):
            raise InvalidReviewRequestError("Invalid user ID")
        if not _is_valid_identifier(request.document_id):
            raise InvalidReviewRequestError("Invalid document ID")
        if request.comments is not None and not isinstance(request.comments, str):
            raise InvalidReviewRequestError("Invalid comments")
        if decision is ReviewDecision.REJECT and not (request.comments or "").strip():
            raise InvalidReviewRequestError("Comments are required for rejection")

    # --- Supplemented lifecycle operations ---

    def register_upload(self, upload: Union[UploadRequest, Dict[str, Any]], context: ReviewContext) -> OperationResult:
        started = self._clock()
        action = "kyc_upload"
        resource = _document_resource(None)
        step = "validate_request"

        with tracer.start_as_current_span("kyc_review.register_upload") as span:
            span.set_attribute("kyc_review.request_id", context.request_id)
            try:
                upload = self._parse_upload(upload)
                if not _is_valid_identifier(upload.user_id):
                    raise InvalidReviewRequestError("Invalid user ID")
                if upload.document_id is not None and not _is_valid_identifier(upload.document_id):
                    raise InvalidReviewRequestError("Invalid document ID")

                document_fields = upload.model_dump(exclude={"user_type", "document_id"})
                if upload.document_id is not None:
                    document_fields["document_id"] = upload.document_id
                document = KYCDocumentDB(**document_fields)
                resource = _document_resource(document.document_id)
                span.set_attribute("kyc_review.document_id", document.document_id)

                step = "create_document"
                item = document.to_item()
                self._with_retry(lambda: self.document_store.put_if_absent(item), f"create_document:{document.document_id}")
                logger.info(f"Registered upload of document {document.document_id} for user {document.user_id}.")

                self.events.publish_document_uploaded(document, upload.user_type)
                self.audit.record_success(context, action, resource, {
                    "target_user_id": document.user_id,
                    "document_id": document.document_id,
                    "document_type": document.document_type.value,
                    "original_file_name": document.original_file_name,
                    "file_size": document.file_size,
                    "processing_time_ms": self._elapsed_ms(started),
                })
                self.metrics.increment("KYCUploadSuccess", dimensions={"document_type": document.document_type.value})
                return OperationResult(status_code=201, body=self._summary(item))
            except Exception as e:
                return self._fail(e, context, action, resource, "KYCUpload", step)

    @staticmethod
    def _parse_upload(upload: Union[UploadRequest, Dict[str, Any]]) -> UploadRequest:
        try:
            if not isinstance(upload, UploadRequest):
                upload = UploadRequest.model_validate(upload or {})
            DocumentType(upload.document_type)
            UserType(upload.user_type)
        except ValidationError as e:
            fields = sorted({".".join(str(part) for part in err["loc"]) for err in e.errors()})
            raise InvalidReviewRequestError(f"Invalid upload request: {', '.join(fields)}") from e
        except ValueError as e:
            raise InvalidReviewRequestError(f"Invalid upload request: {e}") from e
        return upload

    def submit_for_review(self, user_id: Any, document_id: Any, context: ReviewContext) -> OperationResult:
        action = "kyc_submit"
        resource = _document_resource(document_id)
        step = "validate_request"

        with tracer.start_as_current_span("kyc_review.submit_for_review") as span:
            span.set_attribute("kyc_review.request_id", context.request_id)
            try:
                if not _is_valid_identifier(user_id):
                    raise InvalidReviewRequestError("Invalid user ID")
                if not _is_valid_identifier(document_id):
                    raise InvalidReviewRequestError("Invalid document ID")
                span.set_attribute("kyc_review.document_id", document_id)

                step = "get_document"
                document = self._load_document(user_id, document_id)
                if document.status is not DocumentStatus.UPLOADED:
                    raise DocumentNotAwaitingReviewError(
                        document_id, document.status.value, expected_status=DocumentStatus.UPLOADED.value
                    )

                step = "update_document_status"
                submitted_at = utc_now_iso()
                updated_item = self._transition_document(user_id, document_id, DocumentStatus.UPLOADED, {
                    "status": DocumentStatus.PENDING_REVIEW.value,
                    "status_index_pk": document_status_index_key(DocumentStatus.PENDING_REVIEW.value),
                    "status_index_sk": submitted_at,
                    "transition_id": str(uuid.uuid4()),
                })

                step = "update_user_status"
                self._update_user_kyc_status(
                    user_id, document_id, KYCStatus.PENDING, DocumentStatus.PENDING_REVIEW.value, submitted_at
                )

                self.audit.record_success(context, action, resource, {
                    "target_user_id": user_id,
                    "document_id": document_id,
                    "document_type": document.document_type.value,
                })
                self.metrics.increment("KYCSubmissionSuccess", dimensions={"document_type": document.document_type.value})
                return OperationResult(status_code=200, body=self._summary(updated_item))
            except Exception as e:
                return self._fail(e, context, action, resource, "KYCSubmission", step)

    # --- Listing ---

    def get_documents(
        self,
        context: ReviewContext,
        status: Optional[str] = None,
        limit: Optional[Any] = None,
        page_token: Optional[str] = None,
    ) -> OperationResult:
        started = self._clock()
        action = "get_documents"
        resource = "kyc_documents"
        step = "validate_request"

        with tracer.start_as_current_span("kyc_review.get_documents") as span:
            span.set_attribute("kyc_review.request_id", context.request_id)
            try:
                self.audit.record_attempt(context, "admin_access", resource, {"operation": action})
                document_status = self._parse_status_filter(status)
                page_size = self._parse_limit(limit)
                span.set_attribute("kyc_review.status_filter", document_status.value)
                self.audit.record_attempt(context, f"{action}_attempt", resource, {
                    "status": document_status.value,
                    "limit": page_size,
                    "has_page_token": bool(page_token),
                })

                step = "query_documents"
                page = self._with_retry(
                    lambda: self.document_store.query_by_status_index(document_status.value, page_size, page_token),
                    f"query_documents:{document_status.value}",
                )
                body = DocumentListResponse(
                    documents=[DocumentSummary.model_validate(self._summary_fields(item)) for item in page.items],
                    count=len(page.items),
                    page_token=page.next_page_token,
                ).model_dump(by_alias=True, exclude_none=True)

                self.audit.record_success(context, action, resource, {
                    "status": document_status.value,
                    "count": len(page.items),
                    "processing_time_ms": self._elapsed_ms(started),
                })
                self.metrics.increment("AdminOperationSuccess", dimensions={"operation": action})
                return OperationResult(status_code=200, body=body)
            except Exception as e:
                return self._fail(e, context, action, resource, "GetDocuments", step)

    def get_pending_documents(
        self,
        context: ReviewContext,
        limit: Optional[Any] = None,
        page_token: Optional[str] = None,
    ) -> OperationResult:
        return self.get_documents(context, DocumentStatus.PENDING_REVIEW.value, limit, page_token)

    def get_document_stats(self, context: ReviewContext) -> OperationResult:
        action = "get_document_stats"
        resource = "kyc_documents"
        step = "query_documents"

        with tracer.start_as_current_span("kyc_review.get_document_stats") as span:
            span.set_attribute("kyc_review.request_id", context.request_id)
            try:
                self.audit.record_attempt(context, "admin_access", resource, {"operation": action})
                counts = {}
                for document_status in DocumentStatus:
                    counts[document_status.value] = self._count_by_status(document_status)
                stats = DocumentStatsResponse(**counts)
                self.audit.record_success(context, action, resource, stats.model_dump())
                self.metrics.increment("AdminOperationSuccess", dimensions={"operation": action})
                return OperationResult(status_code=200, body=stats.model_dump())
            except Exception as e:
                return self._fail(e, context, action, resource, "GetDocumentStats", step)

    def _count_by_status(self, document_status: DocumentStatus) -> int:
        total = 0
        page_token = None
        while True:
            page = self._with_retry(
                lambda: self.document_store.query_by_status_index(document_status.value, self.max_page_size, page_token),
                f"count_documents:{document_status.value}",
            )
            total += len(page.items)
            if not page.next_page_token:
                return total
            page_token = page.next_page_token

    def _parse_status_filter(self, status: Optional[str]) -> DocumentStatus:
        if status is None or status == "":
            return DocumentStatus.PENDING_REVIEW
        try:
            return normalize_document_status(status)
        except ValueError as e:
            raise InvalidReviewRequestError(f"Invalid status: {status}") from e

    def _parse_limit(self, limit: Optional[Any]) -> int:
        if limit is None:
            return self.default_page_size
        if isinstance(limit, str) and limit.strip().lstrip("-").isdigit():
            limit = int(limit)
        if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= self.max_page_size:
            raise InvalidReviewRequestError(f"Limit must be between 1 and {self.max_page_size}")
        return limit

    # --- Shared steps ---

    def _with_retry(self, operation: Callable[[], T], label: str) -> T:
        return self.retry_policy.execute(operation, label)

    def _load_document(self, user_id: str, document_id: str) -> KYCDocumentDB:
        key = document_key(user_id, document_id)
        item = self._with_retry(lambda: self.document_store.get(key["pk"], key["sk"]), f"get_document:{document_id}")
        if item is None:
            raise DocumentNotFoundError(user_id, document_id)
        return KYCDocumentDB.from_item(item)

    def _transition_document(
        self,
        user_id: str,
        document_id: str,
        expected_status: DocumentStatus,
        changes: Dict[str, Any],
    ) -> Dict[str, Any]:
        """
        First write of a transition: the conditional document update, retried on
        transient errors.

        A retry that follows a committed write whose acknowledgement was lost sees
        its own change as a failed precondition. The document is then re-read, and
        a matching ``transition_id`` means this request committed the change, so the
        transition carries on with the user update. Any other state is a real conflict.
        """
        key = document_key(user_id, document_id)
        try:
            return self._with_retry(
                lambda: self.document_store.conditional_update(key, expected_status.value, changes),
                f"update_document_status:{document_id}",
            )
        except PreconditionFailedError:
            current = self._with_retry(
                lambda: self.document_store.get(key["pk"], key["sk"]),
                f"get_document:{document_id}",
            )
            if current is None or current.get("transition_id") != changes["transition_id"]:
                raise
            logger.warning(
                f"Document {document_id} already shows transition {changes['transition_id']} from this request; "
                f"treating the retried update as committed."
            )
            return current

    def _update_user_kyc_status(
        self,
        user_id: str,
        document_id: str,
        kyc_status: KYCStatus,
        committed_document_status: str,
        changed_at: str,
    ) -> Dict[str, Any]:
        """
        Second write of a transition. The document write has already committed, so
        any failure here is surfaced as CriticalInconsistencyError.
        """
        try:
            return self._with_retry(
                lambda: self.document_store.conditional_update(
                    profile_key(user_id),
                    None,
                    {
                        "kyc_status": kyc_status.value,
                        "kyc_status_index_pk": kyc_status_index_key(kyc_status.value),
                        "kyc_status_index_sk": changed_at,
                        "updated_at": changed_at,
                    },
                    status_field="kyc_status",
                ),
                f"update_user_status:{user_id}",
            )
        except Exception as e:
            raise CriticalInconsistencyError(document_id, user_id, committed_document_status, e) from e

    def _fail(
        self,
        error: Exception,
        context: ReviewContext,
        action: str,
        resource: str,
        metric_prefix: str,
        step: str,
    ) -> OperationResult:
        details = self.classifier.classify(error, context={
            "operation": action,
            "step": step,
            "request_id": context.request_id,
        })
        span = trace.get_current_span()
        span.record_exception(error)
        span.set_status(trace.Status(trace.StatusCode.ERROR, details.category.value))
        span.set_attribute("kyc_review.error_category", details.category.value)

        audit_details: Dict[str, Any] = {
            "step": step,
            "error_category": details.category.value,
            "error_code": details.error_code,
            "http_status_code": details.http_status_code,
        }
        retry_attempts = getattr(error, "retry_attempts", None)
        if retry_attempts is not None:
            audit_details["retry_attempts"] = retry_attempts

        if isinstance(error, CriticalInconsistencyError):
            cause = error.cause
            audit_details.update({"target_user_id": error.user_id, "document_id": error.document_id})
            logger.critical(
                f"Document {error.document_id} is {error.committed_status} but user {error.user_id} "
                f"status update failed: {cause}",
                exc_info=True,
                extra={"request_id": context.request_id, "critical_error": True},
            )
            self.audit.record_critical(
                context,
                action,
                resource,
                f"Document {error.committed_status} but user status update failed: {cause}",
                audit_details,
            )
        else:
            if details.category in (ErrorCategory.VALIDATION, ErrorCategory.RESOURCE_NOT_FOUND):
                logger.warning(f"{action} rejected at {step}: {details.technical_message}")
            else:
                logger.error(f"{action} failed at {step}: {details.technical_message}", exc_info=True)
            self.audit.record_failure(context, action, resource, details.technical_message, audit_details)

        self.metrics.increment(
            f"{metric_prefix}{_CATEGORY_METRIC_SUFFIX[details.category]}",
            dimensions={"error_code": details.error_code},
        )
        if step in STORE_STEPS and details.category in (ErrorCategory.TRANSIENT, ErrorCategory.RATE_LIMIT, ErrorCategory.UNKNOWN):
            self.metrics.increment(f"{metric_prefix}DatabaseError", dimensions={"error_code": details.error_code})

        return OperationResult(
            status_code=details.http_status_code,
            body={"message": details.user_message, "requestId": context.request_id},
            error=details,
        )

    def _elapsed_ms(self, started: float) -> int:
        return int((self._clock() - started) * 1000)

    @staticmethod
    def _summary_fields(item: Dict[str, Any]) -> Dict[str, Any]:
        return {name: item.get(name) for name in DocumentSummary.model_fields if item.get(name) is not None}

    def _summary(self, item: Dict[str, Any]) -> Dict[str, Any]:
        return DocumentSummary.model_validate(self._summary_fields(item)).model_dump(by_alias=True, exclude_none=True)
