from unittest.mock import MagicMock

import pytest

from kyc_review_service.app.models import (
    DocumentStatus,
    PROFILE_SORT_KEY,
    UserType,
    build_user_profile,
    document_sort_key,
    user_partition_key,
)
from kyc_review_service.app.service.errors import ErrorCategory
from kyc_review_service.app.service.review.orchestrator import ReviewOrchestrator

USER_ID = "user-123"


def _upload_payload(**overrides):
    payload = {
        "userId": USER_ID,
        "userType": "entrepreneur",
        "documentId": "doc-new",
        "documentType": "national_id",
        "s3Bucket": "kyc-documents",
        "s3Key": f"kyc/{USER_ID}/doc-new.png",
        "originalFileName": "id.png",
        "fileSize": 1024,
        "mimeType": "image/png",
    }
    payload.update(overrides)
    return payload


def _metric_names(metrics: MagicMock):
    return [c.args[0] for c in metrics.increment.call_args_list]


def test_register_upload_creates_uploaded_document(orchestrator, document_store, audit_log_store, mock_producer,
                                                   mock_metrics, review_context):
    result = orchestrator.register_upload(_upload_payload(), review_context)

    assert result.status_code == 201
    assert result.body["documentId"] == "doc-new"
    assert result.body["status"] == "uploaded"

    stored = document_store.get(user_partition_key(USER_ID), document_sort_key("doc-new"))
    assert stored["status"] == "uploaded"
    assert stored["status_index_pk"] == "DOCUMENT_STATUS#uploaded"
    assert stored["reviewed_by"] is None

    event = mock_producer.produce_message.call_args.args[1]
    assert event["event_type"] == "KYC_DOCUMENT_UPLOADED"
    assert event["user_type"] == "entrepreneur"
    assert event["file_size"] == 1024
    assert mock_producer.produce_message.call_args.kwargs["key"] == USER_ID

    assert audit_log_store.entries[-1]["action"] == "kyc_upload"
    assert "KYCUploadSuccess" in _metric_names(mock_metrics)


def test_register_upload_generates_document_id(orchestrator, review_context):
    payload = _upload_payload()
    del payload["documentId"]

    result = orchestrator.register_upload(payload, review_context)

    assert result.status_code == 201
    assert result.body["documentId"]


def test_register_upload_duplicate_is_conflict(orchestrator, review_context, mock_sleep):
    assert orchestrator.register_upload(_upload_payload(), review_context).status_code == 201

    result = orchestrator.register_upload(_upload_payload(), review_context)

    assert result.status_code == 409
    assert result.error.category == ErrorCategory.VALIDATION
    assert mock_sleep.call_count == 0


@pytest.mark.parametrize("overrides", [
    {"s3Key": None},
    {"fileSize": -5},
    {"userType": "admin"},
    {"documentType": "passport"},
])
def test_register_upload_rejects_invalid_payload(orchestrator, document_store, review_context, overrides):
    result = orchestrator.register_upload(_upload_payload(**overrides), review_context)

    assert result.status_code == 400
    assert result.body["message"].startswith("Invalid upload request")
    assert document_store.all_items() == []


def test_submit_then_approve_full_lifecycle(orchestrator, seed_user, document_store, mock_producer, review_context):
    seed_user(user_id=USER_ID)
    assert orchestrator.register_upload(_upload_payload(), review_context).status_code == 201

    submitted = orchestrator.submit_for_review(USER_ID, "doc-new", review_context)

    assert submitted.status_code == 200
    assert submitted.body["status"] == "pending_review"
    profile = document_store.get(user_partition_key(USER_ID), PROFILE_SORT_KEY)
    assert profile["kyc_status"] == "pending"
    assert profile["kyc_status_index_pk"] == "KYC_STATUS#pending"

    listed = orchestrator.get_pending_documents(review_context)
    assert [d["documentId"] for d in listed.body["documents"]] == ["doc-new"]

    approved = orchestrator.approve({"userId": USER_ID, "documentId": "doc-new"}, review_context)
    assert approved.status_code == 200
    assert document_store.get(user_partition_key(USER_ID), PROFILE_SORT_KEY)["kyc_status"] == "approved"

    event_types = [c.args[1]["event_type"] for c in mock_producer.produce_message.call_args_list]
    assert event_types == [
        "KYC_DOCUMENT_UPLOADED",
        "KYC_REVIEW_STARTED",
        "KYC_STATUS_CHANGED",
        "KYC_REVIEW_COMPLETED",
    ]


def test_submit_requires_uploaded_status(orchestrator, seed_user, seed_document, review_context):
    seed_user()
    seed_document(status=DocumentStatus.PENDING_REVIEW)

    result = orchestrator.submit_for_review(USER_ID, "doc-456", review_context)

    assert result.status_code == 400
    assert result.body["message"] == "Document is not in uploaded status (current status: pending_review)"


def test_submit_missing_document(orchestrator, review_context):
    result = orchestrator.submit_for_review(USER_ID, "nope", review_context)

    assert result.status_code == 404


def test_submit_invalid_ids(orchestrator, review_context):
    assert orchestrator.submit_for_review("", "doc", review_context).body["message"] == "Invalid user ID"
    assert orchestrator.submit_for_review(USER_ID, None, review_context).body["message"] == "Invalid document ID"


def test_submit_user_update_failure_is_critical(orchestrator, seed_document, document_store, audit_log_store,
                                               mock_metrics, review_context):
    seed_document(status=DocumentStatus.UPLOADED)

    result = orchestrator.submit_for_review(USER_ID, "doc-456", review_context)

    assert result.status_code == 500
    assert result.error.category == ErrorCategory.CRITICAL
    stored = document_store.get(user_partition_key(USER_ID), document_sort_key("doc-456"))
    assert stored["status"] == "pending_review"
    critical = [e for e in audit_log_store.entries if e["critical_error"]]
    assert len(critical) == 1
    assert critical[0]["action"] == "kyc_submit"
    assert critical[0]["error_message"].startswith("CRITICAL: Document pending_review but user status update failed")
    assert "KYCSubmissionCriticalError" in _metric_names(mock_metrics)


def test_submit_survives_lost_acknowledgement(lost_ack_store, retry_policy, audit_pipeline, event_publisher,
                                              mock_metrics, mock_sleep, make_document_item, review_context):
    lost_ack_store.put_if_absent(make_document_item(status=DocumentStatus.UPLOADED))
    lost_ack_store.put_if_absent(build_user_profile(USER_ID, "u@example.com", UserType.INVESTOR))
    orchestrator = ReviewOrchestrator(lost_ack_store, retry_policy, audit_pipeline, event_publisher, mock_metrics)

    result = orchestrator.submit_for_review(USER_ID, "doc-456", review_context)

    assert result.status_code == 200
    assert result.body["status"] == "pending_review"
    assert lost_ack_store.lost_acks == 1
    assert mock_sleep.call_count == 1
    assert lost_ack_store.get(user_partition_key(USER_ID), PROFILE_SORT_KEY)["kyc_status"] == "pending"
    assert "KYCSubmissionCriticalError" not in _metric_names(mock_metrics)
