import logging
from unittest.mock import MagicMock

import pytest
from pymongo.errors import ServerSelectionTimeoutError

from kyc_review_service.app.models import DocumentStatus
from kyc_review_service.app.service.review.orchestrator import ReviewOrchestrator


def _seed_many(seed_document, status, count, prefix="doc"):
    for i in range(count):
        seed_document(
            user_id=f"user-{prefix}-{i}",
            document_id=f"{prefix}-{i:03d}",
            status=status,
            status_changed_at=f"2024-03-01T10:00:{i:02d}.000000+00:00",
        )


def _metric_names(metrics: MagicMock):
    return [c.args[0] for c in metrics.increment.call_args_list]


def test_get_documents_defaults_to_pending_review(orchestrator, seed_document, audit_log_store, mock_metrics,
                                                  review_context):
    _seed_many(seed_document, DocumentStatus.PENDING_REVIEW, 3, prefix="pending")
    _seed_many(seed_document, DocumentStatus.APPROVED, 2, prefix="approved")

    result = orchestrator.get_documents(review_context)

    assert result.status_code == 200
    assert result.body["count"] == 3
    assert "pageToken" not in result.body
    assert [d["documentId"] for d in result.body["documents"]] == ["pending-000", "pending-001", "pending-002"]
    first = result.body["documents"][0]
    assert first["status"] == "pending_review"
    assert first["originalFileName"] == "national_id_front.jpg"
    assert first["userId"] == "user-pending-0"

    assert [e["action"] for e in audit_log_store.entries] == ["admin_access", "get_documents_attempt", "get_documents"]
    assert audit_log_store.entries[-1]["details"]["count"] == 3
    assert "AdminOperationSuccess" in _metric_names(mock_metrics)


def test_get_documents_pages_through_results(orchestrator, seed_document, review_context):
    _seed_many(seed_document, DocumentStatus.PENDING_REVIEW, 5)

    seen = []
    page_token = None
    pages = 0
    while True:
        result = orchestrator.get_documents(review_context, status="pending_review", limit=2, page_token=page_token)
        assert result.status_code == 200
        seen.extend(d["documentId"] for d in result.body["documents"])
        pages += 1
        page_token = result.body.get("pageToken")
        if not page_token:
            break

    assert pages == 3
    assert seen == [f"doc-{i:03d}" for i in range(5)]


def test_get_documents_queries_status_index(document_store, retry_policy, audit_pipeline, event_publisher,
                                                   mock_metrics, review_context):
    spy_store = MagicMock(wraps=document_store)
    orchestrator = ReviewOrchestrator(spy_store, retry_policy, audit_pipeline, event_publisher, mock_metrics)

    orchestrator.get_documents(review_context, status="approved", limit=10, page_token=None)
    spy_store.query_by_status_index.assert_called_once_with("approved", 10, None)


def test_legacy_pending_alias_is_normalized(orchestrator, seed_document, review_context, caplog):
    _seed_many(seed_document, DocumentStatus.PENDING_REVIEW, 2)

    with caplog.at_level(logging.WARNING):
        result = orchestrator.get_documents(review_context, status="pending")

    assert result.status_code == 200
    assert result.body["count"] == 2
    assert any("Legacy document status alias" in r.getMessage() for r in caplog.records)


@pytest.mark.parametrize("limit", [0, 101, -1, "abc", "1.5", True])
def test_get_documents_rejects_out_of_range_limit(orchestrator, mock_metrics, review_context, limit):
    result = orchestrator.get_documents(review_context, limit=limit)

    assert result.status_code == 400
    assert result.body["message"] == "Limit must be between 1 and 100"
    assert "GetDocumentsValidationError" in _metric_names(mock_metrics)


@pytest.mark.parametrize("limit", [1, 100, "25"])
def test_get_documents_accepts_limit_bounds(orchestrator, review_context, limit):
    assert orchestrator.get_documents(review_context, limit=limit).status_code == 200


def test_get_documents_rejects_unknown_status(orchestrator, review_context):
    result = orchestrator.get_documents(review_context, status="archived")

    assert result.status_code == 400
    assert result.body["message"] == "Invalid status: archived"


def test_get_documents_rejects_malformed_page_token(orchestrator, review_context):
    result = orchestrator.get_documents(review_context, page_token="not-a-token!!")

    assert result.status_code == 400
    assert result.body["message"] == "Invalid page token"


def test_get_documents_store_outage(document_store, retry_policy, audit_pipeline, event_publisher, mock_metrics,
                                    mock_sleep, review_context):
    spy_store = MagicMock(wraps=document_store)
    spy_store.query_by_status_index.side_effect = ServerSelectionTimeoutError("no servers")
    orchestrator = ReviewOrchestrator(spy_store, retry_policy, audit_pipeline, event_publisher, mock_metrics)

    result = orchestrator.get_documents(review_context)

    assert result.status_code == 503
    assert spy_store.query_by_status_index.call_count == 3
    names = _metric_names(mock_metrics)
    assert "GetDocumentsRetryableError" in names
    assert "GetDocumentsDatabaseError" in names


def test_get_pending_documents(orchestrator, seed_document, review_context):
    _seed_many(seed_document, DocumentStatus.PENDING_REVIEW, 2, prefix="p")
    _seed_many(seed_document, DocumentStatus.UPLOADED, 1, prefix="u")

    result = orchestrator.get_pending_documents(review_context, limit=10)

    assert result.status_code == 200
    assert {d["documentId"] for d in result.body["documents"]} == {"p-000", "p-001"}


def test_get_document_stats_pages_to_exhaustion(document_store, seed_document, retry_policy, audit_pipeline,
                                                event_publisher, mock_metrics, review_context):
    _seed_many(seed_document, DocumentStatus.PENDING_REVIEW, 5, prefix="p")
    _seed_many(seed_document, DocumentStatus.UPLOADED, 1, prefix="u")
    _seed_many(seed_document, DocumentStatus.APPROVED, 2, prefix="a")
    spy_store = MagicMock(wraps=document_store)
    orchestrator = ReviewOrchestrator(
        spy_store, retry_policy, audit_pipeline, event_publisher, mock_metrics, max_page_size=2
    )

    result = orchestrator.get_document_stats(review_context)

    assert result.status_code == 200
    assert result.body == {"uploaded": 1, "pending_review": 5, "approved": 2, "rejected": 0}
    # pending_review needs three pages of two
    pending_calls = [c for c in spy_store.query_by_status_index.call_args_list if c.args[0] == "pending_review"]
    assert len(pending_calls) == 3


def test_listing_does_not_touch_state_machine(orchestrator, seed_document, document_store, mock_producer,
                                              review_context):
    _seed_many(seed_document, DocumentStatus.PENDING_REVIEW, 2)
    before = document_store.all_items()

    orchestrator.get_documents(review_context)
    orchestrator.get_document_stats(review_context)

    assert document_store.all_items() == before
    assert mock_producer.produce_message.call_count == 0
