import random
from unittest.mock import MagicMock

import pytest
from pymongo.errors import AutoReconnect

from kyc_review_service.app.models import (
    DocumentStatus,
    KYCDocumentDB,
    PROFILE_SORT_KEY,
    UserType,
    build_user_profile,
)
from kyc_review_service.app.observability import MetricsRecorder
from kyc_review_service.app.service.audit import AuditPipeline
from kyc_review_service.app.service.errors import ErrorClassifier
from kyc_review_service.app.service.events.publisher import EventPublisher
from kyc_review_service.app.service.retry import RetryPolicy
from kyc_review_service.app.service.review.models import ReviewContext
from kyc_review_service.app.service.review.orchestrator import ReviewOrchestrator
from kyc_review_service.infrastructure.database.audit_log_store import InMemoryAuditLogStore
from kyc_review_service.infrastructure.database.in_memory_store import InMemoryDocumentStore
from kyc_review_service.infrastructure.kafka.producer import KafkaProducerService

SAMPLE_USER_ID = "user-123"
SAMPLE_DOCUMENT_ID = "doc-456"
SAMPLE_ADMIN_ID = "admin-789"


@pytest.fixture
def review_context():
    return ReviewContext(
        actor_id=SAMPLE_ADMIN_ID,
        request_id="req-0001",
        client_ip="10.0.0.1",
        user_agent="pytest-agent",
    )


@pytest.fixture
def document_store():
    return InMemoryDocumentStore()


@pytest.fixture
def audit_log_store():
    return InMemoryAuditLogStore()


@pytest.fixture
def mock_metrics():
    return MagicMock(spec=MetricsRecorder)


@pytest.fixture
def mock_producer():
    return MagicMock(spec=KafkaProducerService)


@pytest.fixture
def mock_sleep():
    return MagicMock()


@pytest.fixture
def classifier():
    return ErrorClassifier()


@pytest.fixture
def retry_policy(classifier, mock_sleep):
    return RetryPolicy(
        max_attempts=3,
        base_delay=0.1,
        max_delay=1.0,
        multiplier=2.0,
        classifier=classifier,
        sleep=mock_sleep,
        random=random.Random(42),
    )


@pytest.fixture
def audit_pipeline(audit_log_store, mock_metrics):
    return AuditPipeline(audit_log_store, mock_metrics)


@pytest.fixture
def event_publisher(mock_producer, mock_metrics):
    return EventPublisher(mock_producer, mock_metrics, topic="test_kyc_events")


@pytest.fixture
def orchestrator(document_store, retry_policy, audit_pipeline, event_publisher, mock_metrics, classifier):
    return ReviewOrchestrator(
        document_store=document_store,
        retry_policy=retry_policy,
        audit=audit_pipeline,
        events=event_publisher,
        metrics=mock_metrics,
        classifier=classifier,
        default_page_size=50,
        max_page_size=100,
    )


def _document_item(
    user_id: str = SAMPLE_USER_ID,
    document_id: str = SAMPLE_DOCUMENT_ID,
    status: DocumentStatus = DocumentStatus.PENDING_REVIEW,
    status_changed_at: str = "2024-03-01T10:00:00.000000+00:00",
):
    document = KYCDocumentDB(
        document_id=document_id,
        user_id=user_id,
        s3_bucket="kyc-documents",
        s3_key=f"kyc/{user_id}/{document_id}.jpg",
        original_file_name="national_id_front.jpg",
        file_size=204800,
        mime_type="image/jpeg",
        status=status,
        uploaded_at="2024-03-01T09:00:00.000000+00:00",
        status_index_sk=status_changed_at,
    )
    return document.to_item()


@pytest.fixture
def make_document_item():
    return _document_item


@pytest.fixture
def seed_document(document_store):
    def _seed(**kwargs):
        return document_store.put_if_absent(_document_item(**kwargs))
    return _seed


@pytest.fixture
def seed_user(document_store):
    def _seed(user_id: str = SAMPLE_USER_ID, user_type: UserType = UserType.INVESTOR):
        return document_store.put_if_absent(build_user_profile(
            user_id=user_id,
            email=f"{user_id}@example.com",
            user_type=user_type,
            first_name="Ada",
            last_name="Lovelace",
        ))
    return _seed


class LostAckStore(InMemoryDocumentStore):
    """Commits the first document update, then reports the connection dropped before the reply."""

    def __init__(self):
        super().__init__()
        self.lost_acks = 0

    def conditional_update(self, key, expected_status, changes, status_field="status"):
        updated = super().conditional_update(key, expected_status, changes, status_field)
        if key["sk"] != PROFILE_SORT_KEY and self.lost_acks == 0:
            self.lost_acks += 1
            raise AutoReconnect("connection closed before the reply was read")
        return updated


@pytest.fixture
def lost_ack_store():
    return LostAckStore()
