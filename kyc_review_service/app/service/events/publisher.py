# Best-effort publication of KYC domain events
import logging
from typing import Optional

from opentelemetry import trace

from kyc_review_service.app.config import settings
from kyc_review_service.app.models import KYCDocumentDB
from kyc_review_service.app.observability import MetricsRecorder, tracer
from kyc_review_service.app.service.events.models import (
    BaseKYCEvent,
    KYCDocumentUploadedEvent,
    KYCReviewCompletedEvent,
    KYCReviewStartedEvent,
    KYCStatusChangedEvent,
    validate_event_payload,
)
from kyc_review_service.infrastructure.kafka.producer import KafkaProducerService

logger = logging.getLogger(__name__)


class EventPublisher:
    """
    Publishes one event per call, once. Delivery is at-most-once: a failed or
    invalid publication is logged and metered, and ``publish`` returns False
    instead of raising, so the business operation that emitted it is unaffected.
    """

    def __init__(self, producer: KafkaProducerService, metrics: MetricsRecorder, topic: Optional[str] = None):
        self.producer = producer
        self.metrics = metrics
        self.topic = topic or settings.KYC_EVENTS_TOPIC

    def publish(self, event: BaseKYCEvent) -> bool:
        with tracer.start_as_current_span("kyc_event.publish") as span:
            span.set_attribute("kyc_event.type", event.event_type)
            span.set_attribute("kyc_event.id", event.event_id)

            payload = event.model_dump(mode="json", exclude_none=True)
            errors = validate_event_payload(payload)
            if errors:
                logger.error(
                    f"Dropping invalid {event.event_type} event {event.event_id}: {'; '.join(errors)}",
                    extra={"event_type": event.event_type, "document_id": event.document_id},
                )
                span.set_status(trace.Status(trace.StatusCode.ERROR, "Event schema validation failed"))
                self.metrics.increment("EventValidationError", dimensions={"event_type": event.event_type})
                return False

            try:
                # The validated payload is exactly what goes on the wire
                self.producer.produce_message(self.topic, payload, key=event.user_id)
            except Exception as e:
                logger.error(
                    f"Failed to publish {event.event_type} event {event.event_id} for document {event.document_id}: {e}",
                    exc_info=True,
                )
                span.record_exception(e)
                span.set_status(trace.Status(trace.StatusCode.ERROR, "Event publication failed"))
                self.metrics.increment("EventPublishError", dimensions={"event_type": event.event_type})
                return False

            logger.info(f"Published {event.event_type} event {event.event_id} for document {event.document_id}.")
            self.metrics.increment("EventPublished", dimensions={"event_type": event.event_type})
            return True

    def publish_document_uploaded(self, document: KYCDocumentDB, user_type: str) -> bool:
        return self.publish(KYCDocumentUploadedEvent(
            user_id=document.user_id,
            document_id=document.document_id,
            document_type=document.document_type.value,
            file_size=document.file_size,
            mime_type=document.mime_type,
            s3_key=document.s3_key,
            user_type=user_type,
        ))

    def publish_review_started(self, document: KYCDocumentDB, reviewed_by: str) -> bool:
        return self.publish(KYCReviewStartedEvent(
            user_id=document.user_id,
            document_id=document.document_id,
            reviewed_by=reviewed_by,
            document_type=document.document_type.value,
        ))

    def publish_review_completed(
        self,
        document: KYCDocumentDB,
        reviewed_by: str,
        review_result: str,
        processing_time_ms: int,
        review_comments: Optional[str] = None,
    ) -> bool:
        return self.publish(KYCReviewCompletedEvent(
            user_id=document.user_id,
            document_id=document.document_id,
            reviewed_by=reviewed_by,
            review_result=review_result,
            document_type=document.document_type.value,
            processing_time_ms=processing_time_ms,
            review_comments=review_comments,
        ))

    def publish_status_changed(
        self,
        document: KYCDocumentDB,
        previous_status: str,
        new_status: str,
        reviewed_by: str,
        user_type: Optional[str],
        review_comments: Optional[str] = None,
    ) -> bool:
        return self.publish(KYCStatusChangedEvent(
            user_id=document.user_id,
            document_id=document.document_id,
            previous_status=previous_status,
            new_status=new_status,
            reviewed_by=reviewed_by,
            document_type=document.document_type.value,
            user_type=user_type,
            review_comments=review_comments,
        ))
