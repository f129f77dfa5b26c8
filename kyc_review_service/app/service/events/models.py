# Pydantic models and schemas for KYC domain events
import enum
import uuid
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from kyc_review_service.app.config import settings
from kyc_review_service.app.models import utc_now_iso

EVENT_VERSION = "1.0"


class KYCEventType(str, enum.Enum):
    DOCUMENT_UPLOADED = "KYC_DOCUMENT_UPLOADED"
    REVIEW_STARTED = "KYC_REVIEW_STARTED"
    REVIEW_COMPLETED = "KYC_REVIEW_COMPLETED"
    STATUS_CHANGED = "KYC_STATUS_CHANGED"


class BaseKYCEvent(BaseModel):
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    event_type: str
    user_id: str
    document_id: str
    timestamp: str = Field(default_factory=utc_now_iso)
    source: str = Field(default_factory=lambda: settings.EVENT_SOURCE)
    version: str = EVENT_VERSION


class KYCDocumentUploadedEvent(BaseKYCEvent):
    event_type: str = KYCEventType.DOCUMENT_UPLOADED.value
    document_type: str
    file_size: int
    mime_type: str
    s3_key: str
    user_type: str


class KYCReviewStartedEvent(BaseKYCEvent):
    event_type: str = KYCEventType.REVIEW_STARTED.value
    reviewed_by: str
    document_type: str


class KYCReviewCompletedEvent(BaseKYCEvent):
    event_type: str = KYCEventType.REVIEW_COMPLETED.value
    reviewed_by: str
    review_result: str
    document_type: str
    processing_time_ms: int
    review_comments: Optional[str] = None


class KYCStatusChangedEvent(BaseKYCEvent):
    event_type: str = KYCEventType.STATUS_CHANGED.value
    previous_status: str
    new_status: str
    reviewed_by: str
    document_type: str
    # Taken from the user profile; a missing value fails schema validation
    user_type: Optional[str] = None
    review_comments: Optional[str] = None


ENVELOPE_FIELDS = ("event_id", "event_type", "user_id", "document_id", "timestamp", "source", "version")

KYC_EVENT_SCHEMAS: Dict[str, Dict[str, tuple]] = {
    KYCEventType.DOCUMENT_UPLOADED.value: {
        "required": ENVELOPE_FIELDS + ("document_type", "file_size", "mime_type", "s3_key", "user_type"),
        "optional": (),
    },
    KYCEventType.REVIEW_STARTED.value: {
        "required": ENVELOPE_FIELDS + ("reviewed_by", "document_type"),
        "optional": (),
    },
    KYCEventType.REVIEW_COMPLETED.value: {
        "required": ENVELOPE_FIELDS + ("reviewed_by", "review_result", "document_type", "processing_time_ms"),
        "optional": ("review_comments",),
    },
    KYCEventType.STATUS_CHANGED.value: {
        "required": ENVELOPE_FIELDS + ("previous_status", "new_status", "reviewed_by", "document_type", "user_type"),
        "optional": ("review_comments",),
    },
}


def validate_event_payload(payload: Dict[str, Any]) -> List[str]:
    """Checks a serialized event against its schema. Returns the list of problems, empty when valid."""
    event_type = payload.get("event_type")
    schema = KYC_EVENT_SCHEMAS.get(event_type)
    if schema is None:
        return [f"unknown event type: {event_type}"]

    errors = []
    for field_name in schema["required"]:
        if payload.get(field_name) is None:
            errors.append(f"missing required field: {field_name}")
    allowed = set(schema["required"]) | set(schema["optional"])
    for field_name in sorted(set(payload) - allowed):
        errors.append(f"unknown field: {field_name}")
    if payload.get("version") is not None and payload["version"] != EVENT_VERSION:
        errors.append(f"unsupported version: {payload['version']}")
    return errors
