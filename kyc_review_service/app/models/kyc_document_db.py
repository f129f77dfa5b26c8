import uuid
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from .enums import DocumentStatus, DocumentType
from .keys import (
    document_sort_key,
    document_status_index_key,
    user_partition_key,
    utc_now_iso,
)


class KYCDocumentDB(BaseModel):
    model_config = {"extra": "ignore"}

    document_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    document_type: DocumentType = DocumentType.NATIONAL_ID

    # Storage locator of the uploaded file
    s3_bucket: str
    s3_key: str
    original_file_name: str
    file_size: int = Field(ge=0)
    mime_type: str

    status: DocumentStatus = DocumentStatus.UPLOADED
    uploaded_at: str = Field(default_factory=utc_now_iso)
    reviewed_at: Optional[str] = None
    reviewed_by: Optional[str] = None
    review_comments: Optional[str] = None
    # Set by every status transition, unique per request
    transition_id: Optional[str] = None

    # Index attributes, kept in step with status by the writers
    status_index_sk: Optional[str] = None

    @property
    def pk(self) -> str:
        return user_partition_key(self.user_id)

    @property
    def sk(self) -> str:
        return document_sort_key(self.document_id)

    @property
    def status_index_pk(self) -> str:
        return document_status_index_key(self.status.value)

    def to_item(self) -> Dict[str, Any]:
        item = self.model_dump(mode="json")
        item["pk"] = self.pk
        item["sk"] = self.sk
        item["status_index_pk"] = self.status_index_pk
        item["status_index_sk"] = self.status_index_sk or self.uploaded_at
        return item

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> "KYCDocumentDB":
        return cls.model_validate(item)


def document_key(user_id: str, document_id: str) -> Dict[str, str]:
    return {"pk": user_partition_key(user_id), "sk": document_sort_key(document_id)}
