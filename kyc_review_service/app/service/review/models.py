# Request, response and context models for review operations
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from kyc_review_service.app.service.errors import ErrorDetails


class ApiModel(BaseModel):
    # camelCase on the wire, snake_case in code
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ReviewContext(BaseModel):
    """Who is acting and from where. Built by the inbound adapter from the authenticated principal."""
    actor_id: str
    request_id: str
    client_ip: Optional[str] = None
    user_agent: Optional[str] = None


class ReviewRequest(ApiModel):
    # Loosely typed so that malformed input reaches validation and gets audited
    user_id: Optional[Any] = None
    document_id: Optional[Any] = None
    comments: Optional[Any] = None


class ReviewResponse(ApiModel):
    message: str
    document_id: str
    status: str
    reviewed_by: str
    reviewed_at: str
    comments: Optional[str] = None


class UploadRequest(ApiModel):
    user_id: str
    user_type: str
    document_id: Optional[str] = None
    document_type: str = "national_id"
    s3_bucket: str
    s3_key: str
    original_file_name: str
    file_size: int = Field(ge=0)
    mime_type: str


class DocumentSummary(ApiModel):
    document_id: str
    user_id: str
    document_type: str
    status: str
    original_file_name: str
    file_size: int
    mime_type: str
    s3_bucket: str
    s3_key: str
    uploaded_at: str
    reviewed_at: Optional[str] = None
    reviewed_by: Optional[str] = None
    review_comments: Optional[str] = None


class DocumentListResponse(ApiModel):
    documents: List[DocumentSummary]
    count: int
    page_token: Optional[str] = None


class DocumentStatsResponse(BaseModel):
    # Keys are the status values themselves
    uploaded: int = 0
    pending_review: int = 0
    approved: int = 0
    rejected: int = 0


class OperationResult(BaseModel):
    status_code: int
    body: Dict[str, Any]
    error: Optional[ErrorDetails] = None

    @property
    def ok(self) -> bool:
        return self.status_code < 400
