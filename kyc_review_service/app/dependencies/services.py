import uuid
from typing import Optional

from fastapi import Header, HTTPException, Request

from kyc_review_service.app.service.interfaces.document_store import AbstractDocumentStore
from kyc_review_service.app.service.review.models import ReviewContext
from kyc_review_service.app.service.review.orchestrator import ReviewOrchestrator


def get_review_orchestrator(request: Request) -> ReviewOrchestrator:
    """
    FastAPI dependency provider for the ReviewOrchestrator built at startup.
    Retrieves it from the application state (`request.app.state.review_orchestrator`).
    """
    return request.app.state.review_orchestrator


def get_document_store(request: Request) -> AbstractDocumentStore:
    return request.app.state.document_store


def get_review_context(
    request: Request,
    x_authenticated_user: Optional[str] = Header(default=None),
    x_request_id: Optional[str] = Header(default=None),
    user_agent: Optional[str] = Header(default=None),
) -> ReviewContext:
    """
    Builds the ReviewContext from the principal asserted by the upstream
    authentication layer. Requests without a principal are refused.
    """
    if not x_authenticated_user or not x_authenticated_user.strip():
        raise HTTPException(status_code=401, detail="Authentication required")
    return ReviewContext(
        actor_id=x_authenticated_user.strip(),
        request_id=x_request_id or str(uuid.uuid4()),
        client_ip=request.client.host if request.client else None,
        user_agent=user_agent,
    )
