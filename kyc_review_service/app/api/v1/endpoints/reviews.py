# API Router for KYC document review
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import JSONResponse

from kyc_review_service.app.dependencies.services import get_review_context, get_review_orchestrator
from kyc_review_service.app.service.review.models import OperationResult, ReviewContext
from kyc_review_service.app.service.review.orchestrator import ReviewOrchestrator

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/admin", tags=["KYC Review"])


def _to_response(result: OperationResult) -> JSONResponse:
    headers = {}
    request_id = result.body.get("requestId")
    if request_id:
        headers["X-Request-Id"] = request_id
    return JSONResponse(status_code=result.status_code, content=result.body, headers=headers)


@router.post("/approve", summary="Approve a KYC document awaiting review.")
def approve_document(
    payload: Dict[str, Any] = Body(...),
    context: ReviewContext = Depends(get_review_context),
    orchestrator: ReviewOrchestrator = Depends(get_review_orchestrator),
):
    return _to_response(orchestrator.approve(payload, context))


@router.post("/reject", summary="Reject a KYC document awaiting review.")
def reject_document(
    payload: Dict[str, Any] = Body(...),
    context: ReviewContext = Depends(get_review_context),
    orchestrator: ReviewOrchestrator = Depends(get_review_orchestrator),
):
    return _to_response(orchestrator.reject(payload, context))


@router.get("/documents", summary="List KYC documents by status.")
def list_documents(
    status: Optional[str] = Query(default=None),
    limit: Optional[str] = Query(default=None),
    page_token: Optional[str] = Query(default=None, alias="pageToken"),
    context: ReviewContext = Depends(get_review_context),
    orchestrator: ReviewOrchestrator = Depends(get_review_orchestrator),
):
    # limit stays a string here so that out-of-range and non-numeric values get the same 400 body
    return _to_response(orchestrator.get_documents(context, status=status, limit=limit, page_token=page_token))


@router.get("/documents/stats", summary="Count KYC documents per status.")
def document_stats(
    context: ReviewContext = Depends(get_review_context),
    orchestrator: ReviewOrchestrator = Depends(get_review_orchestrator),
):
    return _to_response(orchestrator.get_document_stats(context))


@router.post("/documents", summary="Register an uploaded KYC document.")
def register_document_upload(
    payload: Dict[str, Any] = Body(...),
    context: ReviewContext = Depends(get_review_context),
    orchestrator: ReviewOrchestrator = Depends(get_review_orchestrator),
):
    return _to_response(orchestrator.register_upload(payload, context))


@router.post("/documents/{user_id}/{document_id}/submit", summary="Submit an uploaded document for review.")
def submit_document_for_review(
    user_id: str,
    document_id: str,
    context: ReviewContext = Depends(get_review_context),
    orchestrator: ReviewOrchestrator = Depends(get_review_orchestrator),
):
    return _to_response(orchestrator.submit_for_review(user_id, document_id, context))
