# API Router for Health Checks
from fastapi import APIRouter, Depends
import logging

from kyc_review_service.app.config import settings
from kyc_review_service.app.dependencies.services import get_document_store
from kyc_review_service.app.service.interfaces.document_store import AbstractDocumentStore

logger = logging.getLogger(__name__)
router = APIRouter()

@router.get("/health", tags=["Monitoring"])
def health_check(document_store: AbstractDocumentStore = Depends(get_document_store)):
    store_status = "connected" if document_store.ping() else "disconnected"
    return {"status": "ok", "components": {"document_store": store_status}, "service_name": settings.SERVICE_NAME_API}
