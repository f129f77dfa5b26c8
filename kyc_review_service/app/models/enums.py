import enum
import logging

logger = logging.getLogger(__name__)


class DocumentType(str, enum.Enum):
    NATIONAL_ID = "national_id"


class DocumentStatus(str, enum.Enum):
    UPLOADED = "uploaded"
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    REJECTED = "rejected"


# Older writers used "pending" for documents awaiting review. Only accepted as a listing filter.
LEGACY_PENDING_ALIAS = "pending"


class UserType(str, enum.Enum):
    ENTREPRENEUR = "entrepreneur"
    INVESTOR = "investor"


class KYCStatus(str, enum.Enum):
    NOT_STARTED = "not_started"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ReviewDecision(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"

    @property
    def document_status(self) -> DocumentStatus:
        return DocumentStatus.APPROVED if self is ReviewDecision.APPROVE else DocumentStatus.REJECTED

    @property
    def kyc_status(self) -> KYCStatus:
        return KYCStatus.APPROVED if self is ReviewDecision.APPROVE else KYCStatus.REJECTED


def normalize_document_status(value: str) -> DocumentStatus:
    """
    Parses a document status filter. The legacy alias ``pending`` maps to
    ``pending_review`` with a warning; anything unknown raises ValueError.
    """
    if value == LEGACY_PENDING_ALIAS:
        logger.warning(f"Legacy document status alias '{value}' normalized to '{DocumentStatus.PENDING_REVIEW.value}'.")
        return DocumentStatus.PENDING_REVIEW
    return DocumentStatus(value)
