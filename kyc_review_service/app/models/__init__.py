from .enums import (
    DocumentType,
    DocumentStatus,
    UserType,
    KYCStatus,
    ReviewDecision,
    LEGACY_PENDING_ALIAS,
    normalize_document_status,
)
from .keys import (
    PROFILE_SORT_KEY,
    user_partition_key,
    document_sort_key,
    document_status_index_key,
    kyc_status_index_key,
    utc_now_iso,
)
from .kyc_document_db import KYCDocumentDB, document_key
from .user_profile_db import UserProfileDB, profile_key, build_user_profile
from .audit_entry_db import AuditEntry, AuditResult

__all__ = [
    "DocumentType",
    "DocumentStatus",
    "UserType",
    "KYCStatus",
    "ReviewDecision",
    "LEGACY_PENDING_ALIAS",
    "normalize_document_status",
    "PROFILE_SORT_KEY",
    "user_partition_key",
    "document_sort_key",
    "document_status_index_key",
    "kyc_status_index_key",
    "utc_now_iso",
    "KYCDocumentDB",
    "document_key",
    "UserProfileDB",
    "profile_key",
    "build_user_profile",
    "AuditEntry",
    "AuditResult",
]
