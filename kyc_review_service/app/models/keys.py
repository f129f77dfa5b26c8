# Single-table key layout shared by documents, user profiles and audit entries
import datetime

PROFILE_SORT_KEY = "PROFILE"


def utc_now_iso() -> str:
    # Fixed-width so that lexicographic order on index sort keys matches time order
    return datetime.datetime.now(datetime.UTC).isoformat(timespec="microseconds")


def user_partition_key(user_id: str) -> str:
    return f"USER#{user_id}"


def document_sort_key(document_id: str) -> str:
    return f"KYC#{document_id}"


def document_status_index_key(status: str) -> str:
    return f"DOCUMENT_STATUS#{status}"


def kyc_status_index_key(kyc_status: str) -> str:
    return f"KYC_STATUS#{kyc_status}"


def audit_partition_key(timestamp: str) -> str:
    return f"AUDIT#{timestamp[:10]}"


def audit_sort_key(timestamp: str, actor_id: str, action: str, entry_id: str) -> str:
    return f"{timestamp}#{actor_id}#{action}#{entry_id}"
