import enum
import uuid
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from .keys import audit_partition_key, audit_sort_key, utc_now_iso


class AuditResult(str, enum.Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class AuditEntry(BaseModel):
    """Append-only record of a privileged action."""
    entry_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    actor_id: str
    action: str
    resource: str
    result: AuditResult
    timestamp: str = Field(default_factory=utc_now_iso)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    error_message: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    critical_error: bool = False

    def to_item(self) -> Dict[str, Any]:
        item = self.model_dump(mode="json")
        item["pk"] = audit_partition_key(self.timestamp)
        item["sk"] = audit_sort_key(self.timestamp, self.actor_id, self.action, self.entry_id)
        return item
