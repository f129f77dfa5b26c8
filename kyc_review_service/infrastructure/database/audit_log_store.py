import copy
import logging
import threading
from typing import Any, Dict, List, Optional

from pymongo.database import Database

from kyc_review_service.app.config import settings
from kyc_review_service.app.service.interfaces.audit_log_store import AbstractAuditLogStore

logger = logging.getLogger(__name__)


class MongoAuditLogStore(AbstractAuditLogStore):
    def __init__(self, db: Database, collection_name: Optional[str] = None):
        self.collection = db[collection_name or settings.AUDIT_LOG_COLLECTION_NAME]

    def append(self, item: Dict[str, Any]) -> None:
        document = dict(item)
        document["_id"] = f"{item['pk']}|{item['sk']}"
        self.collection.insert_one(document)


class InMemoryAuditLogStore(AbstractAuditLogStore):
    def __init__(self):
        self._entries: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def append(self, item: Dict[str, Any]) -> None:
        with self._lock:
            self._entries.append(copy.deepcopy(item))

    @property
    def entries(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(entry) for entry in self._entries]

    def by_action(self, action: str) -> List[Dict[str, Any]]:
        return [entry for entry in self.entries if entry["action"] == action]
