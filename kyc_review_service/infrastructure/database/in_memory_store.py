# Dict-backed document store for tests and local runs
import copy
import logging
import threading
from typing import Any, Dict, Optional, Tuple

from kyc_review_service.app.models import document_status_index_key
from kyc_review_service.app.service.exceptions import ItemAlreadyExistsError, PreconditionFailedError
from kyc_review_service.app.service.interfaces.document_store import AbstractDocumentStore, StatusIndexPage
from kyc_review_service.infrastructure.database.pagination import decode_page_token, encode_page_token, item_id

logger = logging.getLogger(__name__)


class InMemoryDocumentStore(AbstractDocumentStore):
    def __init__(self):
        self._items: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def get(self, pk: str, sk: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            item = self._items.get((pk, sk))
            return copy.deepcopy(item) if item is not None else None

    def put_if_absent(self, item: Dict[str, Any]) -> Dict[str, Any]:
        key = (item["pk"], item["sk"])
        with self._lock:
            if key in self._items:
                raise ItemAlreadyExistsError(*key)
            self._items[key] = copy.deepcopy(item)
        return copy.deepcopy(item)

    def conditional_update(
        self,
        key: Dict[str, str],
        expected_status: Optional[str],
        changes: Dict[str, Any],
        status_field: str = "status",
    ) -> Dict[str, Any]:
        with self._lock:
            current = self._items.get((key["pk"], key["sk"]))
            actual_status = current.get(status_field) if current is not None else None
            if current is None or (expected_status is not None and actual_status != expected_status):
                raise PreconditionFailedError(key["pk"], key["sk"], expected_status, actual_status)
            current.update(copy.deepcopy(changes))
            return copy.deepcopy(current)

    def query_by_status_index(
        self,
        status: str,
        limit: int,
        page_token: Optional[str] = None,
    ) -> StatusIndexPage:
        index_key = document_status_index_key(status)
        with self._lock:
            rows = [
                (item["status_index_sk"], item_id(pk, sk), copy.deepcopy(item))
                for (pk, sk), item in self._items.items()
                if item.get("status_index_pk") == index_key
            ]
        rows.sort(key=lambda row: (row[0], row[1]))
        if page_token:
            cursor = decode_page_token(page_token)
            rows = [row for row in rows if (row[0], row[1]) > cursor]
        items = [row[2] for row in rows[:limit]]
        next_page_token = encode_page_token(items[-1]) if len(rows) > limit and items else None
        return StatusIndexPage(items=items, next_page_token=next_page_token)

    def all_items(self):
        with self._lock:
            return [copy.deepcopy(item) for item in self._items.values()]
