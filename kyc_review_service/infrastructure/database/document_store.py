# MongoDB implementation of the KYC single-table document store
import logging
from typing import Any, Dict, Optional

from pymongo import ASCENDING, ReturnDocument
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from kyc_review_service.app.config import settings
from kyc_review_service.app.models import document_status_index_key
from kyc_review_service.app.service.exceptions import ItemAlreadyExistsError, PreconditionFailedError
from kyc_review_service.app.service.interfaces.document_store import AbstractDocumentStore, StatusIndexPage
from kyc_review_service.infrastructure.database.pagination import decode_page_token, encode_page_token, item_id

logger = logging.getLogger(__name__)

STATUS_INDEX_NAME = "status_index"


class MongoDocumentStore(AbstractDocumentStore):
    """
    One collection holds documents and user profiles. ``_id`` is ``"<pk>|<sk>"`` so
    the primary key index enforces put-if-absent, and ``find_one_and_update`` with
    the expected status in its filter is the conditional write.
    """

    def __init__(self, db: Database, collection_name: Optional[str] = None):
        self.collection: Collection = db[collection_name or settings.KYC_TABLE_COLLECTION_NAME]

    def ensure_indexes(self):
        self.collection.create_index(
            [("status_index_pk", ASCENDING), ("status_index_sk", ASCENDING), ("_id", ASCENDING)],
            name=STATUS_INDEX_NAME,
        )
        logger.info(f"Ensured index {STATUS_INDEX_NAME} on collection {self.collection.name}.")

    def get(self, pk: str, sk: str) -> Optional[Dict[str, Any]]:
        return self.collection.find_one({"_id": item_id(pk, sk)}, {"_id": False})

    def put_if_absent(self, item: Dict[str, Any]) -> Dict[str, Any]:
        document = dict(item)
        document["_id"] = item_id(item["pk"], item["sk"])
        try:
            self.collection.insert_one(document)
        except DuplicateKeyError as e:
            logger.info(f"Item ({item['pk']}, {item['sk']}) already exists; insert rejected.")
            raise ItemAlreadyExistsError(item["pk"], item["sk"]) from e
        logger.debug(f"Inserted item ({item['pk']}, {item['sk']}).")
        return dict(item)

    def conditional_update(
        self,
        key: Dict[str, str],
        expected_status: Optional[str],
        changes: Dict[str, Any],
        status_field: str = "status",
    ) -> Dict[str, Any]:
        query: Dict[str, Any] = {"_id": item_id(key["pk"], key["sk"])}
        if expected_status is not None:
            query[status_field] = expected_status

        updated = self.collection.find_one_and_update(
            query,
            {"$set": changes},
            projection={"_id": False},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            current = self.collection.find_one({"_id": query["_id"]}, {status_field: True})
            actual_status = current.get(status_field) if current else None
            logger.info(
                f"Conditional update of ({key['pk']}, {key['sk']}) rejected: "
                f"expected {status_field}={expected_status}, found {actual_status}."
            )
            raise PreconditionFailedError(key["pk"], key["sk"], expected_status, actual_status)
        return updated

    def query_by_status_index(
        self,
        status: str,
        limit: int,
        page_token: Optional[str] = None,
    ) -> StatusIndexPage:
        query: Dict[str, Any] = {"status_index_pk": document_status_index_key(status)}
        if page_token:
            last_sk, last_id = decode_page_token(page_token)
            query["$or"] = [
                {"status_index_sk": {"$gt": last_sk}},
                {"status_index_sk": last_sk, "_id": {"$gt": last_id}},
            ]

        cursor = (
            self.collection.find(query)
            .sort([("status_index_sk", ASCENDING), ("_id", ASCENDING)])
            .limit(limit + 1)
        )
        rows = list(cursor)
        has_more = len(rows) > limit
        items = []
        for row in rows[:limit]:
            row.pop("_id", None)
            items.append(row)
        next_page_token = encode_page_token(items[-1]) if has_more and items else None
        return StatusIndexPage(items=items, next_page_token=next_page_token)

    def ping(self) -> bool:
        try:
            self.collection.database.command("ping")
            return True
        except Exception as e:
            logger.error(f"MongoDB health check ping failed: {e}")
            return False
