from kyc_review_service.app.config import settings
import logging
from pymongo import MongoClient
from pymongo.database import Database
from typing import Optional

logger = logging.getLogger(__name__)


def connect_to_mongo(mongo_url: Optional[str] = None) -> MongoClient:
    """Creates a client and verifies the server answers a ping."""
    mongo_url = mongo_url or settings.MONGO_DETAILS
    try:
        logger.info(f"Attempting to connect to MongoDB at {mongo_url}...")
        client = MongoClient(mongo_url)
        client.admin.command('ping')
        logger.info("Successfully connected to MongoDB.")
        return client
    except Exception as e:
        logger.error(f"Failed to connect to MongoDB: {e}", exc_info=True)
        raise ConnectionError(f"Failed to connect to MongoDB: {e}") from e


def get_database(client: MongoClient, db_name: Optional[str] = None) -> Database:
    return client[db_name or settings.DB_NAME]


def close_mongo_connection(client: Optional[MongoClient]):
    if client is not None:
        client.close()
        logger.info("MongoDB connection closed.")
