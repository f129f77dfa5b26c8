# kyc_review_service/app/__init__.py
import logging

logger = logging.getLogger(__name__)
logger.info("KYC Review App Initialized")
