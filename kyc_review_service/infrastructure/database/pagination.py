# Opaque page tokens for status-index queries
import base64
import binascii
import json
from typing import Any, Dict, Tuple

from kyc_review_service.app.service.exceptions import InvalidPageTokenError


def item_id(pk: str, sk: str) -> str:
    return f"{pk}|{sk}"


def encode_page_token(last_item: Dict[str, Any]) -> str:
    payload = {"sk": last_item["status_index_sk"], "id": item_id(last_item["pk"], last_item["sk"])}
    return base64.urlsafe_b64encode(json.dumps(payload, separators=(",", ":")).encode("utf-8")).decode("ascii")


def decode_page_token(page_token: str) -> Tuple[str, str]:
    """Returns the (status_index_sk, item id) pair the next page starts after."""
    try:
        payload = json.loads(base64.urlsafe_b64decode(page_token.encode("ascii")))
        return str(payload["sk"]), str(payload["id"])
    except (binascii.Error, ValueError, KeyError, TypeError, UnicodeError) as e:
        raise InvalidPageTokenError(f"Malformed page token: {e}") from e
