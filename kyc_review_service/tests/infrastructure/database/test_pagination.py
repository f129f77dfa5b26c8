import pytest

from kyc_review_service.app.service.exceptions import InvalidPageTokenError
from kyc_review_service.infrastructure.database.pagination import decode_page_token, encode_page_token, item_id


def test_token_is_opaque_and_decodable():
    token = encode_page_token({"pk": "USER#u", "sk": "KYC#d", "status_index_sk": "2024-01-01T00:00:00.000000+00:00"})

    assert "USER#u" not in token
    assert decode_page_token(token) == ("2024-01-01T00:00:00.000000+00:00", "USER#u|KYC#d")


@pytest.mark.parametrize("token", ["", "@@@", "eyJmb28iOiAxfQ==", "bm90IGpzb24="])
def test_malformed_tokens(token):
    with pytest.raises(InvalidPageTokenError):
        decode_page_token(token)


def test_item_id():
    assert item_id("USER#u", "PROFILE") == "USER#u|PROFILE"
