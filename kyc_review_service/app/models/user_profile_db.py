from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from .enums import KYCStatus, UserType
from .keys import PROFILE_SORT_KEY, kyc_status_index_key, user_partition_key, utc_now_iso


class UserProfileDB(BaseModel):
    model_config = {"extra": "ignore"}

    user_id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    user_type: UserType
    kyc_status: KYCStatus = KYCStatus.NOT_STARTED
    email_verified: bool = False
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: str = Field(default_factory=utc_now_iso)

    @property
    def pk(self) -> str:
        return user_partition_key(self.user_id)

    @property
    def sk(self) -> str:
        return PROFILE_SORT_KEY

    def to_item(self) -> Dict[str, Any]:
        item = self.model_dump(mode="json")
        item["pk"] = self.pk
        item["sk"] = self.sk
        item["kyc_status_index_pk"] = kyc_status_index_key(self.kyc_status.value)
        item["kyc_status_index_sk"] = self.updated_at
        return item

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> "UserProfileDB":
        return cls.model_validate(item)


def profile_key(user_id: str) -> Dict[str, str]:
    return {"pk": user_partition_key(user_id), "sk": PROFILE_SORT_KEY}


def build_user_profile(
    user_id: str,
    email: str,
    user_type: UserType,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    email_verified: bool = False,
) -> Dict[str, Any]:
    """Store item for a freshly registered user, as written by the registration hook."""
    return UserProfileDB(
        user_id=user_id,
        email=email,
        user_type=user_type,
        first_name=first_name,
        last_name=last_name,
        email_verified=email_verified,
    ).to_item()
