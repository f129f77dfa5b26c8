from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class StatusIndexPage:
    items: List[Dict[str, Any]] = field(default_factory=list)
    next_page_token: Optional[str] = None


class AbstractDocumentStore(ABC):
    """
    Keyed item storage for the single KYC table (documents and user profiles).

    Implementations never retry; retrying is the caller's concern.
    """

    @abstractmethod
    def get(self, pk: str, sk: str) -> Optional[Dict[str, Any]]:
        """Returns the item stored under (pk, sk), or None."""
        pass

    @abstractmethod
    def put_if_absent(self, item: Dict[str, Any]) -> Dict[str, Any]:
        """
        Stores a new item.

        Raises:
            ItemAlreadyExistsError: an item with the same (pk, sk) already exists.
        """
        pass

    @abstractmethod
    def conditional_update(
        self,
        key: Dict[str, str],
        expected_status: Optional[str],
        changes: Dict[str, Any],
        status_field: str = "status",
    ) -> Dict[str, Any]:
        """
        Applies ``changes`` atomically if the stored ``status_field`` equals
        ``expected_status``. With ``expected_status=None`` the item only has to exist.

        Returns:
            The item as stored after the update.
        Raises:
            PreconditionFailedError: the item is missing or its status differs.
        """
        pass

    @abstractmethod
    def query_by_status_index(
        self,
        status: str,
        limit: int,
        page_token: Optional[str] = None,
    ) -> StatusIndexPage:
        """
        Returns up to ``limit`` documents whose status is ``status``, ordered by
        status change time. ``next_page_token`` is set when more items may follow.
        """
        pass

    def ping(self) -> bool:
        return True
