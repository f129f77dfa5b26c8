from abc import ABC, abstractmethod
from typing import Any, Dict


class AbstractAuditLogStore(ABC):
    @abstractmethod
    def append(self, item: Dict[str, Any]) -> None:
        """Appends one audit item. Entries are never updated or deleted."""
        pass
