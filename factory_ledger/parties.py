"""
Party Directory

The ledger only needs to know whether a counterparty exists and what it is
called. Party maintenance itself lives outside the ledger core.
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional

from .storage import StorageInterface


class PartyDirectory(ABC):
    """Read-only lookup of counterparties by id"""

    @abstractmethod
    def get_party_name(self, party_id: str) -> Optional[str]:
        """Return the party's display name, or None if unknown"""
        pass

    def exists(self, party_id: str) -> bool:
        return self.get_party_name(party_id) is not None


class InMemoryPartyDirectory(PartyDirectory):
    """Dictionary-backed directory for tests and embedding"""

    def __init__(self, parties: Optional[Dict[str, str]] = None):
        self._parties: Dict[str, str] = dict(parties or {})

    def add_party(self, party_id: str, name: str) -> None:
        self._parties[party_id] = name

    def get_party_name(self, party_id: str) -> Optional[str]:
        return self._parties.get(party_id)


class StoragePartyDirectory(PartyDirectory):
    """Directory reading party documents ({"id", "name"}) from a storage table"""

    def __init__(self, storage: StorageInterface, table_name: str = "parties"):
        self.storage = storage
        self.table_name = table_name

    def add_party(self, party_id: str, name: str) -> None:
        self.storage.save(self.table_name, party_id, {"id": party_id, "name": name})

    def get_party_name(self, party_id: str) -> Optional[str]:
        data = self.storage.load(self.table_name, party_id)
        if data:
            return data.get("name")
        return None
