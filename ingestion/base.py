"""
Abstract base class for destination document stores
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List


class DocumentStore(ABC):
    """
    Destination handle for one (site, record type) pair.

    Responsibilities:
    - Making sure the collection exists
    - Full replace: dropping every existing document
    - Atomic chunk inserts (a rejected chunk leaves nothing behind)
    """

    name: str

    @abstractmethod
    async def prepare(self) -> None:
        """Create the collection if it does not exist yet"""
        pass

    @abstractmethod
    async def delete_all(self) -> int:
        """
        Delete every document of the collection.

        Returns:
            Number of documents deleted
        """
        pass

    @abstractmethod
    async def insert(self, documents: List[Dict[str, Any]]) -> int:
        """
        Insert documents as a single unit.

        Returns:
            Number of documents inserted

        Raises:
            ChunkWriteError: If the destination rejects the chunk; nothing
                from the chunk is kept
        """
        pass
