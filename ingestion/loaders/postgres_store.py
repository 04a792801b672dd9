"""
Store sanitized documents in PostgreSQL collection tables
"""

from typing import Any, Dict, List, Optional, Sequence
from sqlalchemy import Table, delete, insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from ingestion.base import DocumentStore
from core.exceptions import ChunkWriteError, DatabaseError
import logging

logger = logging.getLogger(__name__)

MAX_KEY_LENGTH = 255


class PostgresCollection(DocumentStore):
    """
    Document collection backed by a JSONB table.

    Ensures:
    - Full replace semantics (delete everything, then insert)
    - Each insert call is its own transaction; a rejected chunk is rolled
      back entirely so the caller can retry it in smaller pieces
    """

    def __init__(
        self,
        db_session: AsyncSession,
        table: Table,
        key_fields: Sequence[str] = ()
    ):
        self.db = db_session
        self.table = table
        self.key_fields = tuple(key_fields)
        self.name = table.name

    async def prepare(self) -> None:
        try:
            conn = await self.db.connection()
            await conn.run_sync(self.table.create, checkfirst=True)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise DatabaseError(
                "Failed to create collection table",
                context={"operation": "CREATE", "table_name": self.name},
                original_exception=e
            )

    async def delete_all(self) -> int:
        try:
            result = await self.db.execute(delete(self.table))
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise DatabaseError(
                "Failed to delete existing documents",
                context={"operation": "DELETE", "table_name": self.name},
                original_exception=e
            )

        deleted = result.rowcount if result.rowcount and result.rowcount > 0 else 0
        logger.info(f"Deleted {deleted} documents from {self.name}")
        return deleted

    async def insert(self, documents: List[Dict[str, Any]]) -> int:
        if not documents:
            return 0

        rows = [
            {"record_key": self.record_key(document), "document": document}
            for document in documents
        ]

        try:
            await self.db.execute(insert(self.table), rows)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise ChunkWriteError(
                "Destination rejected chunk",
                context={"table_name": self.name, "chunk_size": len(rows)},
                original_exception=e
            )

        return len(rows)

    def record_key(self, document: Dict[str, Any]) -> Optional[str]:
        """
        Join the key field values of a document.

        Returns None when no key fields are declared or one of them is
        missing or blank; the NOT NULL constraint then rejects the record.
        """
        if not self.key_fields:
            return None

        parts = []
        for field in self.key_fields:
            value = document.get(field)
            if value is None or (isinstance(value, str) and not value.strip()):
                return None
            parts.append(str(value).strip())

        return "|".join(parts)[:MAX_KEY_LENGTH]
