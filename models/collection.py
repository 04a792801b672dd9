from datetime import datetime
from typing import Sequence
from sqlalchemy import BigInteger, Column, DateTime, Integer, JSON, MetaData, String, Table
from sqlalchemy.dialects.postgresql import JSONB


def build_collection_table(
    name: str,
    metadata: MetaData,
    key_fields: Sequence[str] = ()
) -> Table:
    """
    Define the table backing one document collection.

    Design:
    - One row per sanitized record, stored whole in `document`
    - `record_key` joins the binding's key fields; it is unique and,
      when key fields are declared, required. Records that collide or lack
      a key are rejected by the database, one record at a time.
    - Tables are created on first load, not through migrations, because
      the set of collections comes from binding modules
    """
    return Table(
        name,
        metadata,
        Column("id", BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True),
        Column("record_key", String(255), nullable=not key_fields, unique=True),
        Column("document", JSON().with_variant(JSONB, "postgresql"), nullable=False),
        Column("loaded_at", DateTime, nullable=False, default=datetime.utcnow),
    )
