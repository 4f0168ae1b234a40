"""SQLAlchemy table definitions generated from the entity schemas."""

from typing import Dict, Optional, Tuple

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Float,
    Index,
    MetaData,
    Table,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB

from ..registry import REGISTRY, EntityKind
from .table_names import get_table_name


SYNC_TIMESTAMP_COLUMN = 'last_synced_at'


def _json_type():
    return JSON(none_as_null=True).with_variant(JSONB(none_as_null=True), 'postgresql')


def build_tables(
    schema: Optional[str] = None,
    table_prefix: Optional[str] = None,
) -> Tuple[MetaData, Dict[EntityKind, Table]]:
    """Build one ``Table`` per entity kind under ``schema`` and ``table_prefix``."""
    metadata = MetaData(schema=schema)
    tables: Dict[EntityKind, Table] = {}

    for kind, descriptor in REGISTRY.items():
        entity_schema = descriptor.schema
        columns = []
        for name in entity_schema.text:
            columns.append(Column(name, Text, primary_key=(name == 'id')))
        for name in entity_schema.integer:
            columns.append(Column(name, BigInteger))
        for name in entity_schema.boolean:
            columns.append(Column(name, Boolean))
        for name in entity_schema.number:
            columns.append(Column(name, Float))
        for name in entity_schema.json:
            columns.append(Column(name, _json_type()))
        for name in entity_schema.array:
            columns.append(Column(name, Text))
        columns.append(Column(SYNC_TIMESTAMP_COLUMN, DateTime(timezone=True)))

        name = get_table_name(descriptor.table, table_prefix)
        tables[kind] = Table(name, metadata, *columns)

    # Set reconciliation filters children by their parent ID.
    parent_columns = [(EntityKind.ACTIVE_ENTITLEMENT, 'customer')]
    for descriptor in REGISTRY.values():
        parent_columns.extend((child.kind, child.parent_field) for child in descriptor.children)

    for kind, column in parent_columns:
        table = tables[kind]
        Index(f'ix_{table.name}_{column}', table.c[column])

    return metadata, tables
