import json
from datetime import datetime, timezone
from functools import partial
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import Table, create_engine, delete, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.schema import CreateSchema

from ..errors import StorageError
from ..registry import EntityKind, get_descriptor
from ..schemas import EntitySchema
from ..utils import as_id, chunk_array, run_concurrently
from .tables import SYNC_TIMESTAMP_COLUMN, build_tables


_INSERTS = {
    'postgresql': postgresql.insert,
    'sqlite': sqlite.insert,
}


class Relation:
    """One mirror table and the conditional writes performed against it."""

    def __init__(
        self,
        engine: Engine,
        table: Table,
        entity_schema: EntitySchema,
        batch_size: int = 5,
    ):
        try:
            self._insert = _INSERTS[engine.dialect.name]
        except KeyError:
            raise StorageError(
                f'Unsupported database dialect: {engine.dialect.name}', table=table.name
            ) from None

        self.engine = engine
        self.table = table
        self.batch_size = max(1, batch_size)
        self._columns = set(table.c.keys())
        self._text_columns = set(entity_schema.text)
        self._json_columns = set(entity_schema.json)
        self._deleted_columns = set(entity_schema.deleted_properties)

    @property
    def name(self) -> str:
        return self.table.name

    def prepare_row(self, entry: Dict[str, Any], sync_timestamp: datetime) -> Dict[str, Any]:
        """Project an entity onto the declared columns of this table."""
        columns = self._columns
        if entry.get('deleted') is True and self._deleted_columns:
            columns = self._deleted_columns

        row = {}
        for key, value in entry.items():
            if key not in columns or key == SYNC_TIMESTAMP_COLUMN:
                continue
            # Lists outside JSON columns (e.g. ``invoice.custom_fields``) are stored as JSON text.
            if isinstance(value, list) and key not in self._json_columns:
                value = json.dumps(value)
            elif key in self._text_columns and isinstance(value, dict):
                value = as_id(value)
            row[key] = value
        row[SYNC_TIMESTAMP_COLUMN] = sync_timestamp
        return row

    def upsert_many(
        self,
        entries: Sequence[Dict[str, Any]],
        sync_timestamp: datetime,
    ) -> List[Dict[str, Any]]:
        """Insert or update entries, keeping the newest write per ID.

        On conflict every incoming column is overwritten only when the stored
        ``last_synced_at`` is null or strictly older than ``sync_timestamp``;
        otherwise the stored row is left untouched.

        Returns:
            The rows that were written; stale entries are absent
        """
        if not entries:
            return []
        sync_timestamp = self._as_utc(sync_timestamp)

        rows = [self.prepare_row(entry, sync_timestamp) for entry in entries]
        results: List[Dict[str, Any]] = []
        failure: Optional[StorageError] = None

        for chunk in chunk_array(rows, self.batch_size):
            try:
                written = run_concurrently([partial(self._upsert_row, row) for row in chunk])
            except StorageError as err:
                failure = failure or err
                continue
            for row_result in written:
                results.extend(row_result)

        if failure is not None:
            raise failure
        return results

    def _upsert_row(self, row: Dict[str, Any]) -> List[Dict[str, Any]]:
        table = self.table
        stmt = self._insert(table).values(row)
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.id],
            set_={column: stmt.excluded[column] for column in row if column != 'id'},
            where=or_(
                table.c[SYNC_TIMESTAMP_COLUMN].is_(None),
                table.c[SYNC_TIMESTAMP_COLUMN] < stmt.excluded[SYNC_TIMESTAMP_COLUMN],
            ),
        ).returning(*table.c)

        try:
            with self.engine.begin() as conn:
                return [dict(result._mapping) for result in conn.execute(stmt)]
        except SQLAlchemyError as err:
            raise StorageError(
                f'Failed to upsert {row.get("id")} into {self.name}: {err}', table=self.name
            ) from err

    def delete(self, id: str) -> bool:
        """Remove a row unconditionally. Deleting a missing row is not an error."""
        stmt = delete(self.table).where(self.table.c.id == id)
        with self._transaction() as conn:
            return conn.execute(stmt).rowcount > 0

    def find_missing_entries(self, ids: Sequence[str]) -> List[str]:
        """Return the IDs not present in the table, in input order."""
        if not ids:
            return []

        stmt = select(self.table.c.id).where(self.table.c.id.in_(list(ids)))
        with self._transaction() as conn:
            existing = set(conn.execute(stmt).scalars())
        return [id for id in ids if id not in existing]

    def select_ids(self, exclude_deleted: bool = True) -> List[str]:
        stmt = select(self.table.c.id)
        if exclude_deleted and 'deleted' in self._columns:
            stmt = stmt.where(self.table.c.deleted.isnot(True))
        with self._transaction() as conn:
            return list(conn.execute(stmt).scalars())

    def mark_deleted_except(
        self,
        parent_column: str,
        parent_id: str,
        current_ids: Sequence[str],
        sync_timestamp: datetime,
    ) -> int:
        """Flag children of ``parent_id`` absent from ``current_ids`` as deleted.

        Only rows older than ``sync_timestamp`` are flagged, and they take
        ``sync_timestamp`` as their new ``last_synced_at`` so that an older
        write cannot bring them back.
        """
        sync_timestamp = self._as_utc(sync_timestamp)
        table = self.table
        stmt = (
            update(table)
            .where(table.c[parent_column] == parent_id)
            .where(table.c.deleted.isnot(True))
            .where(table.c.id.not_in(list(current_ids)))
            .where(self._older_than(sync_timestamp))
            .values({'deleted': True, SYNC_TIMESTAMP_COLUMN: sync_timestamp})
        )
        with self._transaction() as conn:
            return conn.execute(stmt).rowcount

    def delete_except(
        self,
        parent_column: str,
        parent_id: str,
        current_ids: Sequence[str],
        sync_timestamp: datetime,
    ) -> int:
        """Remove children of ``parent_id`` absent from ``current_ids`` and older than ``sync_timestamp``."""
        sync_timestamp = self._as_utc(sync_timestamp)
        table = self.table
        stmt = (
            delete(table)
            .where(table.c[parent_column] == parent_id)
            .where(table.c.id.not_in(list(current_ids)))
            .where(self._older_than(sync_timestamp))
        )
        with self._transaction() as conn:
            return conn.execute(stmt).rowcount

    def has_newer_rows(self, parent_column: str, parent_id: str, sync_timestamp: datetime) -> bool:
        """Whether any row of ``parent_id`` was written after ``sync_timestamp``."""
        sync_timestamp = self._as_utc(sync_timestamp)
        table = self.table
        stmt = (
            select(table.c.id)
            .where(table.c[parent_column] == parent_id)
            .where(table.c[SYNC_TIMESTAMP_COLUMN] > sync_timestamp)
            .limit(1)
        )
        with self._transaction() as conn:
            return conn.execute(stmt).first() is not None

    def _older_than(self, sync_timestamp: datetime):
        column = self.table.c[SYNC_TIMESTAMP_COLUMN]
        return or_(column.is_(None), column < sync_timestamp)

    def _as_utc(self, sync_timestamp: Optional[datetime]) -> datetime:
        if sync_timestamp is None:
            raise ValueError(f'A sync timestamp is required to write to {self.name}')
        if sync_timestamp.tzinfo is None:
            sync_timestamp = sync_timestamp.replace(tzinfo=timezone.utc)
        return sync_timestamp.astimezone(timezone.utc)

    def _transaction(self):
        return _StorageTransaction(self.engine, self.name)


class _StorageTransaction:
    """``engine.begin()`` that reports database failures as ``StorageError``."""

    def __init__(self, engine: Engine, table: str):
        self._context = engine.begin()
        self._table = table

    def __enter__(self):
        try:
            return self._context.__enter__()
        except SQLAlchemyError as err:
            raise StorageError(f'Failed to open a transaction on {self._table}: {err}', table=self._table) from err

    def __exit__(self, exc_type, exc, tb):
        try:
            self._context.__exit__(exc_type, exc, tb)
        except SQLAlchemyError as err:
            raise StorageError(f'Failed to commit on {self._table}: {err}', table=self._table) from err
        if isinstance(exc, SQLAlchemyError):
            raise StorageError(f'Query on {self._table} failed: {exc}', table=self._table) from exc
        return False


class PostgresClient:
    """Mirror database: the engine, the table metadata and one relation per kind."""

    def __init__(
        self,
        engine: Optional[Engine] = None,
        database_url: Optional[str] = None,
        schema: Optional[str] = None,
        table_prefix: Optional[str] = None,
        pool_config: Optional[Dict[str, Any]] = None,
        upsert_batch_size: int = 5,
    ):
        if engine is None:
            if not database_url:
                raise ValueError('Either an engine or a database_url is required')
            engine = create_engine(database_url, **(pool_config or {}))
            self._owns_engine = True
        else:
            self._owns_engine = False

        self.engine = engine
        self.schema = schema
        self.metadata, self._tables = build_tables(schema, table_prefix)
        self._relations = {
            kind: Relation(engine, table, get_descriptor(kind).schema, upsert_batch_size)
            for kind, table in self._tables.items()
        }

    def relation(self, kind: EntityKind) -> Relation:
        return self._relations[EntityKind(kind)]

    def get_table_name(self, kind: EntityKind) -> str:
        return self._tables[EntityKind(kind)].name

    def create_tables(self) -> None:
        """Create the schema and every mirror table that does not exist yet."""
        try:
            with self.engine.begin() as conn:
                if self.schema and self.engine.dialect.name == 'postgresql':
                    conn.execute(CreateSchema(self.schema, if_not_exists=True))
                self.metadata.create_all(conn)
        except SQLAlchemyError as err:
            raise StorageError(f'Failed to create mirror tables: {err}') from err

    def upsert_many_with_timestamp_protection(
        self,
        entries: Sequence[Dict[str, Any]],
        kind: EntityKind,
        sync_timestamp: datetime,
    ) -> List[Dict[str, Any]]:
        return self.relation(kind).upsert_many(entries, sync_timestamp)

    def delete(self, kind: EntityKind, id: str) -> bool:
        return self.relation(kind).delete(id)

    def find_missing_entries(self, kind: EntityKind, ids: Sequence[str]) -> List[str]:
        return self.relation(kind).find_missing_entries(ids)

    def close(self) -> None:
        """Close database connections opened by this client."""
        if self._owns_engine:
            self.engine.dispose()
