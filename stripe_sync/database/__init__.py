from .postgres import PostgresClient, Relation
from .table_names import BASE_TABLE_NAMES, get_table_name, normalize_prefix
from .tables import SYNC_TIMESTAMP_COLUMN, build_tables


__all__ = [
    'PostgresClient',
    'Relation',
    'BASE_TABLE_NAMES',
    'get_table_name',
    'normalize_prefix',
    'SYNC_TIMESTAMP_COLUMN',
    'build_tables',
]
