"""Stripe Sync Engine for Python.

A Python library to synchronize Stripe data into a PostgreSQL database,
designed for use in Python backends and serverless environments.
"""

from .stripe_sync import StripeSync
from .types import (
    StripeSyncConfig,
    Sync,
    SyncBackfill,
    SyncBackfillParams,
    SyncEntitlementsParams,
    SyncFeaturesParams,
    SyncObject,
    RevalidateEntity,
)
from .database import (
    PostgresClient,
    Relation,
    get_table_name,
    normalize_prefix,
)
from .errors import (
    StorageError,
    StripeSyncError,
    UnhandledEventError,
    UnsupportedEntityError,
    WebhookVerificationError,
)
from .registry import EntityDescriptor, EntityKind, REGISTRY, descriptor_for_id, get_descriptor


__version__ = '0.1.0'
__all__ = [
    'StripeSync',
    'StripeSyncConfig',
    'Sync',
    'SyncBackfill',
    'SyncBackfillParams',
    'SyncEntitlementsParams',
    'SyncFeaturesParams',
    'SyncObject',
    'RevalidateEntity',
    'PostgresClient',
    'Relation',
    'get_table_name',
    'normalize_prefix',
    'StorageError',
    'StripeSyncError',
    'UnhandledEventError',
    'UnsupportedEntityError',
    'WebhookVerificationError',
    'EntityDescriptor',
    'EntityKind',
    'REGISTRY',
    'descriptor_for_id',
    'get_descriptor',
]
