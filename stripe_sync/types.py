import os
from typing import Optional, List, Dict, Any, Literal, TypedDict
from dataclasses import dataclass, field


DEFAULT_SCHEMA = 'stripe'


RevalidateEntity = Literal[
    'charge',
    'checkout.session',
    'credit_note',
    'customer',
    'dispute',
    'invoice',
    'payment_intent',
    'payment_method',
    'plan',
    'price',
    'product',
    'refund',
    'review',
    'radar.early_fraud_warning',
    'setup_intent',
    'subscription',
    'subscription_schedule',
    'tax_id',
    'entitlements',
]


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == '':
        return default
    return value.lower() in ('true', '1', 'yes')


@dataclass
class StripeSyncConfig:
    """Configuration for StripeSync.

    Args:
        stripe_secret_key: Stripe secret key used to authenticate requests to the Stripe API
        stripe_webhook_secret: Webhook secret from Stripe to verify the signature of webhook events
        database_url: SQLAlchemy URL of the mirror database
        pool_config: Extra keyword arguments for ``sqlalchemy.create_engine``
        schema: Database schema name (default: 'stripe', None for schemaless databases)
        table_prefix: Optional prefix for every mirror table ('billing' -> 'billing_products')
        stripe_api_version: Stripe API version for the webhooks
        auto_expand_lists: Fetch all list items from Stripe (not just the default 10)
        backfill_related_entities: Ensure related entities are present for foreign key integrity
        revalidate_objects_via_stripe_api: Always fetch latest entity from Stripe instead of trusting webhook payload
        max_postgres_connections: Size of the connection pool
        upsert_batch_size: Rows written concurrently per batch
        sync_chunk_size: Items buffered from Stripe before each flush to the database
        logger: Logger instance (optional)
    """
    stripe_secret_key: str
    stripe_webhook_secret: str
    database_url: Optional[str] = None
    pool_config: Dict[str, Any] = field(default_factory=dict)
    schema: Optional[str] = DEFAULT_SCHEMA
    table_prefix: Optional[str] = None
    stripe_api_version: Optional[str] = None
    auto_expand_lists: bool = False
    backfill_related_entities: bool = True
    revalidate_objects_via_stripe_api: List[RevalidateEntity] = field(default_factory=list)
    max_postgres_connections: Optional[int] = None
    upsert_batch_size: int = 5
    sync_chunk_size: int = 250
    logger: Optional[Any] = None

    @classmethod
    def from_env(cls, **overrides: Any) -> 'StripeSyncConfig':
        """Build a configuration from environment variables.

        Keyword arguments take precedence over the environment.
        """
        revalidate = os.getenv('STRIPE_SYNC_REVALIDATE_OBJECTS', '')
        max_connections = os.getenv('MAX_POSTGRES_CONNECTIONS')

        values: Dict[str, Any] = {
            'stripe_secret_key': os.getenv('STRIPE_SECRET_KEY', ''),
            'stripe_webhook_secret': os.getenv('STRIPE_WEBHOOK_SECRET', ''),
            'database_url': os.getenv('DATABASE_URL'),
            'schema': os.getenv('STRIPE_SYNC_SCHEMA', DEFAULT_SCHEMA) or None,
            'table_prefix': os.getenv('STRIPE_SYNC_TABLE_PREFIX'),
            'stripe_api_version': os.getenv('STRIPE_API_VERSION'),
            'auto_expand_lists': _env_flag('STRIPE_SYNC_AUTO_EXPAND_LISTS', False),
            'backfill_related_entities': _env_flag('STRIPE_SYNC_BACKFILL_RELATED_ENTITIES', True),
            'revalidate_objects_via_stripe_api': [
                name.strip() for name in revalidate.split(',') if name.strip()
            ],
            'max_postgres_connections': int(max_connections) if max_connections else None,
        }
        values.update(overrides)
        return cls(**values)


SyncObject = Literal[
    'all',
    'customer',
    'invoice',
    'price',
    'product',
    'subscription',
    'subscription_schedules',
    'setup_intent',
    'payment_method',
    'dispute',
    'charge',
    'payment_intent',
    'plan',
    'tax_id',
    'credit_note',
    'early_fraud_warning',
    'refund',
    'checkout_sessions',
]


class Sync(TypedDict):
    """Result of a sync operation."""
    synced: int


class SyncBackfill(TypedDict, total=False):
    """Result of a backfill operation."""
    products: Sync
    prices: Sync
    plans: Sync
    customers: Sync
    subscriptions: Sync
    subscription_schedules: Sync
    invoices: Sync
    setup_intents: Sync
    payment_intents: Sync
    payment_methods: Sync
    disputes: Sync
    charges: Sync
    tax_ids: Sync
    credit_notes: Sync
    early_fraud_warnings: Sync
    refunds: Sync
    checkout_sessions: Sync


class RangeQuery(TypedDict, total=False):
    """Range query parameters for filtering by creation date."""
    gt: int  # Minimum value to filter by (exclusive)
    gte: int  # Minimum value to filter by (inclusive)
    lt: int  # Maximum value to filter by (exclusive)
    lte: int  # Maximum value to filter by (inclusive)


class SyncBackfillParams(TypedDict, total=False):
    """Parameters for backfill operations."""
    created: RangeQuery
    object: SyncObject
    backfill_related_entities: bool


class PaginationParams(TypedDict, total=False):
    """Pagination parameters for Stripe API calls."""
    starting_after: str
    ending_before: str


class SyncEntitlementsParams(TypedDict, total=False):
    """Parameters for syncing entitlements."""
    pagination: PaginationParams


class SyncFeaturesParams(TypedDict, total=False):
    """Parameters for syncing features."""
    pagination: PaginationParams
