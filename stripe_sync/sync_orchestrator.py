"""Bulk synchronization: list everything of a kind from Stripe and mirror it."""

import logging
from datetime import datetime
from functools import partial
from typing import Any, Callable, Dict, List, Optional, Tuple

from .database import PostgresClient
from .entity_upserts import EntityUpserter
from .errors import UnsupportedEntityError
from .registry import EntityKind, descriptor_for_id, get_descriptor
from .types import (
    StripeSyncConfig,
    Sync,
    SyncBackfill,
    SyncBackfillParams,
    SyncEntitlementsParams,
    SyncFeaturesParams,
)
from .utils import chunk_array, run_concurrently, utcnow


# Order used by ``sync_backfill({'object': 'all'})``; referenced kinds come first.
BACKFILL_ORDER: List[Tuple[str, EntityKind]] = [
    ('products', EntityKind.PRODUCT),
    ('prices', EntityKind.PRICE),
    ('plans', EntityKind.PLAN),
    ('customers', EntityKind.CUSTOMER),
    ('subscriptions', EntityKind.SUBSCRIPTION),
    ('subscription_schedules', EntityKind.SUBSCRIPTION_SCHEDULE),
    ('invoices', EntityKind.INVOICE),
    ('charges', EntityKind.CHARGE),
    ('setup_intents', EntityKind.SETUP_INTENT),
    ('payment_methods', EntityKind.PAYMENT_METHOD),
    ('payment_intents', EntityKind.PAYMENT_INTENT),
    ('tax_ids', EntityKind.TAX_ID),
    ('credit_notes', EntityKind.CREDIT_NOTE),
    ('disputes', EntityKind.DISPUTE),
    ('early_fraud_warnings', EntityKind.EARLY_FRAUD_WARNING),
    ('refunds', EntityKind.REFUND),
    ('checkout_sessions', EntityKind.CHECKOUT_SESSION),
]

SYNC_OBJECTS: Dict[str, EntityKind] = {
    'customer': EntityKind.CUSTOMER,
    'invoice': EntityKind.INVOICE,
    'price': EntityKind.PRICE,
    'product': EntityKind.PRODUCT,
    'subscription': EntityKind.SUBSCRIPTION,
    'subscription_schedules': EntityKind.SUBSCRIPTION_SCHEDULE,
    'setup_intent': EntityKind.SETUP_INTENT,
    'payment_method': EntityKind.PAYMENT_METHOD,
    'dispute': EntityKind.DISPUTE,
    'charge': EntityKind.CHARGE,
    'payment_intent': EntityKind.PAYMENT_INTENT,
    'plan': EntityKind.PLAN,
    'tax_id': EntityKind.TAX_ID,
    'credit_note': EntityKind.CREDIT_NOTE,
    'early_fraud_warning': EntityKind.EARLY_FRAUD_WARNING,
    'refund': EntityKind.REFUND,
    'checkout_sessions': EntityKind.CHECKOUT_SESSION,
}

_RESULT_KEYS = {kind: key for key, kind in BACKFILL_ORDER}

# List endpoints that reject a ``created`` filter.
_NO_CREATED_FILTER = {EntityKind.TAX_ID, EntityKind.PAYMENT_METHOD}

PAGE_LIMIT = 100
PAYMENT_METHOD_CUSTOMER_CHUNK = 10


class SyncOrchestrator:
    """Drives full and incremental syncs through the ``EntityUpserter``."""

    def __init__(
        self,
        postgres_client: PostgresClient,
        remote: Any,
        upserter: EntityUpserter,
        config: StripeSyncConfig,
        logger: logging.Logger,
    ):
        self.postgres_client = postgres_client
        self.remote = remote
        self.upserter = upserter
        self.config = config
        self.logger = logger

    def sync_backfill(self, params: Optional[SyncBackfillParams] = None) -> SyncBackfill:
        """Backfill Stripe data of one object type, or of every type with ``'all'``.

        Args:
            params: ``object`` to sync (default ``'all'``), optional ``created``
                range filter and ``backfill_related_entities`` override

        Returns:
            Sync result per table name

        Raises:
            ValueError: if ``object`` is not a known sync object
        """
        params = params or {}
        obj = params.get('object') or 'all'

        if obj == 'all':
            kinds = [kind for _, kind in BACKFILL_ORDER]
        elif obj in SYNC_OBJECTS:
            kinds = [SYNC_OBJECTS[obj]]
        else:
            raise ValueError(f'Unknown object to sync: {obj}')

        result: SyncBackfill = {}
        for kind in kinds:
            result[_RESULT_KEYS[kind]] = self.sync(kind, params)
        return result

    def sync(self, kind: EntityKind, params: Optional[SyncBackfillParams] = None) -> Sync:
        """List every ``kind`` object from Stripe and upsert it in chunks."""
        descriptor = get_descriptor(kind)
        if not descriptor.listable:
            raise UnsupportedEntityError(f'{descriptor.kind.value} cannot be listed from Stripe')

        params = params or {}
        backfill = self.upserter.should_backfill(params.get('backfill_related_entities'))

        self.logger.info(f'Syncing {descriptor.table}')

        if descriptor.kind == EntityKind.PAYMENT_METHOD:
            return self._sync_payment_methods(backfill)

        list_params: Dict[str, Any] = {'limit': PAGE_LIMIT, **dict(descriptor.list_params)}
        if params.get('created') and descriptor.kind not in _NO_CREATED_FILTER:
            list_params['created'] = params['created']

        return self._fetch_and_upsert(
            descriptor.kind,
            list_params,
            partial(self._upsert_chunk, descriptor.kind, backfill),
        )

    def sync_features(self, params: Optional[SyncFeaturesParams] = None) -> Sync:
        """Sync entitlement features from Stripe."""
        self.logger.info('Syncing features')

        list_params: Dict[str, Any] = {'limit': PAGE_LIMIT}
        if params and params.get('pagination'):
            list_params.update(params['pagination'])

        return self._fetch_and_upsert(
            EntityKind.FEATURE,
            list_params,
            partial(self._upsert_chunk, EntityKind.FEATURE, None),
        )

    def sync_entitlements(
        self,
        customer_id: str,
        params: Optional[SyncEntitlementsParams] = None,
    ) -> Sync:
        """Sync the active entitlements of a customer.

        Entitlements stored for the customer but no longer active in Stripe are
        removed, unless a pagination window was requested.
        """
        self.logger.info(f'Syncing entitlements for customer {customer_id}')

        list_params: Dict[str, Any] = {'customer': customer_id, 'limit': PAGE_LIMIT}
        pagination = params.get('pagination') if params else None
        if pagination:
            list_params.update(pagination)

        sync_timestamp = utcnow()
        entitlements = list(self.remote.list(EntityKind.ACTIVE_ENTITLEMENT, **list_params))

        if pagination:
            self.upserter.upsert(
                EntityKind.ACTIVE_ENTITLEMENT,
                [{**entitlement, 'customer': customer_id} for entitlement in entitlements],
                sync_timestamp=sync_timestamp,
            )
        else:
            self.upserter.replace_active_entitlements(
                customer_id,
                entitlements,
                sync_timestamp=sync_timestamp,
            )

        self.logger.info(f'Upserted {len(entitlements)} items')
        return {'synced': len(entitlements)}

    def sync_single_entity(self, stripe_id: str) -> List[Dict[str, Any]]:
        """Sync a single Stripe entity by ID.

        Args:
            stripe_id: Stripe entity ID (e.g., cus_xxx, prod_xxx)

        Raises:
            UnsupportedEntityError: if the ID prefix is not recognized
        """
        descriptor = descriptor_for_id(stripe_id)
        sync_timestamp = utcnow()
        entity = self.remote.retrieve(descriptor.kind, stripe_id)

        if descriptor.kind == EntityKind.CUSTOMER and entity.get('deleted'):
            self.logger.info(f'Skipping deleted customer {stripe_id}')
            return []

        return self.upserter.upsert(descriptor.kind, [entity], sync_timestamp=sync_timestamp)

    def _sync_payment_methods(self, backfill: bool) -> Sync:
        # Stripe only lists payment methods per customer.
        customer_ids = self.postgres_client.relation(EntityKind.CUSTOMER).select_ids(exclude_deleted=True)
        self.logger.info(f'Getting payment methods for {len(customer_ids)} customers')

        synced = 0
        for customer_id_chunk in chunk_array(customer_ids, PAYMENT_METHOD_CUSTOMER_CHUNK):
            results = run_concurrently([
                partial(
                    self._fetch_and_upsert,
                    EntityKind.PAYMENT_METHOD,
                    {'limit': PAGE_LIMIT, 'customer': customer_id},
                    partial(self._upsert_chunk, EntityKind.PAYMENT_METHOD, backfill),
                )
                for customer_id in customer_id_chunk
            ])
            synced += sum(result['synced'] for result in results)

        return {'synced': synced}

    def _upsert_chunk(
        self,
        kind: EntityKind,
        backfill: Optional[bool],
        items: List[Dict[str, Any]],
        sync_timestamp: datetime,
    ) -> None:
        self.upserter.upsert(kind, items, backfill, sync_timestamp=sync_timestamp)

    def _fetch_and_upsert(
        self,
        kind: EntityKind,
        list_params: Dict[str, Any],
        upsert: Callable[[List[Dict[str, Any]], datetime], Any],
    ) -> Sync:
        """Fetch items from Stripe and upsert them to the database in chunks.

        Each chunk is written with the time captured before its first item
        was requested from Stripe.
        """
        chunk_size = self.config.sync_chunk_size
        chunk: List[Dict[str, Any]] = []
        synced = 0

        self.logger.info('Fetching items to sync from Stripe')

        chunk_timestamp = utcnow()
        for item in self.remote.list(kind, **list_params):
            chunk.append(item)
            synced += 1
            if synced % 1000 == 0:
                self.logger.info(f'Synced {synced} items')

            if len(chunk) >= chunk_size:
                upsert(chunk, chunk_timestamp)
                chunk = []
                chunk_timestamp = utcnow()

        if chunk:
            upsert(chunk, chunk_timestamp)

        self.logger.info(f'Upserted {synced} items')
        return {'synced': synced}
