import logging
from typing import Any, Dict, List, Optional, Union

import stripe
from sqlalchemy.engine import Engine, make_url

from .database import PostgresClient
from .entity_upserts import EntityUpserter
from .registry import EntityKind
from .remote import StripeRemoteClient
from .sync_orchestrator import SyncOrchestrator
from .types import (
    StripeSyncConfig,
    Sync,
    SyncBackfill,
    SyncBackfillParams,
    SyncEntitlementsParams,
    SyncFeaturesParams,
)
from .webhook_handlers import WebhookProcessor


DEFAULT_POOL_SIZE = 10


class StripeSync:
    """Main class for syncing Stripe data to PostgreSQL.

    Args:
        config: Configuration for Stripe and the mirror database
        engine: Existing SQLAlchemy engine; built from ``config.database_url`` when omitted
        remote: Stripe read client; defaults to ``StripeRemoteClient``
    """

    def __init__(
        self,
        config: StripeSyncConfig,
        engine: Optional[Engine] = None,
        remote: Optional[Any] = None,
    ):
        self.config = config
        self.logger = config.logger or logging.getLogger('stripe_sync')

        # Initialize Stripe client
        stripe.api_key = config.stripe_secret_key
        if config.stripe_api_version:
            stripe.api_version = config.stripe_api_version
        stripe.set_app_info('Stripe Postgres Sync')

        self.logger.info(
            f'StripeSync initialized with auto_expand_lists={config.auto_expand_lists}, '
            f'stripe_api_version={config.stripe_api_version}'
        )

        self.postgres_client = PostgresClient(
            engine=engine,
            database_url=config.database_url,
            schema=config.schema,
            table_prefix=config.table_prefix,
            pool_config=self._pool_config() if engine is None else None,
            upsert_batch_size=config.upsert_batch_size,
        )
        self.remote = remote if remote is not None else StripeRemoteClient()

        self.upserter = EntityUpserter(self.postgres_client, self.remote, config, self.logger)
        self.orchestrator = SyncOrchestrator(
            self.postgres_client, self.remote, self.upserter, config, self.logger
        )
        self.webhooks = WebhookProcessor(
            self.postgres_client, self.remote, self.upserter, config, self.logger
        )

    def _pool_config(self) -> Dict[str, Any]:
        pool_config = dict(self.config.pool_config or {})
        if not self.config.database_url:
            return pool_config

        if make_url(self.config.database_url).get_backend_name() == 'postgresql':
            connect_args = dict(pool_config.get('connect_args', {}))
            connect_args.setdefault('application_name', 'stripe-sync-engine')
            pool_config['connect_args'] = connect_args

            if self.config.max_postgres_connections:
                pool_config['pool_size'] = self.config.max_postgres_connections
            pool_config.setdefault('pool_size', DEFAULT_POOL_SIZE)

        return pool_config

    def create_tables(self) -> None:
        """Create the mirror schema and tables if they do not exist yet."""
        self.postgres_client.create_tables()

    def process_webhook(self, payload: Union[bytes, str], signature: Optional[str]) -> None:
        """Process a Stripe webhook event.

        Args:
            payload: Webhook payload
            signature: Stripe signature for verification
        """
        return self.webhooks.process_webhook(payload, signature)

    def process_event(self, event: Union[stripe.Event, Dict[str, Any]]) -> None:
        """Process an already verified Stripe event."""
        return self.webhooks.process_event(event)

    def sync_single_entity(self, stripe_id: str) -> List[Dict[str, Any]]:
        """Sync a single Stripe entity by ID (e.g., cus_xxx, prod_xxx)."""
        return self.orchestrator.sync_single_entity(stripe_id)

    def sync_backfill(self, params: Optional[SyncBackfillParams] = None) -> SyncBackfill:
        """Backfill Stripe data.

        Args:
            params: Optional parameters for backfill

        Returns:
            SyncBackfill object with results
        """
        return self.orchestrator.sync_backfill(params)

    def sync_products(self, sync_params: Optional[SyncBackfillParams] = None) -> Sync:
        return self.orchestrator.sync(EntityKind.PRODUCT, sync_params)

    def sync_prices(self, sync_params: Optional[SyncBackfillParams] = None) -> Sync:
        return self.orchestrator.sync(EntityKind.PRICE, sync_params)

    def sync_plans(self, sync_params: Optional[SyncBackfillParams] = None) -> Sync:
        return self.orchestrator.sync(EntityKind.PLAN, sync_params)

    def sync_customers(self, sync_params: Optional[SyncBackfillParams] = None) -> Sync:
        return self.orchestrator.sync(EntityKind.CUSTOMER, sync_params)

    def sync_subscriptions(self, sync_params: Optional[SyncBackfillParams] = None) -> Sync:
        """Sync subscriptions of every status, with their items."""
        return self.orchestrator.sync(EntityKind.SUBSCRIPTION, sync_params)

    def sync_subscription_schedules(self, sync_params: Optional[SyncBackfillParams] = None) -> Sync:
        return self.orchestrator.sync(EntityKind.SUBSCRIPTION_SCHEDULE, sync_params)

    def sync_invoices(self, sync_params: Optional[SyncBackfillParams] = None) -> Sync:
        return self.orchestrator.sync(EntityKind.INVOICE, sync_params)

    def sync_charges(self, sync_params: Optional[SyncBackfillParams] = None) -> Sync:
        return self.orchestrator.sync(EntityKind.CHARGE, sync_params)

    def sync_setup_intents(self, sync_params: Optional[SyncBackfillParams] = None) -> Sync:
        return self.orchestrator.sync(EntityKind.SETUP_INTENT, sync_params)

    def sync_payment_intents(self, sync_params: Optional[SyncBackfillParams] = None) -> Sync:
        return self.orchestrator.sync(EntityKind.PAYMENT_INTENT, sync_params)

    def sync_payment_methods(self, sync_params: Optional[SyncBackfillParams] = None) -> Sync:
        """Sync the payment methods of every mirrored, non-deleted customer."""
        return self.orchestrator.sync(EntityKind.PAYMENT_METHOD, sync_params)

    def sync_tax_ids(self, sync_params: Optional[SyncBackfillParams] = None) -> Sync:
        return self.orchestrator.sync(EntityKind.TAX_ID, sync_params)

    def sync_credit_notes(self, sync_params: Optional[SyncBackfillParams] = None) -> Sync:
        return self.orchestrator.sync(EntityKind.CREDIT_NOTE, sync_params)

    def sync_disputes(self, sync_params: Optional[SyncBackfillParams] = None) -> Sync:
        return self.orchestrator.sync(EntityKind.DISPUTE, sync_params)

    def sync_early_fraud_warnings(self, sync_params: Optional[SyncBackfillParams] = None) -> Sync:
        return self.orchestrator.sync(EntityKind.EARLY_FRAUD_WARNING, sync_params)

    def sync_refunds(self, sync_params: Optional[SyncBackfillParams] = None) -> Sync:
        return self.orchestrator.sync(EntityKind.REFUND, sync_params)

    def sync_checkout_sessions(self, sync_params: Optional[SyncBackfillParams] = None) -> Sync:
        """Sync checkout sessions together with their line items."""
        return self.orchestrator.sync(EntityKind.CHECKOUT_SESSION, sync_params)

    def sync_features(self, sync_params: Optional[SyncFeaturesParams] = None) -> Sync:
        return self.orchestrator.sync_features(sync_params)

    def sync_entitlements(
        self,
        customer_id: str,
        sync_params: Optional[SyncEntitlementsParams] = None,
    ) -> Sync:
        """Sync entitlements for a customer from Stripe.

        Args:
            customer_id: Customer ID
            sync_params: Optional sync parameters

        Returns:
            Sync result
        """
        return self.orchestrator.sync_entitlements(customer_id, sync_params)

    def close(self) -> None:
        """Close database connection."""
        self.postgres_client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
