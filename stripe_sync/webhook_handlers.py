"""Webhook verification and event reconciliation."""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, NamedTuple, Optional, Tuple, Union

import stripe

from .database import PostgresClient
from .entity_upserts import EntityUpserter
from .errors import UnhandledEventError, WebhookVerificationError, is_resource_missing
from .registry import EntityDescriptor, EntityKind, get_descriptor
from .remote import to_plain
from .types import StripeSyncConfig
from .utils import utcnow


class Action(str, Enum):
    UPSERT = 'upsert'
    TOMBSTONE = 'tombstone'
    SOFT_DELETE = 'soft_delete'
    ENTITLEMENT_SUMMARY = 'entitlement_summary'


class EventRoute(NamedTuple):
    kind: EntityKind
    action: Action
    # A created/updated event whose object is gone from Stripe deletes the row.
    tombstone_if_missing: bool = False


def _routes(kind: EntityKind, event_types: Tuple[str, ...], action: Action = Action.UPSERT,
            tombstone_if_missing: bool = False) -> Dict[str, EventRoute]:
    return {
        event_type: EventRoute(kind, action, tombstone_if_missing)
        for event_type in event_types
    }


EVENT_ROUTES: Dict[str, EventRoute] = {
    **_routes(EntityKind.CHARGE, (
        'charge.captured', 'charge.expired', 'charge.failed', 'charge.pending',
        'charge.refunded', 'charge.succeeded', 'charge.updated',
    )),
    **_routes(EntityKind.CUSTOMER, ('customer.created', 'customer.updated')),
    **_routes(EntityKind.CUSTOMER, ('customer.deleted',), Action.SOFT_DELETE),
    **_routes(EntityKind.CHECKOUT_SESSION, (
        'checkout.session.async_payment_failed', 'checkout.session.async_payment_succeeded',
        'checkout.session.completed', 'checkout.session.expired',
    )),
    **_routes(EntityKind.SUBSCRIPTION, (
        'customer.subscription.created', 'customer.subscription.deleted',
        'customer.subscription.paused', 'customer.subscription.pending_update_applied',
        'customer.subscription.pending_update_expired', 'customer.subscription.trial_will_end',
        'customer.subscription.resumed', 'customer.subscription.updated',
    )),
    **_routes(EntityKind.TAX_ID, ('customer.tax_id.created', 'customer.tax_id.updated')),
    **_routes(EntityKind.TAX_ID, ('customer.tax_id.deleted',), Action.TOMBSTONE),
    **_routes(EntityKind.INVOICE, (
        'invoice.created', 'invoice.deleted', 'invoice.finalized',
        'invoice.finalization_failed', 'invoice.paid', 'invoice.payment_action_required',
        'invoice.payment_failed', 'invoice.payment_succeeded', 'invoice.upcoming',
        'invoice.sent', 'invoice.voided', 'invoice.marked_uncollectible', 'invoice.updated',
    )),
    **_routes(EntityKind.PRODUCT, ('product.created', 'product.updated'), tombstone_if_missing=True),
    **_routes(EntityKind.PRODUCT, ('product.deleted',), Action.TOMBSTONE),
    **_routes(EntityKind.PRICE, ('price.created', 'price.updated'), tombstone_if_missing=True),
    **_routes(EntityKind.PRICE, ('price.deleted',), Action.TOMBSTONE),
    **_routes(EntityKind.PLAN, ('plan.created', 'plan.updated'), tombstone_if_missing=True),
    **_routes(EntityKind.PLAN, ('plan.deleted',), Action.TOMBSTONE),
    **_routes(EntityKind.SETUP_INTENT, (
        'setup_intent.canceled', 'setup_intent.created', 'setup_intent.requires_action',
        'setup_intent.setup_failed', 'setup_intent.succeeded',
    )),
    **_routes(EntityKind.SUBSCRIPTION_SCHEDULE, (
        'subscription_schedule.aborted', 'subscription_schedule.canceled',
        'subscription_schedule.completed', 'subscription_schedule.created',
        'subscription_schedule.expiring', 'subscription_schedule.released',
        'subscription_schedule.updated',
    )),
    **_routes(EntityKind.PAYMENT_METHOD, (
        'payment_method.attached', 'payment_method.automatically_updated',
        'payment_method.detached', 'payment_method.updated',
    )),
    **_routes(EntityKind.DISPUTE, (
        'charge.dispute.created', 'charge.dispute.funds_reinstated',
        'charge.dispute.funds_withdrawn', 'charge.dispute.updated', 'charge.dispute.closed',
    )),
    **_routes(EntityKind.PAYMENT_INTENT, (
        'payment_intent.amount_capturable_updated', 'payment_intent.canceled',
        'payment_intent.created', 'payment_intent.partially_funded',
        'payment_intent.payment_failed', 'payment_intent.processing',
        'payment_intent.requires_action', 'payment_intent.succeeded',
    )),
    **_routes(EntityKind.CREDIT_NOTE, ('credit_note.created', 'credit_note.updated', 'credit_note.voided')),
    **_routes(EntityKind.EARLY_FRAUD_WARNING, (
        'radar.early_fraud_warning.created', 'radar.early_fraud_warning.updated',
    )),
    **_routes(EntityKind.REFUND, ('refund.created', 'refund.failed', 'refund.updated', 'charge.refund.updated')),
    **_routes(EntityKind.REVIEW, ('review.closed', 'review.opened')),
    **_routes(
        EntityKind.ACTIVE_ENTITLEMENT,
        ('entitlements.active_entitlement_summary.updated',),
        Action.ENTITLEMENT_SUMMARY,
    ),
}


class WebhookProcessor:
    """Applies verified Stripe events to the mirror."""

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

    def process_webhook(self, payload: Union[bytes, str], signature: Optional[str]) -> None:
        """Verify a Stripe webhook and process its event.

        Args:
            payload: Raw request body
            signature: Value of the ``Stripe-Signature`` header

        Raises:
            WebhookVerificationError: if the signature is missing or invalid
            UnhandledEventError: if the event type is not handled
        """
        if not signature:
            raise WebhookVerificationError('Stripe webhook signature is required')

        try:
            event = stripe.Webhook.construct_event(
                payload,
                signature,
                self.config.stripe_webhook_secret,
            )
        except stripe.SignatureVerificationError as err:
            raise WebhookVerificationError(f'Invalid Stripe webhook signature: {err}') from err
        except ValueError as err:
            raise WebhookVerificationError(f'Invalid Stripe webhook payload: {err}') from err

        return self.process_event(event)

    def process_event(self, event: Dict[str, Any]) -> None:
        """Process a Stripe event.

        Args:
            event: Stripe event object (or its plain dictionary form)
        """
        event = to_plain(event)
        event_type = event['type']

        route = EVENT_ROUTES.get(event_type)
        if route is None:
            raise UnhandledEventError(event_type)

        descriptor = get_descriptor(route.kind)
        obj = event['data']['object']

        if route.action == Action.TOMBSTONE:
            self._log_received(event, descriptor, obj['id'])
            self.postgres_client.relation(route.kind).delete(obj['id'])

        elif route.action == Action.SOFT_DELETE:
            entity = {'id': obj['id'], 'object': descriptor.object_name, 'deleted': True}
            self._log_received(event, descriptor, entity['id'])
            self.upserter.upsert(
                route.kind,
                [entity],
                backfill_related_entities=False,
                sync_timestamp=self._get_sync_timestamp(event, False),
            )

        elif route.action == Action.ENTITLEMENT_SUMMARY:
            self._process_entitlement_summary(event, obj)

        else:
            self._process_upsert(event, route, descriptor, obj)

    def _process_upsert(
        self,
        event: Dict[str, Any],
        route: EventRoute,
        descriptor: EntityDescriptor,
        obj: Dict[str, Any],
    ) -> None:
        try:
            entity, refetched = self._fetch_or_use_webhook_data(descriptor, obj)
        except stripe.InvalidRequestError as err:
            if route.tombstone_if_missing and is_resource_missing(err):
                self.logger.info(
                    f"{descriptor.kind.value} {obj['id']} no longer exists in Stripe, deleting it"
                )
                self.postgres_client.relation(route.kind).delete(obj['id'])
                return
            raise

        self._log_received(event, descriptor, entity['id'])
        self.upserter.upsert(
            route.kind,
            [entity],
            backfill_related_entities=False,
            sync_timestamp=self._get_sync_timestamp(event, refetched),
        )

    def _process_entitlement_summary(self, event: Dict[str, Any], summary: Dict[str, Any]) -> None:
        customer_id = summary['customer']
        entitlements = (summary.get('entitlements') or {}).get('data') or []
        refetched = False

        if 'entitlements' in self.config.revalidate_objects_via_stripe_api:
            entitlements = list(self.remote.list(
                EntityKind.ACTIVE_ENTITLEMENT,
                customer=customer_id,
                limit=100,
            ))
            refetched = True

        self.logger.info(
            f"Received webhook {event['id']}: {event['type']} for customer {customer_id}"
        )

        self.upserter.replace_active_entitlements(
            customer_id,
            entitlements,
            backfill_related_entities=False,
            sync_timestamp=self._get_sync_timestamp(event, refetched),
        )

    def _fetch_or_use_webhook_data(
        self,
        descriptor: EntityDescriptor,
        entity: Dict[str, Any],
    ) -> Tuple[Dict[str, Any], bool]:
        """Fetch entity from Stripe or use webhook data.

        A payload in a final state is always trusted; otherwise the entity is
        fetched again when its object type is configured for revalidation.

        Returns:
            Tuple of (entity, refetched)
        """
        if not entity.get('id'):
            return (entity, False)

        if descriptor.in_final_state(entity):
            return (entity, False)

        if self._should_refetch_entity(descriptor):
            return (self.remote.retrieve(descriptor.kind, entity['id']), True)

        return (entity, False)

    def _should_refetch_entity(self, descriptor: EntityDescriptor) -> bool:
        return descriptor.object_name in self.config.revalidate_objects_via_stripe_api

    @staticmethod
    def _get_sync_timestamp(event: Dict[str, Any], refetched: bool) -> datetime:
        if refetched:
            return utcnow()
        return datetime.fromtimestamp(event['created'], tz=timezone.utc)

    def _log_received(self, event: Dict[str, Any], descriptor: EntityDescriptor, entity_id: str) -> None:
        self.logger.info(
            f"Received webhook {event['id']}: {event['type']} for {descriptor.kind.value} {entity_id}"
        )
