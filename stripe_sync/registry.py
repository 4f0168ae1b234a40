"""Static description of every Stripe entity kind mirrored by the engine.

The generic upsert, backfill and sync code never branches on a kind name;
everything kind-specific lives in :data:`REGISTRY`.
"""

from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple
from dataclasses import dataclass

from .errors import UnsupportedEntityError
from .schemas import (
    EntitySchema,
    active_entitlement_schema,
    charge_schema,
    checkout_session_schema,
    checkout_session_line_item_schema,
    credit_note_schema,
    customer_schema,
    dispute_schema,
    early_fraud_warning_schema,
    feature_schema,
    invoice_schema,
    payment_intent_schema,
    payment_methods_schema,
    plan_schema,
    price_schema,
    product_schema,
    refund_schema,
    review_schema,
    setup_intents_schema,
    subscription_schema,
    subscription_item_schema,
    subscription_schedule_schema,
    tax_id_schema,
)


class EntityKind(str, Enum):
    CUSTOMER = 'customer'
    PRODUCT = 'product'
    PRICE = 'price'
    PLAN = 'plan'
    SUBSCRIPTION = 'subscription'
    SUBSCRIPTION_ITEM = 'subscription_item'
    SUBSCRIPTION_SCHEDULE = 'subscription_schedule'
    INVOICE = 'invoice'
    CHARGE = 'charge'
    PAYMENT_INTENT = 'payment_intent'
    PAYMENT_METHOD = 'payment_method'
    SETUP_INTENT = 'setup_intent'
    DISPUTE = 'dispute'
    REFUND = 'refund'
    TAX_ID = 'tax_id'
    CREDIT_NOTE = 'credit_note'
    CHECKOUT_SESSION = 'checkout_session'
    CHECKOUT_SESSION_LINE_ITEM = 'checkout_session_line_item'
    EARLY_FRAUD_WARNING = 'early_fraud_warning'
    REVIEW = 'review'
    FEATURE = 'feature'
    ACTIVE_ENTITLEMENT = 'active_entitlement'


class Reconcile(str, Enum):
    """What happens to stored children missing from the current set."""
    MARK_DELETED = 'mark_deleted'
    DELETE = 'delete'


@dataclass(frozen=True)
class ChildCollection:
    """A child kind written together with its parent.

    ``property`` names the Stripe list on the parent. Embedded lists are read
    from the parent payload; the others are listed from Stripe by parent ID.
    """
    kind: EntityKind
    parent_field: str
    property: str
    embedded: bool = True
    reconcile: Optional[Reconcile] = None
    backfill_references: bool = False


@dataclass(frozen=True)
class EntityDescriptor:
    kind: EntityKind
    table: str
    schema: EntitySchema
    object_name: str
    id_prefixes: Tuple[str, ...] = ()
    references: Tuple[Tuple[str, EntityKind], ...] = ()
    final_state: Optional[Callable[[Dict[str, Any]], bool]] = None
    expand: Tuple[str, ...] = ()
    children: Tuple[ChildCollection, ...] = ()
    list_params: Tuple[Tuple[str, Any], ...] = ()
    defaults: Tuple[Tuple[str, Any], ...] = ()
    listable: bool = True

    def in_final_state(self, entity: Dict[str, Any]) -> bool:
        return bool(self.final_state and self.final_state(entity))

    @property
    def referenced_kinds(self) -> List[EntityKind]:
        kinds: List[EntityKind] = []
        for _, kind in self.references:
            if kind not in kinds:
                kinds.append(kind)
        return kinds


def _status_in(*statuses: str) -> Callable[[Dict[str, Any]], bool]:
    return lambda entity: entity.get('status') in statuses


def _is_deleted(entity: Dict[str, Any]) -> bool:
    return entity.get('deleted') is True


_DESCRIPTORS = [
    EntityDescriptor(
        kind=EntityKind.CUSTOMER,
        table='customers',
        schema=customer_schema,
        object_name='customer',
        id_prefixes=('cus_',),
        final_state=_is_deleted,
    ),
    EntityDescriptor(
        kind=EntityKind.PRODUCT,
        table='products',
        schema=product_schema,
        object_name='product',
        id_prefixes=('prod_',),
    ),
    EntityDescriptor(
        kind=EntityKind.PRICE,
        table='prices',
        schema=price_schema,
        object_name='price',
        id_prefixes=('price_',),
        references=(('product', EntityKind.PRODUCT),),
    ),
    EntityDescriptor(
        kind=EntityKind.PLAN,
        table='plans',
        schema=plan_schema,
        object_name='plan',
        id_prefixes=('plan_',),
        references=(('product', EntityKind.PRODUCT),),
    ),
    EntityDescriptor(
        kind=EntityKind.SUBSCRIPTION,
        table='subscriptions',
        schema=subscription_schema,
        object_name='subscription',
        id_prefixes=('sub_',),
        references=(('customer', EntityKind.CUSTOMER),),
        final_state=_status_in('canceled', 'incomplete_expired'),
        expand=('items',),
        children=(
            ChildCollection(
                kind=EntityKind.SUBSCRIPTION_ITEM,
                parent_field='subscription',
                property='items',
                reconcile=Reconcile.MARK_DELETED,
            ),
        ),
        list_params=(('status', 'all'),),
    ),
    EntityDescriptor(
        kind=EntityKind.SUBSCRIPTION_ITEM,
        table='subscription_items',
        schema=subscription_item_schema,
        object_name='subscription_item',
        id_prefixes=('si_',),
        references=(('price', EntityKind.PRICE),),
        defaults=(('deleted', False), ('quantity', None)),
        listable=False,
    ),
    EntityDescriptor(
        kind=EntityKind.SUBSCRIPTION_SCHEDULE,
        table='subscription_schedules',
        schema=subscription_schedule_schema,
        object_name='subscription_schedule',
        id_prefixes=('sub_sched_',),
        references=(('customer', EntityKind.CUSTOMER),),
        final_state=_status_in('canceled', 'completed'),
    ),
    EntityDescriptor(
        kind=EntityKind.INVOICE,
        table='invoices',
        schema=invoice_schema,
        object_name='invoice',
        id_prefixes=('in_',),
        references=(
            ('customer', EntityKind.CUSTOMER),
            ('subscription', EntityKind.SUBSCRIPTION),
        ),
        final_state=_status_in('void'),
        expand=('lines',),
    ),
    EntityDescriptor(
        kind=EntityKind.CHARGE,
        table='charges',
        schema=charge_schema,
        object_name='charge',
        id_prefixes=('ch_', 'py_'),
        references=(
            ('customer', EntityKind.CUSTOMER),
            ('invoice', EntityKind.INVOICE),
        ),
        final_state=_status_in('failed', 'succeeded'),
        expand=('refunds',),
    ),
    EntityDescriptor(
        kind=EntityKind.PAYMENT_INTENT,
        table='payment_intents',
        schema=payment_intent_schema,
        object_name='payment_intent',
        id_prefixes=('pi_',),
        references=(
            ('customer', EntityKind.CUSTOMER),
            ('invoice', EntityKind.INVOICE),
        ),
        final_state=_status_in('canceled', 'succeeded'),
    ),
    EntityDescriptor(
        kind=EntityKind.PAYMENT_METHOD,
        table='payment_methods',
        schema=payment_methods_schema,
        object_name='payment_method',
        id_prefixes=('pm_', 'card_', 'src_'),
        references=(('customer', EntityKind.CUSTOMER),),
    ),
    EntityDescriptor(
        kind=EntityKind.SETUP_INTENT,
        table='setup_intents',
        schema=setup_intents_schema,
        object_name='setup_intent',
        id_prefixes=('seti_',),
        references=(('customer', EntityKind.CUSTOMER),),
        final_state=_status_in('canceled', 'succeeded'),
    ),
    EntityDescriptor(
        kind=EntityKind.DISPUTE,
        table='disputes',
        schema=dispute_schema,
        object_name='dispute',
        id_prefixes=('dp_', 'du_'),
        references=(('charge', EntityKind.CHARGE),),
        final_state=_status_in('won', 'lost'),
    ),
    EntityDescriptor(
        kind=EntityKind.REFUND,
        table='refunds',
        schema=refund_schema,
        object_name='refund',
        id_prefixes=('re_', 'pyr_'),
        references=(
            ('payment_intent', EntityKind.PAYMENT_INTENT),
            ('charge', EntityKind.CHARGE),
        ),
    ),
    EntityDescriptor(
        kind=EntityKind.TAX_ID,
        table='tax_ids',
        schema=tax_id_schema,
        object_name='tax_id',
        id_prefixes=('txi_',),
        references=(('customer', EntityKind.CUSTOMER),),
    ),
    EntityDescriptor(
        kind=EntityKind.CREDIT_NOTE,
        table='credit_notes',
        schema=credit_note_schema,
        object_name='credit_note',
        id_prefixes=('cn_',),
        references=(
            ('customer', EntityKind.CUSTOMER),
            ('invoice', EntityKind.INVOICE),
        ),
        final_state=_status_in('void'),
        expand=('lines',),
    ),
    EntityDescriptor(
        kind=EntityKind.CHECKOUT_SESSION,
        table='checkout_sessions',
        schema=checkout_session_schema,
        object_name='checkout.session',
        id_prefixes=('cs_',),
        references=(
            ('customer', EntityKind.CUSTOMER),
            ('subscription', EntityKind.SUBSCRIPTION),
            ('payment_intent', EntityKind.PAYMENT_INTENT),
            ('invoice', EntityKind.INVOICE),
        ),
        children=(
            ChildCollection(
                kind=EntityKind.CHECKOUT_SESSION_LINE_ITEM,
                parent_field='checkout_session',
                property='line_items',
                embedded=False,
                backfill_references=True,
            ),
        ),
    ),
    EntityDescriptor(
        kind=EntityKind.CHECKOUT_SESSION_LINE_ITEM,
        table='checkout_session_line_items',
        schema=checkout_session_line_item_schema,
        object_name='item',
        references=(('price', EntityKind.PRICE),),
        listable=False,
    ),
    EntityDescriptor(
        kind=EntityKind.EARLY_FRAUD_WARNING,
        table='early_fraud_warnings',
        schema=early_fraud_warning_schema,
        object_name='radar.early_fraud_warning',
        id_prefixes=('issfr_',),
        references=(
            ('payment_intent', EntityKind.PAYMENT_INTENT),
            ('charge', EntityKind.CHARGE),
        ),
    ),
    EntityDescriptor(
        kind=EntityKind.REVIEW,
        table='reviews',
        schema=review_schema,
        object_name='review',
        id_prefixes=('prv_',),
        references=(
            ('payment_intent', EntityKind.PAYMENT_INTENT),
            ('charge', EntityKind.CHARGE),
        ),
        listable=False,
    ),
    EntityDescriptor(
        kind=EntityKind.FEATURE,
        table='features',
        schema=feature_schema,
        object_name='entitlements.feature',
        id_prefixes=('feat_',),
    ),
    EntityDescriptor(
        kind=EntityKind.ACTIVE_ENTITLEMENT,
        table='active_entitlements',
        schema=active_entitlement_schema,
        object_name='entitlements.active_entitlement',
        references=(
            ('customer', EntityKind.CUSTOMER),
            ('feature', EntityKind.FEATURE),
        ),
        listable=False,
    ),
]


REGISTRY: Dict[EntityKind, EntityDescriptor] = {d.kind: d for d in _DESCRIPTORS}


def get_descriptor(kind) -> EntityDescriptor:
    """Look up a descriptor by ``EntityKind`` or its string value."""
    try:
        return REGISTRY[EntityKind(kind)]
    except ValueError:
        raise UnsupportedEntityError(f'Unknown entity kind: {kind}') from None


def descriptor_for_id(stripe_id: str) -> EntityDescriptor:
    """Find the descriptor whose ID prefix matches, preferring the longest prefix.

    ``sub_sched_123`` is a subscription schedule even though it also starts
    with the subscription prefix ``sub_``.
    """
    best: Optional[EntityDescriptor] = None
    best_length = 0
    for descriptor in _DESCRIPTORS:
        for prefix in descriptor.id_prefixes:
            if stripe_id.startswith(prefix) and len(prefix) > best_length:
                best, best_length = descriptor, len(prefix)

    if best is None:
        raise UnsupportedEntityError(f'Unsupported Stripe ID: {stripe_id}')
    return best


def reference_graph() -> Dict[EntityKind, List[EntityKind]]:
    """Directed dependency table: kind -> kinds its rows reference."""
    return {kind: d.referenced_kinds for kind, d in REGISTRY.items()}
