"""Read access to the Stripe API, keyed by entity kind."""

from typing import Any, Callable, Dict, Iterator, Tuple

import stripe

from .errors import UnsupportedEntityError
from .registry import EntityKind


_RESOURCES = {
    EntityKind.CUSTOMER: stripe.Customer,
    EntityKind.PRODUCT: stripe.Product,
    EntityKind.PRICE: stripe.Price,
    EntityKind.PLAN: stripe.Plan,
    EntityKind.SUBSCRIPTION: stripe.Subscription,
    EntityKind.SUBSCRIPTION_ITEM: stripe.SubscriptionItem,
    EntityKind.SUBSCRIPTION_SCHEDULE: stripe.SubscriptionSchedule,
    EntityKind.INVOICE: stripe.Invoice,
    EntityKind.CHARGE: stripe.Charge,
    EntityKind.PAYMENT_INTENT: stripe.PaymentIntent,
    EntityKind.PAYMENT_METHOD: stripe.PaymentMethod,
    EntityKind.SETUP_INTENT: stripe.SetupIntent,
    EntityKind.DISPUTE: stripe.Dispute,
    EntityKind.REFUND: stripe.Refund,
    EntityKind.TAX_ID: stripe.TaxId,
    EntityKind.CREDIT_NOTE: stripe.CreditNote,
    EntityKind.CHECKOUT_SESSION: stripe.checkout.Session,
    EntityKind.EARLY_FRAUD_WARNING: stripe.radar.EarlyFraudWarning,
    EntityKind.REVIEW: stripe.Review,
    EntityKind.FEATURE: stripe.entitlements.Feature,
    EntityKind.ACTIVE_ENTITLEMENT: stripe.entitlements.ActiveEntitlement,
}

# Paginated lists hanging off a parent object.
_NESTED_LISTS: Dict[Tuple[EntityKind, str], Callable[..., Any]] = {
    (EntityKind.CHARGE, 'refunds'): lambda id, **params: stripe.Refund.list(charge=id, **params),
    (EntityKind.INVOICE, 'lines'): lambda id, **params: stripe.Invoice.list_lines(id, **params),
    (EntityKind.CREDIT_NOTE, 'lines'): lambda id, **params: stripe.CreditNote.list_lines(id, **params),
    (EntityKind.SUBSCRIPTION, 'items'): (
        lambda id, **params: stripe.SubscriptionItem.list(subscription=id, **params)
    ),
    (EntityKind.CHECKOUT_SESSION, 'line_items'): (
        lambda id, **params: stripe.checkout.Session.list_line_items(id, **params)
    ),
}


def to_plain(obj: Any) -> Any:
    """Convert a Stripe object (and everything nested in it) to plain dicts."""
    if isinstance(obj, stripe.StripeObject):
        return obj.to_dict()
    return obj


class StripeRemoteClient:
    """Thin wrapper over the ``stripe`` module used by the sync engine.

    Every method returns plain dictionaries. Stripe errors propagate to the
    caller untouched.
    """

    def retrieve(self, kind: EntityKind, id: str) -> Dict[str, Any]:
        return to_plain(self._resource(kind).retrieve(id))

    def list(self, kind: EntityKind, **params: Any) -> Iterator[Dict[str, Any]]:
        """Iterate over every object of ``kind``, following pagination."""
        for item in self._resource(kind).list(**params).auto_paging_iter():
            yield to_plain(item)

    def list_nested(
        self,
        kind: EntityKind,
        property: str,
        parent_id: str,
        **params: Any,
    ) -> Iterator[Dict[str, Any]]:
        """Iterate over the ``property`` list of the ``kind`` object ``parent_id``."""
        try:
            list_fn = _NESTED_LISTS[(EntityKind(kind), property)]
        except KeyError:
            raise UnsupportedEntityError(f'No nested list {property} on {kind}') from None

        params.setdefault('limit', 100)
        for item in list_fn(parent_id, **params).auto_paging_iter():
            yield to_plain(item)

    @staticmethod
    def _resource(kind: EntityKind):
        try:
            return _RESOURCES[EntityKind(kind)]
        except (KeyError, ValueError):
            raise UnsupportedEntityError(f'{kind} cannot be fetched from Stripe') from None
