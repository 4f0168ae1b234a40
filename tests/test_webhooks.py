"""Tests for webhook verification and event reconciliation."""

from datetime import datetime, timedelta, timezone

import pytest
import stripe

from stripe_sync.errors import UnhandledEventError, WebhookVerificationError
from stripe_sync.registry import EntityKind
from stripe_sync.webhook_handlers import EVENT_ROUTES, Action

CREATED = 1700000000


def at(created):
    return datetime.fromtimestamp(created, tz=timezone.utc).replace(tzinfo=None)


def charge(status="pending", **fields):
    return {"id": "ch_1", "object": "charge", "status": status, "amount": 1000, **fields}


def subscription_event(make_event, items, created):
    return make_event(
        "customer.subscription.updated",
        {
            "id": "sub_1",
            "object": "subscription",
            "status": "active",
            "customer": "cus_1",
            "items": {
                "object": "list",
                "has_more": False,
                "data": [{"id": item, "object": "subscription_item", "price": "price_1"} for item in items],
            },
        },
        created=created,
    )


def summary_event(make_event, ids, created):
    return make_event(
        "entitlements.active_entitlement_summary.updated",
        {
            "object": "entitlements.active_entitlement_summary",
            "customer": "cus_1",
            "entitlements": {
                "object": "list",
                "data": [
                    {"id": id, "object": "entitlements.active_entitlement", "feature": "feat_1",
                     "lookup_key": id, "livemode": False}
                    for id in ids
                ],
            },
        },
        created=created,
    )


class TestProcessWebhook:
    """Signature verification before anything is applied."""

    def test_valid_signature(self, sync, event_payload, sign_payload, fetch_row):
        payload = event_payload("charge.succeeded", charge("succeeded"))

        sync.process_webhook(payload, sign_payload(payload))

        assert fetch_row(EntityKind.CHARGE, "ch_1")["status"] == "succeeded"

    def test_bytes_payload(self, sync, event_payload, sign_payload, fetch_row):
        payload = event_payload("customer.created", {"id": "cus_1", "object": "customer"})

        sync.process_webhook(payload.encode("utf-8"), sign_payload(payload))

        assert fetch_row(EntityKind.CUSTOMER, "cus_1") is not None

    def test_missing_signature(self, sync, event_payload, remote):
        payload = event_payload("charge.succeeded", charge())

        with pytest.raises(WebhookVerificationError):
            sync.process_webhook(payload, None)
        assert remote.calls == []

    def test_wrong_secret(self, sync, event_payload, sign_payload, fetch_row):
        payload = event_payload("charge.succeeded", charge())

        with pytest.raises(WebhookVerificationError):
            sync.process_webhook(payload, sign_payload(payload, secret="whsec_other"))
        assert fetch_row(EntityKind.CHARGE, "ch_1") is None

    def test_tampered_payload(self, sync, event_payload, sign_payload):
        payload = event_payload("charge.succeeded", charge())
        signature = sign_payload(payload)

        with pytest.raises(WebhookVerificationError):
            sync.process_webhook(payload.replace("1000", "9999"), signature)


class TestProcessEvent:
    """Event routing and last-write-wins ordering."""

    def test_unhandled_event_has_no_side_effects(self, sync, make_event, remote, count_rows):
        with pytest.raises(UnhandledEventError) as excinfo:
            sync.process_event(make_event("coupon.created", {"id": "co_1", "object": "coupon"}))

        assert excinfo.value.event_type == "coupon.created"
        assert remote.calls == []

    def test_payload_timestamp_is_event_created(self, sync, make_event, fetch_row):
        sync.process_event(make_event("charge.updated", charge(), created=CREATED))

        assert fetch_row(EntityKind.CHARGE, "ch_1")["last_synced_at"].replace(tzinfo=None) == at(CREATED)

    def test_duplicate_delivery_is_idempotent(self, sync, make_event, fetch_row):
        event = make_event("charge.succeeded", charge("succeeded"))
        sync.process_event(event)
        first = fetch_row(EntityKind.CHARGE, "ch_1")

        sync.process_event(event)

        assert fetch_row(EntityKind.CHARGE, "ch_1") == first

    def test_older_event_does_not_overwrite(self, sync, make_event, fetch_row):
        sync.process_event(make_event("charge.succeeded", charge("succeeded"), created=CREATED + 10))
        sync.process_event(make_event("charge.pending", charge("pending"), created=CREATED))

        assert fetch_row(EntityKind.CHARGE, "ch_1")["status"] == "succeeded"

    def test_webhook_upserts_never_backfill(self, sync, make_event, remote, fetch_row):
        sync.process_event(make_event("charge.updated", charge(customer="cus_missing")))

        assert remote.calls == []
        assert fetch_row(EntityKind.CUSTOMER, "cus_missing") is None

    def test_customer_deleted_then_stale_update(self, sync, make_event, fetch_row):
        sync.process_event(make_event(
            "customer.created", {"id": "cus_1", "object": "customer", "email": "a@example.com"},
            created=CREATED,
        ))
        sync.process_event(make_event(
            "customer.deleted", {"id": "cus_1", "object": "customer", "email": "a@example.com"},
            created=CREATED + 20,
        ))
        sync.process_event(make_event(
            "customer.updated", {"id": "cus_1", "object": "customer", "email": "b@example.com"},
            created=CREATED + 10,
        ))

        row = fetch_row(EntityKind.CUSTOMER, "cus_1")
        assert row["deleted"] is True
        assert row["email"] == "a@example.com"

    @pytest.mark.parametrize(
        "event_type, kind, id",
        [
            ("product.deleted", EntityKind.PRODUCT, "prod_1"),
            ("price.deleted", EntityKind.PRICE, "price_1"),
            ("plan.deleted", EntityKind.PLAN, "plan_1"),
            ("customer.tax_id.deleted", EntityKind.TAX_ID, "txi_1"),
        ],
    )
    def test_tombstones(self, sync, make_event, fetch_row, event_type, kind, id):
        sync.upserter.upsert(kind, [{"id": id}], backfill_related_entities=False, sync_timestamp=at(CREATED))

        sync.process_event(make_event(event_type, {"id": id}))

        assert fetch_row(kind, id) is None

    def test_tombstone_of_unknown_row(self, sync, make_event):
        sync.process_event(make_event("product.deleted", {"id": "prod_never_seen"}))

    def test_subscription_items_reconciled(self, sync, make_event, fetch_row):
        sync.process_event(subscription_event(make_event, ["si_1", "si_2"], CREATED))
        sync.process_event(subscription_event(make_event, ["si_2"], CREATED + 1))

        assert fetch_row(EntityKind.SUBSCRIPTION_ITEM, "si_1")["deleted"] is True
        assert fetch_row(EntityKind.SUBSCRIPTION_ITEM, "si_2")["deleted"] is False

    def test_stale_subscription_event_leaves_items_alone(self, sync, make_event, fetch_row):
        """An older subscription event arriving last neither deletes nor revives items."""
        sync.process_event(subscription_event(make_event, ["si_1", "si_2"], CREATED))
        sync.process_event(subscription_event(make_event, ["si_2"], CREATED + 2))
        sync.process_event(subscription_event(make_event, ["si_1"], CREATED + 1))

        assert fetch_row(EntityKind.SUBSCRIPTION_ITEM, "si_1")["deleted"] is True
        assert fetch_row(EntityKind.SUBSCRIPTION_ITEM, "si_2")["deleted"] is False
        assert fetch_row(EntityKind.SUBSCRIPTION, "sub_1")["last_synced_at"].replace(tzinfo=None) == at(CREATED + 2)

    def test_entitlement_summary(self, sync, make_event, fetch_row):
        sync.process_event(summary_event(make_event, ["ent_1", "ent_2"], CREATED))
        sync.process_event(summary_event(make_event, ["ent_2"], CREATED + 1))

        assert fetch_row(EntityKind.ACTIVE_ENTITLEMENT, "ent_1") is None
        assert fetch_row(EntityKind.ACTIVE_ENTITLEMENT, "ent_2")["customer"] == "cus_1"

    def test_stale_entitlement_summary_is_ignored(self, sync, make_event, fetch_row):
        """An older summary arriving last keeps the newer entitlement set."""
        sync.process_event(summary_event(make_event, ["ent_2"], CREATED + 2))
        sync.process_event(summary_event(make_event, ["ent_1"], CREATED + 1))

        assert fetch_row(EntityKind.ACTIVE_ENTITLEMENT, "ent_2") is not None
        assert fetch_row(EntityKind.ACTIVE_ENTITLEMENT, "ent_1") is None

    def test_checkout_session_backfills_line_item_prices(self, sync, make_event, remote, fetch_row):
        remote.add(EntityKind.PRICE, {"id": "price_1", "object": "price"})
        remote.add_nested(
            EntityKind.CHECKOUT_SESSION,
            "line_items",
            "cs_1",
            [{"id": "li_1", "object": "item", "price": {"id": "price_1"}}],
        )

        sync.process_event(make_event(
            "checkout.session.completed", {"id": "cs_1", "object": "checkout.session", "customer": "cus_1"},
        ))

        assert fetch_row(EntityKind.CHECKOUT_SESSION_LINE_ITEM, "li_1")["checkout_session"] == "cs_1"
        assert fetch_row(EntityKind.PRICE, "price_1") is not None
        assert fetch_row(EntityKind.CUSTOMER, "cus_1") is None


class TestRevalidation:
    """Refetching from Stripe instead of trusting the payload."""

    def test_refetch_uses_live_data_and_now(self, sync, make_event, remote, fetch_row):
        sync.config.revalidate_objects_via_stripe_api = ["charge"]
        remote.add(EntityKind.CHARGE, charge("pending", amount=5000))
        before = datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(seconds=1)

        sync.process_event(make_event("charge.updated", charge("pending"), created=CREATED))

        row = fetch_row(EntityKind.CHARGE, "ch_1")
        assert row["amount"] == 5000
        assert row["last_synced_at"].replace(tzinfo=None) >= before
        assert remote.calls == [("retrieve", EntityKind.CHARGE, "ch_1")]

    def test_final_state_payload_is_trusted(self, sync, make_event, remote, fetch_row):
        """A terminal payload is stored as-is even when revalidation is configured."""
        sync.config.revalidate_objects_via_stripe_api = ["charge"]

        sync.process_event(make_event("charge.succeeded", charge("succeeded"), created=CREATED))

        assert remote.calls == []
        assert fetch_row(EntityKind.CHARGE, "ch_1")["last_synced_at"].replace(tzinfo=None) == at(CREATED)

    def test_revalidation_matches_object_name(self, sync, make_event, remote):
        sync.config.revalidate_objects_via_stripe_api = ["checkout.session"]
        remote.add(EntityKind.CHECKOUT_SESSION, {"id": "cs_1", "object": "checkout.session"})

        sync.process_event(make_event("checkout.session.expired", {"id": "cs_1", "object": "checkout.session"}))

        assert ("retrieve", EntityKind.CHECKOUT_SESSION, "cs_1") in remote.calls

    @pytest.mark.parametrize(
        "event_type, kind, id",
        [
            ("product.updated", EntityKind.PRODUCT, "prod_1"),
            ("price.created", EntityKind.PRICE, "price_1"),
            ("plan.updated", EntityKind.PLAN, "plan_1"),
        ],
    )
    def test_missing_upstream_becomes_tombstone(self, sync, make_event, fetch_row, event_type, kind, id):
        sync.config.revalidate_objects_via_stripe_api = [kind.value]
        sync.upserter.upsert(kind, [{"id": id}], backfill_related_entities=False, sync_timestamp=at(CREATED))

        sync.process_event(make_event(event_type, {"id": id, "object": kind.value}))

        assert fetch_row(kind, id) is None

    def test_missing_upstream_for_other_kinds_raises(self, sync, make_event):
        sync.config.revalidate_objects_via_stripe_api = ["invoice"]

        with pytest.raises(stripe.InvalidRequestError) as excinfo:
            sync.process_event(make_event("invoice.updated", {"id": "in_gone", "object": "invoice"}))
        assert excinfo.value.code == "resource_missing"

    def test_entitlements_refetched(self, sync, make_event, remote, fetch_row):
        sync.config.revalidate_objects_via_stripe_api = ["entitlements"]
        remote.add(
            EntityKind.ACTIVE_ENTITLEMENT,
            {"id": "ent_live", "object": "entitlements.active_entitlement", "feature": "feat_1", "customer": "cus_1"},
        )

        sync.process_event(make_event(
            "entitlements.active_entitlement_summary.updated",
            {"object": "entitlements.active_entitlement_summary", "customer": "cus_1",
             "entitlements": {"object": "list", "data": [{"id": "ent_stale", "feature": "feat_1"}]}},
        ))

        assert fetch_row(EntityKind.ACTIVE_ENTITLEMENT, "ent_stale") is None
        assert fetch_row(EntityKind.ACTIVE_ENTITLEMENT, "ent_live") is not None


class TestEventRoutes:
    """The routing table is plain data."""

    def test_deletes_are_tombstones(self):
        assert EVENT_ROUTES["product.deleted"].action == Action.TOMBSTONE
        assert EVENT_ROUTES["customer.deleted"].action == Action.SOFT_DELETE

    def test_upserts_with_tombstone_fallback(self):
        assert EVENT_ROUTES["price.updated"].tombstone_if_missing
        assert not EVENT_ROUTES["invoice.updated"].tombstone_if_missing
