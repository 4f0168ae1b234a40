"""Tests for bulk sync, backfill dispatch and single-entity sync."""

from datetime import datetime, timezone

import pytest

from stripe_sync.errors import UnsupportedEntityError
from stripe_sync.registry import EntityKind
from stripe_sync.sync_orchestrator import BACKFILL_ORDER

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def list_calls(remote, kind):
    return [call[2] for call in remote.calls_of("list") if call[1] == kind]


class TestSync:
    """Listing and chunked upserts."""

    def test_sync_products(self, sync, remote, count_rows):
        for i in range(3):
            remote.add(EntityKind.PRODUCT, {"id": f"prod_{i}", "object": "product"})

        result = sync.sync_products()

        assert result == {"synced": 3}
        assert count_rows(EntityKind.PRODUCT) == 3
        assert list_calls(remote, EntityKind.PRODUCT) == [{"limit": 100}]

    def test_chunks_flush_separately(self, sync, remote, count_rows, monkeypatch):
        sync.config.sync_chunk_size = 2
        for i in range(5):
            remote.add(EntityKind.PRODUCT, {"id": f"prod_{i}", "object": "product"})

        chunks = []
        upsert = sync.upserter.upsert

        def record(kind, items, *args, **kwargs):
            chunks.append(len(items))
            return upsert(kind, items, *args, **kwargs)

        monkeypatch.setattr(sync.upserter, "upsert", record)

        assert sync.sync_products() == {"synced": 5}
        assert chunks == [2, 2, 1]
        assert count_rows(EntityKind.PRODUCT) == 5

    def test_created_filter_forwarded(self, sync, remote):
        sync.sync_invoices({"created": {"gte": 1700000000}})

        assert list_calls(remote, EntityKind.INVOICE) == [{"limit": 100, "created": {"gte": 1700000000}}]

    def test_created_filter_not_sent_for_tax_ids(self, sync, remote):
        sync.sync_tax_ids({"created": {"gte": 1700000000}})

        assert list_calls(remote, EntityKind.TAX_ID) == [{"limit": 100}]

    def test_subscriptions_listed_with_all_statuses(self, sync, remote):
        sync.sync_subscriptions()

        assert list_calls(remote, EntityKind.SUBSCRIPTION) == [{"limit": 100, "status": "all"}]

    def test_backfill_override(self, sync, remote, fetch_row):
        remote.add(EntityKind.CUSTOMER, {"id": "cus_1", "object": "customer"}, listed=False)
        remote.add(EntityKind.CHARGE, {"id": "ch_1", "object": "charge", "customer": "cus_1"})

        sync.sync_charges({"backfill_related_entities": False})
        assert fetch_row(EntityKind.CUSTOMER, "cus_1") is None

        sync.sync_charges()
        assert fetch_row(EntityKind.CUSTOMER, "cus_1") is not None

    def test_unlistable_kind(self, sync):
        with pytest.raises(UnsupportedEntityError):
            sync.orchestrator.sync(EntityKind.SUBSCRIPTION_ITEM)


class TestPaymentMethods:
    """Payment methods are listed per mirrored customer."""

    def test_listed_per_non_deleted_customer(self, sync, remote, count_rows):
        sync.upserter.upsert(
            EntityKind.CUSTOMER,
            [{"id": "cus_1"}, {"id": "cus_2"}, {"id": "cus_3", "deleted": True}],
            sync_timestamp=T0,
        )
        remote.add(EntityKind.PAYMENT_METHOD, {"id": "pm_1", "object": "payment_method", "customer": "cus_1"})
        remote.add(EntityKind.PAYMENT_METHOD, {"id": "pm_2", "object": "payment_method", "customer": "cus_2"})
        remote.add(EntityKind.PAYMENT_METHOD, {"id": "pm_3", "object": "payment_method", "customer": "cus_2"})

        result = sync.sync_payment_methods()

        assert result == {"synced": 3}
        assert count_rows(EntityKind.PAYMENT_METHOD) == 3
        customers = sorted(params["customer"] for params in list_calls(remote, EntityKind.PAYMENT_METHOD))
        assert customers == ["cus_1", "cus_2"]


class TestSyncBackfill:
    """Dispatch on the requested object."""

    def test_single_object(self, sync, remote):
        remote.add(EntityKind.CUSTOMER, {"id": "cus_1", "object": "customer"})

        result = sync.sync_backfill({"object": "customer"})

        assert result == {"customers": {"synced": 1}}

    def test_all_runs_in_dependency_order(self, sync, remote):
        result = sync.sync_backfill({"object": "all"})

        assert list(result) == [key for key, _ in BACKFILL_ORDER]
        listed = [call[1] for call in remote.calls_of("list")]
        assert listed.index(EntityKind.PRODUCT) < listed.index(EntityKind.PRICE)
        assert listed.index(EntityKind.CUSTOMER) < listed.index(EntityKind.SUBSCRIPTION)

    def test_defaults_to_all(self, sync):
        assert len(sync.sync_backfill()) == len(BACKFILL_ORDER)

    def test_unknown_object(self, sync):
        with pytest.raises(ValueError):
            sync.sync_backfill({"object": "coupon"})


class TestFeaturesAndEntitlements:
    """Entitlement features and active entitlements."""

    def test_sync_features(self, sync, remote, fetch_row):
        remote.add(EntityKind.FEATURE, {"id": "feat_1", "object": "entitlements.feature", "name": "Seats"})

        assert sync.sync_features() == {"synced": 1}
        assert fetch_row(EntityKind.FEATURE, "feat_1")["name"] == "Seats"

    def test_sync_entitlements_reconciles(self, sync, remote, fetch_row):
        sync.upserter.replace_active_entitlements(
            "cus_1",
            [{"id": "ent_old", "feature": "feat_1"}],
            backfill_related_entities=False,
            sync_timestamp=T0,
        )
        remote.add(
            EntityKind.ACTIVE_ENTITLEMENT,
            {"id": "ent_new", "object": "entitlements.active_entitlement", "feature": "feat_1", "customer": "cus_1"},
        )
        sync.config.backfill_related_entities = False

        assert sync.sync_entitlements("cus_1") == {"synced": 1}
        assert fetch_row(EntityKind.ACTIVE_ENTITLEMENT, "ent_old") is None
        assert fetch_row(EntityKind.ACTIVE_ENTITLEMENT, "ent_new")["customer"] == "cus_1"


class TestSyncSingleEntity:
    """Dispatch by ID prefix."""

    def test_syncs_by_prefix(self, sync, remote, fetch_row):
        remote.add(EntityKind.SUBSCRIPTION_SCHEDULE, {"id": "sub_sched_1", "object": "subscription_schedule"})
        sync.config.backfill_related_entities = False

        sync.sync_single_entity("sub_sched_1")

        assert fetch_row(EntityKind.SUBSCRIPTION_SCHEDULE, "sub_sched_1") is not None
        assert remote.calls == [("retrieve", EntityKind.SUBSCRIPTION_SCHEDULE, "sub_sched_1")]

    def test_deleted_customer_skipped(self, sync, remote, fetch_row):
        remote.add(EntityKind.CUSTOMER, {"id": "cus_1", "object": "customer", "deleted": True})

        assert sync.sync_single_entity("cus_1") == []
        assert fetch_row(EntityKind.CUSTOMER, "cus_1") is None

    def test_unknown_prefix(self, sync, remote):
        with pytest.raises(UnsupportedEntityError):
            sync.sync_single_entity("coupon_123")
        assert remote.calls == []
