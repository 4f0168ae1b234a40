"""Shared fixtures: a SQLite mirror, a fake Stripe client and signed events."""

import copy
import hashlib
import hmac
import json
import time

import pytest
import stripe
from sqlalchemy import create_engine, select

from stripe_sync import StripeSync, StripeSyncConfig
from stripe_sync.registry import EntityKind

WEBHOOK_SECRET = "whsec_test_secret"


def resource_missing(id):
    return stripe.InvalidRequestError(
        f"No such object: '{id}'", "id", code="resource_missing", http_status=404
    )


class FakeRemote:
    """In-memory stand-in for ``StripeRemoteClient`` that records every call."""

    def __init__(self):
        self.objects = {}
        self.lists = {}
        self.nested = {}
        self.calls = []

    def add(self, kind, obj, listed=True):
        kind = EntityKind(kind)
        self.objects[(kind, obj["id"])] = obj
        if listed:
            self.lists.setdefault(kind, []).append(obj)
        return obj

    def add_nested(self, kind, property, parent_id, items):
        self.nested[(EntityKind(kind), property, parent_id)] = items

    def retrieve(self, kind, id):
        kind = EntityKind(kind)
        self.calls.append(("retrieve", kind, id))
        if (kind, id) not in self.objects:
            raise resource_missing(id)
        return copy.deepcopy(self.objects[(kind, id)])

    def list(self, kind, **params):
        kind = EntityKind(kind)
        self.calls.append(("list", kind, params))
        items = self.lists.get(kind, [])
        if "customer" in params:
            items = [item for item in items if item.get("customer") == params["customer"]]
        return iter(copy.deepcopy(items))

    def list_nested(self, kind, property, parent_id, **params):
        kind = EntityKind(kind)
        self.calls.append(("list_nested", kind, property, parent_id))
        return iter(copy.deepcopy(self.nested.get((kind, property, parent_id), [])))

    def calls_of(self, method):
        return [call for call in self.calls if call[0] == method]


@pytest.fixture
def remote():
    return FakeRemote()


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'mirror.db'}")
    yield engine
    engine.dispose()


@pytest.fixture
def config():
    return StripeSyncConfig(
        stripe_secret_key="sk_test_fake_key_for_testing",
        stripe_webhook_secret=WEBHOOK_SECRET,
        schema=None,
    )


@pytest.fixture
def sync(config, engine, remote):
    sync = StripeSync(config, engine=engine, remote=remote)
    sync.create_tables()
    yield sync
    sync.close()


@pytest.fixture
def fetch_row(sync, engine):
    """Read a mirrored row by kind and ID, or None."""

    def fetch(kind, id):
        table = sync.postgres_client.relation(kind).table
        with engine.connect() as conn:
            row = conn.execute(select(table).where(table.c.id == id)).first()
        return dict(row._mapping) if row else None

    return fetch


@pytest.fixture
def count_rows(sync, engine):
    def count(kind):
        table = sync.postgres_client.relation(kind).table
        with engine.connect() as conn:
            return len(conn.execute(select(table.c.id)).all())

    return count


@pytest.fixture
def make_event():
    def make(event_type, obj, created=1700000000, id="evt_test"):
        return {
            "id": id,
            "object": "event",
            "type": event_type,
            "created": created,
            "data": {"object": obj},
        }

    return make


@pytest.fixture
def sign_payload():
    """Produce a ``Stripe-Signature`` header the way Stripe signs webhooks."""

    def sign(payload, secret=WEBHOOK_SECRET, timestamp=None):
        timestamp = timestamp or int(time.time())
        signed_payload = f"{timestamp}.{payload}"
        signature = hmac.new(
            secret.encode("utf-8"), signed_payload.encode("utf-8"), hashlib.sha256
        ).hexdigest()
        return f"t={timestamp},v1={signature}"

    return sign


@pytest.fixture
def event_payload(make_event):
    def payload(event_type, obj, **kwargs):
        return json.dumps(make_event(event_type, obj, **kwargs))

    return payload
