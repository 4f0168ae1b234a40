"""Generic write path for every mirrored entity kind."""

import logging
from datetime import datetime
from functools import partial
from typing import Any, Dict, Iterable, List, Optional

import stripe

from .database import PostgresClient
from .errors import is_resource_missing
from .registry import ChildCollection, EntityDescriptor, EntityKind, Reconcile, get_descriptor
from .types import StripeSyncConfig
from .utils import get_unique_ids, run_concurrently, utcnow


class EntityUpserter:
    """Writes entities of any kind, resolving references and child lists.

    Args:
        postgres_client: Mirror database
        remote: Stripe read client (see ``StripeRemoteClient``)
        config: Engine configuration
        logger: Logger used for progress and failures
    """

    def __init__(
        self,
        postgres_client: PostgresClient,
        remote: Any,
        config: StripeSyncConfig,
        logger: logging.Logger,
    ):
        self.postgres_client = postgres_client
        self.remote = remote
        self.config = config
        self.logger = logger

    def should_backfill(self, backfill_related_entities: Optional[bool] = None) -> bool:
        if backfill_related_entities is not None:
            return backfill_related_entities
        return self.config.backfill_related_entities

    def upsert(
        self,
        kind: EntityKind,
        entities: Iterable[Dict[str, Any]],
        backfill_related_entities: Optional[bool] = None,
        *,
        sync_timestamp: datetime,
    ) -> List[Dict[str, Any]]:
        """Upsert entities of one kind.

        Args:
            kind: Entity kind of every item in ``entities``
            entities: Stripe objects as plain dictionaries
            backfill_related_entities: Fetch missing referenced entities first
                (defaults to the configured behaviour)
            sync_timestamp: Logical timestamp of this write

        Returns:
            Rows actually written; entries older than the stored row are absent
        """
        descriptor = get_descriptor(kind)
        entities = [dict(entity) for entity in entities]
        if not entities:
            return []

        if self.should_backfill(backfill_related_entities):
            self.backfill_references(descriptor.kind, entities)

        self.expand_lists(descriptor, entities)

        rows = self.postgres_client.relation(descriptor.kind).upsert_many(
            [self._with_defaults(descriptor, entity) for entity in entities],
            sync_timestamp,
        )

        # Children of a parent whose write was stale are no newer than what is stored.
        written_ids = {row['id'] for row in rows}
        parents = [entity for entity in entities if entity['id'] in written_ids]
        for child in descriptor.children:
            self._upsert_children(descriptor, child, parents, sync_timestamp)

        return rows

    def backfill(self, kind: EntityKind, ids: Iterable[str]) -> List[Dict[str, Any]]:
        """Fetch and store the entities in ``ids`` that are not mirrored yet.

        IDs Stripe no longer knows about are skipped. Fetched entities are
        written without backfilling their own references.
        """
        kind = EntityKind(kind)
        ids = list(dict.fromkeys(id for id in ids if id))
        if not ids:
            return []

        missing_ids = self.postgres_client.relation(kind).find_missing_entries(ids)
        if not missing_ids:
            return []

        sync_timestamp = utcnow()
        try:
            entities = self._fetch_missing_entities(kind, missing_ids)
            return self.upsert(
                kind,
                entities,
                backfill_related_entities=False,
                sync_timestamp=sync_timestamp,
            )
        except Exception as err:
            self.logger.error(f'Failed to backfill {kind.value}: {err}')
            raise

    def backfill_references(self, kind: EntityKind, entities: List[Dict[str, Any]]) -> None:
        """Backfill every kind referenced by ``entities``, one kind per thread."""
        grouped: Dict[EntityKind, List[str]] = {}
        for field, referenced_kind in get_descriptor(kind).references:
            grouped.setdefault(referenced_kind, []).extend(get_unique_ids(entities, field))

        run_concurrently([
            partial(self.backfill, referenced_kind, ids)
            for referenced_kind, ids in grouped.items()
            if ids
        ])

    def expand_lists(self, descriptor: EntityDescriptor, entities: List[Dict[str, Any]]) -> None:
        """Replace truncated sub-lists with their full contents.

        Only active with ``auto_expand_lists``; a sub-list is fetched when it
        reports ``has_more``.
        """
        if not self.config.auto_expand_lists:
            return

        for entity in entities:
            for property in descriptor.expand:
                prop_value = entity.get(property)
                if isinstance(prop_value, dict) and prop_value.get('has_more'):
                    all_data = list(self.remote.list_nested(descriptor.kind, property, entity['id']))
                    entity[property] = {
                        **prop_value,
                        'data': all_data,
                        'has_more': False,
                    }

    def replace_active_entitlements(
        self,
        customer_id: str,
        entitlements: List[Dict[str, Any]],
        backfill_related_entities: Optional[bool] = None,
        *,
        sync_timestamp: datetime,
    ) -> List[Dict[str, Any]]:
        """Make ``entitlements`` the complete set of the customer's active entitlements.

        A set older than any stored entitlement of the customer is ignored.
        """
        relation = self.postgres_client.relation(EntityKind.ACTIVE_ENTITLEMENT)
        if relation.has_newer_rows('customer', customer_id, sync_timestamp):
            self.logger.info(f'Skipping stale active entitlements of customer {customer_id}')
            return []

        entitlements = [{**entitlement, 'customer': customer_id} for entitlement in entitlements]
        removed = relation.delete_except(
            'customer',
            customer_id,
            [entitlement['id'] for entitlement in entitlements],
            sync_timestamp,
        )
        if removed:
            self.logger.info(f'Removed {removed} active entitlements of customer {customer_id}')

        return self.upsert(
            EntityKind.ACTIVE_ENTITLEMENT,
            entitlements,
            backfill_related_entities,
            sync_timestamp=sync_timestamp,
        )

    def _fetch_missing_entities(self, kind: EntityKind, ids: List[str]) -> List[Dict[str, Any]]:
        entities = []
        for id in ids:
            try:
                entities.append(self.remote.retrieve(kind, id))
            except stripe.InvalidRequestError as err:
                if not is_resource_missing(err):
                    raise
                self.logger.warning(f'Skipping backfill of {kind.value} {id}: no longer exists in Stripe')
        return entities

    def _upsert_children(
        self,
        descriptor: EntityDescriptor,
        child: ChildCollection,
        parents: List[Dict[str, Any]],
        sync_timestamp: datetime,
    ) -> None:
        children: List[Dict[str, Any]] = []
        complete_sets: Dict[str, List[str]] = {}

        for parent in parents:
            parent_id = parent['id']
            if child.embedded:
                nested = parent.get(child.property)
                if not isinstance(nested, dict):
                    continue
                items = nested.get('data') or []
                # A truncated list cannot tell which stored children are gone.
                complete = not nested.get('has_more')
            else:
                items = list(self.remote.list_nested(descriptor.kind, child.property, parent_id))
                complete = True

            items = [{**item, child.parent_field: parent_id} for item in items]
            children.extend(items)
            if complete:
                complete_sets[parent_id] = [item['id'] for item in items]

        self.upsert(
            child.kind,
            children,
            backfill_related_entities=child.backfill_references,
            sync_timestamp=sync_timestamp,
        )

        if child.reconcile is None:
            return

        relation = self.postgres_client.relation(child.kind)
        for parent_id, current_ids in complete_sets.items():
            if child.reconcile == Reconcile.MARK_DELETED:
                relation.mark_deleted_except(child.parent_field, parent_id, current_ids, sync_timestamp)
            else:
                relation.delete_except(child.parent_field, parent_id, current_ids, sync_timestamp)

    @staticmethod
    def _with_defaults(descriptor: EntityDescriptor, entity: Dict[str, Any]) -> Dict[str, Any]:
        if not descriptor.defaults:
            return entity
        row = dict(entity)
        for key, value in descriptor.defaults:
            row.setdefault(key, value)
        return row
