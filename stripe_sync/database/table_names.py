"""Table name resolution with an optional, normalized prefix."""

from typing import Optional, Union

from ..registry import REGISTRY, EntityKind


BASE_TABLE_NAMES = {
    'products': 'products',
    'customers': 'customers',
    'prices': 'prices',
    'subscriptions': 'subscriptions',
    'subscription_items': 'subscription_items',
    'invoices': 'invoices',
    'charges': 'charges',
    'disputes': 'disputes',
    'plans': 'plans',
    'setup_intents': 'setup_intents',
    'payment_methods': 'payment_methods',
    'payment_intents': 'payment_intents',
    'tax_ids': 'tax_ids',
    'credit_notes': 'credit_notes',
    'early_fraud_warnings': 'early_fraud_warnings',
    'reviews': 'reviews',
    'refunds': 'refunds',
    'subscription_schedules': 'subscription_schedules',
    'checkout_sessions': 'checkout_sessions',
    'checkout_session_line_items': 'checkout_session_line_items',
    'features': 'features',
    'active_entitlements': 'active_entitlements',
}


def normalize_prefix(prefix: Optional[str] = None) -> str:
    """Ensure a non-empty prefix ends with exactly one underscore.

    >>> normalize_prefix('billing')
    'billing_'
    >>> normalize_prefix('billing_')
    'billing_'
    >>> normalize_prefix(None)
    ''
    """
    if not prefix:
        return ''
    return prefix if prefix.endswith('_') else f'{prefix}_'


def get_table_name(table: Union[str, EntityKind], prefix: Optional[str] = None) -> str:
    """Return the physical table name for a base table or an entity kind.

    Raises:
        KeyError: if ``table`` is not a mirrored table
    """
    if isinstance(table, EntityKind):
        table = REGISTRY[table].table
    return f'{normalize_prefix(prefix)}{BASE_TABLE_NAMES[table]}'
