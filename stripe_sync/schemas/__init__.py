from .types import EntitySchema
from .active_entitlement import active_entitlement_schema
from .charge import charge_schema
from .checkout_sessions import checkout_session_schema
from .checkout_session_line_items import checkout_session_line_item_schema
from .credit_note import credit_note_schema
from .customer import customer_schema
from .dispute import dispute_schema
from .early_fraud_warning import early_fraud_warning_schema
from .feature import feature_schema
from .invoice import invoice_schema
from .payment_intent import payment_intent_schema
from .payment_methods import payment_methods_schema
from .plan import plan_schema
from .price import price_schema
from .product import product_schema
from .refund import refund_schema
from .review import review_schema
from .setup_intents import setup_intents_schema
from .subscription import subscription_schema
from .subscription_item import subscription_item_schema
from .subscription_schedules import subscription_schedule_schema
from .tax_id import tax_id_schema


__all__ = [
    'EntitySchema',
    'active_entitlement_schema',
    'charge_schema',
    'checkout_session_schema',
    'checkout_session_line_item_schema',
    'credit_note_schema',
    'customer_schema',
    'dispute_schema',
    'early_fraud_warning_schema',
    'feature_schema',
    'invoice_schema',
    'payment_intent_schema',
    'payment_methods_schema',
    'plan_schema',
    'price_schema',
    'product_schema',
    'refund_schema',
    'review_schema',
    'setup_intents_schema',
    'subscription_schema',
    'subscription_item_schema',
    'subscription_schedule_schema',
    'tax_id_schema',
]
