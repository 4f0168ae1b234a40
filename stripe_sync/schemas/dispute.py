from .types import EntitySchema


dispute_schema = EntitySchema(
    text=('id', 'object', 'charge', 'reason', 'status', 'currency', 'payment_intent'),
    integer=('amount', 'created'),
    boolean=('livemode', 'is_charge_refundable'),
    json=('evidence', 'metadata', 'evidence_details'),
    array=('balance_transactions',),
)
