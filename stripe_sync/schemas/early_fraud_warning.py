from .types import EntitySchema


early_fraud_warning_schema = EntitySchema(
    text=('id', 'object', 'charge', 'fraud_type', 'payment_intent'),
    integer=('created',),
    boolean=('actionable', 'livemode'),
)
