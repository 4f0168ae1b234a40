from .types import EntitySchema


payment_methods_schema = EntitySchema(
    text=('id', 'object', 'customer', 'type'),
    integer=('created',),
    boolean=('livemode',),
    json=('billing_details', 'metadata', 'card'),
)
