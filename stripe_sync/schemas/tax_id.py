from .types import EntitySchema


tax_id_schema = EntitySchema(
    text=('id', 'object', 'country', 'customer', 'type', 'value'),
    integer=('created',),
    boolean=('livemode',),
    json=('owner', 'verification'),
)
