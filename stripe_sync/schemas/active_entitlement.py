from .types import EntitySchema


active_entitlement_schema = EntitySchema(
    text=('id', 'object', 'feature', 'lookup_key', 'customer'),
    boolean=('livemode',),
)
