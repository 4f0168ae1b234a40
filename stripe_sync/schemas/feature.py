from .types import EntitySchema


feature_schema = EntitySchema(
    text=('id', 'object', 'name', 'lookup_key'),
    boolean=('livemode', 'active'),
    json=('metadata',),
)
