from .types import EntitySchema


price_schema = EntitySchema(
    text=(
        'id',
        'object',
        'currency',
        'nickname',
        'type',
        'billing_scheme',
        'lookup_key',
        'tiers_mode',
        'unit_amount_decimal',
        'product',
    ),
    integer=('unit_amount', 'created'),
    boolean=('active', 'livemode'),
    json=('metadata', 'recurring', 'transform_quantity'),
)
