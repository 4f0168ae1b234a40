from .types import EntitySchema


product_schema = EntitySchema(
    text=(
        'id',
        'object',
        'default_price',
        'description',
        'name',
        'statement_descriptor',
        'tax_code',
        'unit_label',
        'url',
    ),
    integer=('created', 'updated'),
    boolean=('active', 'livemode', 'shippable'),
    json=('metadata', 'package_dimensions'),
    array=('images', 'marketing_features'),
)
