from .types import EntitySchema


customer_schema = EntitySchema(
    text=(
        'id',
        'object',
        'description',
        'email',
        'name',
        'phone',
        'currency',
        'default_source',
        'invoice_prefix',
        'tax_exempt',
    ),
    integer=('balance', 'created', 'next_invoice_sequence'),
    boolean=('delinquent', 'livemode', 'deleted'),
    json=('address', 'metadata', 'shipping', 'discount', 'invoice_settings'),
    array=('preferred_locales',),
    # A deleted customer only carries these fields; everything else is kept.
    deleted_properties=('id', 'object', 'deleted'),
)
