from .types import EntitySchema


credit_note_schema = EntitySchema(
    text=(
        'id',
        'object',
        'currency',
        'customer',
        'customer_balance_transaction',
        'invoice',
        'memo',
        'number',
        'pdf',
        'reason',
        'refund',
        'status',
        'type',
    ),
    integer=(
        'amount',
        'amount_shipping',
        'created',
        'discount_amount',
        'out_of_band_amount',
        'subtotal',
        'subtotal_excluding_tax',
        'total',
        'total_excluding_tax',
        'voided_at',
    ),
    boolean=('livemode',),
    json=('lines', 'metadata', 'shipping_cost'),
    array=('discount_amounts', 'tax_amounts'),
)
