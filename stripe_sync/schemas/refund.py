from .types import EntitySchema


refund_schema = EntitySchema(
    text=(
        'id',
        'object',
        'balance_transaction',
        'charge',
        'currency',
        'payment_intent',
        'reason',
        'receipt_number',
        'source_transfer_reversal',
        'status',
        'transfer_reversal',
    ),
    integer=('amount', 'created'),
    json=('destination_details', 'metadata'),
)
