from .types import EntitySchema


charge_schema = EntitySchema(
    text=(
        'id',
        'object',
        'currency',
        'customer',
        'description',
        'invoice',
        'failure_code',
        'failure_message',
        'payment_intent',
        'payment_method',
        'receipt_email',
        'receipt_number',
        'receipt_url',
        'statement_descriptor',
        'status',
        'balance_transaction',
        'dispute',
    ),
    integer=('amount', 'amount_captured', 'amount_refunded', 'created'),
    boolean=('captured', 'disputed', 'livemode', 'paid', 'refunded'),
    json=(
        'billing_details',
        'fraud_details',
        'metadata',
        'outcome',
        'payment_method_details',
        'refunds',
        'shipping',
    ),
)
