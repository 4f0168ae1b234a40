from .types import EntitySchema


payment_intent_schema = EntitySchema(
    text=(
        'id',
        'object',
        'cancellation_reason',
        'capture_method',
        'client_secret',
        'confirmation_method',
        'currency',
        'customer',
        'description',
        'invoice',
        'latest_charge',
        'on_behalf_of',
        'payment_method',
        'receipt_email',
        'review',
        'setup_future_usage',
        'statement_descriptor',
        'status',
    ),
    integer=(
        'amount',
        'amount_capturable',
        'amount_received',
        'application_fee_amount',
        'canceled_at',
        'created',
    ),
    boolean=('livemode',),
    json=(
        'last_payment_error',
        'metadata',
        'next_action',
        'payment_method_options',
        'shipping',
        'transfer_data',
    ),
    array=('payment_method_types',),
)
