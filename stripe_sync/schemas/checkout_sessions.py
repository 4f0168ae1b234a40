from .types import EntitySchema


checkout_session_schema = EntitySchema(
    text=(
        'id',
        'object',
        'billing_address_collection',
        'cancel_url',
        'client_reference_id',
        'currency',
        'customer',
        'customer_creation',
        'customer_email',
        'invoice',
        'locale',
        'mode',
        'payment_intent',
        'payment_link',
        'payment_status',
        'setup_intent',
        'status',
        'submit_type',
        'subscription',
        'success_url',
        'url',
    ),
    integer=('amount_subtotal', 'amount_total', 'created', 'expires_at'),
    boolean=('livemode',),
    json=(
        'automatic_tax',
        'customer_details',
        'metadata',
        'shipping_cost',
        'shipping_details',
        'total_details',
    ),
    array=('payment_method_types',),
)
