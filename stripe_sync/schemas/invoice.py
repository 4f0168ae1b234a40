from .types import EntitySchema


invoice_schema = EntitySchema(
    text=(
        'id',
        'object',
        'collection_method',
        'currency',
        'description',
        'hosted_invoice_url',
        'invoice_pdf',
        'number',
        'status',
        'customer',
        'customer_email',
        'customer_name',
        'subscription',
        'payment_intent',
        'default_payment_method',
        'billing_reason',
        'receipt_number',
        'statement_descriptor',
    ),
    integer=(
        'amount_due',
        'amount_paid',
        'amount_remaining',
        'attempt_count',
        'created',
        'due_date',
        'ending_balance',
        'next_payment_attempt',
        'period_end',
        'period_start',
        'starting_balance',
        'subtotal',
        'tax',
        'total',
        'webhooks_delivered_at',
    ),
    boolean=('attempted', 'auto_advance', 'livemode', 'paid'),
    json=(
        'lines',
        'metadata',
        'discount',
        'status_transitions',
        'customer_address',
        'customer_shipping',
    ),
    array=('custom_fields', 'default_tax_rates', 'total_tax_amounts'),
)
