from .types import EntitySchema


review_schema = EntitySchema(
    text=(
        'id',
        'object',
        'billing_zip',
        'charge',
        'closed_reason',
        'ip_address',
        'opened_reason',
        'payment_intent',
        'reason',
    ),
    integer=('created',),
    boolean=('livemode', 'open'),
    json=('ip_address_location', 'session'),
)
