from .types import EntitySchema


subscription_schema = EntitySchema(
    text=(
        'id',
        'object',
        'default_payment_method',
        'pending_setup_intent',
        'status',
        'collection_method',
        'default_source',
        'schedule',
        'customer',
        'latest_invoice',
        'plan',
    ),
    integer=(
        'current_period_end',
        'current_period_start',
        'billing_cycle_anchor',
        'cancel_at',
        'canceled_at',
        'created',
        'days_until_due',
        'ended_at',
        'next_pending_invoice_item_invoice',
        'start_date',
        'trial_end',
        'trial_start',
    ),
    boolean=('cancel_at_period_end', 'livemode'),
    number=('application_fee_percent',),
    json=(
        'items',
        'metadata',
        'pending_update',
        'billing_thresholds',
        'discount',
        'pause_collection',
        'pending_invoice_item_interval',
        'transfer_data',
    ),
    array=('default_tax_rates',),
)
