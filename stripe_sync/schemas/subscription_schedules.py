from .types import EntitySchema


subscription_schedule_schema = EntitySchema(
    text=(
        'id',
        'object',
        'application',
        'customer',
        'end_behavior',
        'released_subscription',
        'status',
        'subscription',
        'test_clock',
    ),
    integer=('canceled_at', 'completed_at', 'created', 'released_at'),
    boolean=('livemode',),
    json=('current_phase', 'default_settings', 'metadata', 'billing_mode'),
    array=('phases',),
)
