from .types import EntitySchema


plan_schema = EntitySchema(
    text=(
        'id',
        'object',
        'product',
        'currency',
        'interval',
        'nickname',
        'tiers_mode',
        'usage_type',
        'billing_scheme',
        'aggregate_usage',
    ),
    integer=('amount', 'created', 'interval_count', 'trial_period_days'),
    boolean=('active', 'livemode'),
    json=('metadata', 'transform_usage'),
)
