from .types import EntitySchema


subscription_item_schema = EntitySchema(
    text=('id', 'object', 'price', 'subscription'),
    integer=('created', 'quantity', 'current_period_end', 'current_period_start'),
    boolean=('deleted',),
    json=('billing_thresholds', 'metadata'),
    array=('tax_rates',),
)
