from .types import EntitySchema


checkout_session_line_item_schema = EntitySchema(
    text=('id', 'object', 'currency', 'description', 'price', 'checkout_session'),
    integer=('amount_discount', 'amount_subtotal', 'amount_tax', 'amount_total', 'quantity'),
)
