"""Tests for converting Stripe API objects to plain dictionaries."""

import stripe

from stripe_sync.remote import to_plain


class TestToPlain:
    """Stripe objects reach storage as plain nested dicts and lists."""

    def test_nested_objects_are_converted(self):
        subscription = stripe.StripeObject.construct_from(
            {
                "id": "sub_1",
                "object": "subscription",
                "plan": {"id": "plan_1", "object": "plan"},
                "items": {
                    "object": "list",
                    "has_more": False,
                    "data": [{"id": "si_1", "object": "subscription_item", "price": {"id": "price_1"}}],
                },
            },
            "sk_test_key",
        )

        plain = to_plain(subscription)

        assert type(plain) is dict
        assert type(plain["plan"]) is dict
        assert type(plain["items"]) is dict
        assert type(plain["items"]["data"][0]) is dict
        assert type(plain["items"]["data"][0]["price"]) is dict
        assert plain["items"]["data"][0]["price"]["id"] == "price_1"

    def test_plain_values_pass_through(self):
        entity = {"id": "cus_1"}

        assert to_plain(entity) is entity
