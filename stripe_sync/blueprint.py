"""Flask blueprint receiving Stripe webhooks for a ``StripeSync`` instance."""

from flask import Blueprint, current_app, jsonify, request

from .errors import UnhandledEventError, WebhookVerificationError


def create_webhook_blueprint(sync, url_prefix: str = "/webhooks", path: str = "/stripe") -> Blueprint:
    """Build a blueprint exposing ``POST {url_prefix}{path}``.

    Args:
        sync: The ``StripeSync`` instance events are applied to
        url_prefix: Prefix of the webhook route
        path: Path of the webhook route below ``url_prefix``

    Returns:
        Blueprint to register on a Flask app
    """
    webhooks_bp = Blueprint("stripe_sync_webhooks", __name__, url_prefix=url_prefix)

    @webhooks_bp.route(path, methods=["POST"])
    def stripe_webhook():
        """Handle incoming Stripe webhook events.

        Invalid signatures and unhandled event types answer 400 so Stripe does
        not retry them.
        """
        # Signature verification needs the raw request body
        payload = request.get_data()
        sig_header = request.headers.get("Stripe-Signature")

        if not sig_header:
            current_app.logger.warning("Stripe webhook missing signature header")
            return jsonify({"error": "Missing stripe-signature header"}), 400

        try:
            sync.process_webhook(payload, sig_header)
        except WebhookVerificationError as err:
            current_app.logger.error(f"Stripe webhook verification failed: {err}")
            return jsonify({"error": "Invalid signature"}), 400
        except UnhandledEventError as err:
            current_app.logger.warning(str(err))
            return jsonify({"error": str(err)}), 400
        except Exception as exc:
            current_app.logger.exception(f"Unexpected error in Stripe webhook handler: {exc}")
            return jsonify({"error": "Internal server error"}), 500

        return jsonify({"received": True}), 200

    return webhooks_bp
