# Overview: Request decorators for operator API routes and Shopify webhooks.

import base64
import hashlib
import hmac
from functools import wraps

from flask import current_app, g, jsonify, request

from .services import shop_session_service


def require_shop(f):
    """
    Require an operator bearer token and establish shop context.

    Sets the following Flask g attributes:
    - g.shop: The shop domain the token belongs to
    - g.shop_session: The ShopSession record

    Returns 401 if the Authorization header is missing or the token is unknown.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1]
        session = shop_session_service.validate_api_token(token)

        if not session:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.shop = session.shop
        g.shop_session = session

        return f(*args, **kwargs)

    return decorated_function


def compute_webhook_hmac(secret: str, body: bytes) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_shopify_webhook(f):
    """
    Authenticate a Shopify webhook delivery.

    Checks X-Shopify-Hmac-Sha256 against the raw request body signed with
    SHOPIFY_API_SECRET and sets g.shop / g.webhook_topic from the headers.
    Unauthenticated deliveries get 401 and are never processed.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        secret = current_app.config.get("SHOPIFY_API_SECRET")
        if not secret:
            current_app.logger.error("SHOPIFY_API_SECRET is not configured; rejecting webhook")
            return "", 401

        received = request.headers.get("X-Shopify-Hmac-Sha256", "")
        expected = compute_webhook_hmac(secret, request.get_data())
        if not received or not hmac.compare_digest(expected, received):
            current_app.logger.warning("Webhook HMAC verification failed for %s", request.path)
            return "", 401

        shop = request.headers.get("X-Shopify-Shop-Domain", "")
        try:
            g.shop = shop_session_service.normalize_shop(shop)
        except shop_session_service.ShopSessionError:
            current_app.logger.warning("Webhook with invalid shop domain %r", shop)
            return "", 401
        g.webhook_topic = request.headers.get("X-Shopify-Topic")

        return f(*args, **kwargs)

    return decorated_function
