# Overview: WhatsApp Business webhook (verification, inbound messages) and channel health.

"""
WhatsApp webhook routes.

The Graph API retries any delivery that does not get a 200, so the inbound
handler always answers 200 and logs failures instead of surfacing them.
Each message is handed to the ConversationService stored on the app.
"""

from flask import Blueprint, current_app, jsonify, request

from ..extensions import db
from ..services.whatsapp_payloads import parse_webhook
from ..time_utils import to_utc_z, utcnow

whatsapp_bp = Blueprint("whatsapp", __name__, url_prefix="/api/whatsapp")


def _conversations():
    return current_app.extensions["conversation_service"]


@whatsapp_bp.get("/webhook")
def verify_webhook_route():
    """Subscription handshake: echo hub.challenge when the verify token matches."""
    mode = request.args.get("hub.mode")
    token = request.args.get("hub.verify_token")
    challenge = request.args.get("hub.challenge", "")

    expected = current_app.config.get("WHATSAPP_VERIFY_TOKEN")
    if mode == "subscribe" and expected and token == expected:
        current_app.logger.info("WhatsApp webhook verified")
        return challenge, 200, {"Content-Type": "text/plain"}

    current_app.logger.warning("WhatsApp webhook verification failed (mode=%s)", mode)
    return "Forbidden", 403, {"Content-Type": "text/plain"}


@whatsapp_bp.post("/webhook")
def receive_webhook_route():
    payload = request.get_json(silent=True)
    messages = parse_webhook(payload)
    if not messages:
        return jsonify({"status": "ok", "processed": 0}), 200

    service = _conversations()
    processed = 0
    for message in messages:
        try:
            service.handle_message(
                message.phone_number,
                message.action_title if message.action_id else message.text,
                message.message_id,
                action_id=message.action_id,
            )
            processed += 1
        except Exception:
            current_app.logger.exception(
                "Failed to handle WhatsApp message %s from %s", message.message_id, message.phone_number
            )
            db.session.rollback()
    return jsonify({"status": "ok", "processed": processed}), 200


@whatsapp_bp.get("/health")
def whatsapp_health_route():
    service = _conversations()
    return jsonify({
        "status": "healthy",
        "enabled": bool(getattr(service.sender, "enabled", False)),
        "active_sessions": len(service.store.list_active()),
        "timestamp": to_utc_z(utcnow()),
    }), 200
