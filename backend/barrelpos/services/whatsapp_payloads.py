# Overview: WhatsApp Cloud API wire format; inbound webhook parsing and outbound payload building.

"""
Inbound envelope (Graph API webhook):

    {"object": "whatsapp_business_account",
     "entry": [{"id": ..., "changes": [{"value": {
         "metadata": {...},
         "messages": [{"from", "id", "timestamp", "type",
                       "text": {"body"},
                       "interactive": {"type", "button_reply": {"id", "title"},
                                       "list_reply": {"id", "title", "description"}}}]}}]}]}

Status callbacks (delivered/read) arrive in the same envelope without
"messages" and parse to nothing.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from barrelpos.time_utils import from_unix_timestamp
from .conversation_state import ListSection, SendButtons, SendList

MAX_BUTTONS = 3
BUTTON_TITLE_MAX = 20


@dataclass(frozen=True)
class InboundMessage:
    phone_number: str
    message_id: str
    message_type: str
    text: str | None = None
    action_id: str | None = None
    action_title: str | None = None
    timestamp: datetime | None = None


def _parse_message(raw: dict) -> InboundMessage | None:
    phone = raw.get("from")
    message_id = raw.get("id")
    message_type = raw.get("type")
    if not phone or not message_id:
        return None

    text = None
    action_id = None
    action_title = None
    if message_type == "text":
        text = (raw.get("text") or {}).get("body")
    elif message_type == "interactive":
        interactive = raw.get("interactive") or {}
        reply = interactive.get("button_reply") or interactive.get("list_reply") or {}
        action_id = reply.get("id")
        action_title = reply.get("title")
    elif message_type == "button":
        # Quick-reply buttons on template messages
        button = raw.get("button") or {}
        action_id = button.get("payload")
        action_title = button.get("text")

    return InboundMessage(
        phone_number=phone,
        message_id=message_id,
        message_type=message_type or "unknown",
        text=text,
        action_id=action_id,
        action_title=action_title,
        timestamp=from_unix_timestamp(raw.get("timestamp")),
    )


def parse_webhook(payload) -> list[InboundMessage]:
    """Every customer message in a webhook delivery, in envelope order."""
    if not isinstance(payload, dict):
        return []
    messages = []
    for entry in payload.get("entry") or []:
        for change in (entry or {}).get("changes") or []:
            value = (change or {}).get("value") or {}
            for raw in value.get("messages") or []:
                if not isinstance(raw, dict):
                    continue
                message = _parse_message(raw)
                if message is not None:
                    messages.append(message)
    return messages


# =============================================================================
# Outbound
# =============================================================================

def text_payload(to: str, body: str) -> dict:
    return {
        "messaging_product": "whatsapp",
        "recipient_type": "individual",
        "to": to,
        "type": "text",
        "text": {"preview_url": False, "body": body},
    }


def _interactive_payload(to: str, interactive: dict) -> dict:
    return {
        "messaging_product": "whatsapp",
        "recipient_type": "individual",
        "to": to,
        "type": "interactive",
        "interactive": interactive,
    }


def buttons_payload(to: str, effect: SendButtons) -> dict:
    """Reply-button message. Callers must pass at most MAX_BUTTONS buttons."""
    interactive = {
        "type": "button",
        "body": {"text": effect.body},
        "action": {
            "buttons": [
                {"type": "reply", "reply": {"id": button.id, "title": button.title[:BUTTON_TITLE_MAX]}}
                for button in effect.buttons
            ]
        },
    }
    if effect.header:
        interactive["header"] = {"type": "text", "text": effect.header}
    if effect.footer:
        interactive["footer"] = {"text": effect.footer}
    return _interactive_payload(to, interactive)


def _section(section: ListSection) -> dict:
    rows = []
    for row in section.rows:
        data = {"id": row.id, "title": row.title}
        if row.description:
            data["description"] = row.description
        rows.append(data)
    return {"title": section.title, "rows": rows}


def list_payload(to: str, effect: SendList) -> dict:
    interactive = {
        "type": "list",
        "body": {"text": effect.body},
        "action": {
            "button": effect.button_text,
            "sections": [_section(section) for section in effect.sections],
        },
    }
    if effect.header:
        interactive["header"] = {"type": "text", "text": effect.header}
    if effect.footer:
        interactive["footer"] = {"text": effect.footer}
    return _interactive_payload(to, interactive)
