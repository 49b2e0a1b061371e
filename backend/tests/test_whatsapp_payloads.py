"""Webhook parsing and outbound message payloads."""

from datetime import datetime

from barrelpos.services.conversation_state import Button, ListRow, ListSection, SendButtons, SendList
from barrelpos.services.whatsapp_payloads import buttons_payload, list_payload, parse_webhook, text_payload


def _envelope(*messages):
    return {
        "object": "whatsapp_business_account",
        "entry": [{"id": "1", "changes": [{"field": "messages", "value": {"messages": list(messages)}}]}],
    }


def test_text_message():
    payload = _envelope({
        "from": "61400000001", "id": "wamid.1", "timestamp": "1700000000",
        "type": "text", "text": {"body": "2 cookies"},
    })

    [message] = parse_webhook(payload)

    assert message.phone_number == "61400000001"
    assert message.message_id == "wamid.1"
    assert message.text == "2 cookies"
    assert message.action_id is None
    assert message.timestamp == datetime(2023, 11, 14, 22, 13, 20)


def test_interactive_replies():
    payload = _envelope(
        {"from": "614", "id": "a", "type": "interactive",
         "interactive": {"type": "button_reply", "button_reply": {"id": "checkout", "title": "Checkout"}}},
        {"from": "614", "id": "b", "type": "interactive",
         "interactive": {"type": "list_reply", "list_reply": {"id": "product_7", "title": "Cookie"}}},
        {"from": "614", "id": "c", "type": "button", "button": {"payload": "confirm", "text": "Confirm"}},
    )

    messages = parse_webhook(payload)

    assert [(m.action_id, m.action_title) for m in messages] == [
        ("checkout", "Checkout"),
        ("product_7", "Cookie"),
        ("confirm", "Confirm"),
    ]


def test_status_callbacks_and_garbage_parse_to_nothing():
    statuses = {"entry": [{"changes": [{"value": {"statuses": [{"id": "wamid.1", "status": "read"}]}}]}]}

    assert parse_webhook(statuses) == []
    assert parse_webhook(None) == []
    assert parse_webhook({"entry": None}) == []
    assert parse_webhook(_envelope({"type": "text", "text": {"body": "no sender"}}, "junk")) == []


def test_text_payload_shape():
    assert text_payload("614", "hello") == {
        "messaging_product": "whatsapp",
        "recipient_type": "individual",
        "to": "614",
        "type": "text",
        "text": {"preview_url": False, "body": "hello"},
    }


def test_buttons_payload_truncates_titles():
    effect = SendButtons(body="Pick", buttons=(Button("a", "A very long button title here"),), footer="f")

    interactive = buttons_payload("614", effect)["interactive"]

    assert interactive["type"] == "button"
    assert interactive["action"]["buttons"][0]["reply"] == {"id": "a", "title": "A very long button t"}
    assert interactive["footer"] == {"text": "f"}
    assert "header" not in interactive


def test_list_payload_sections():
    effect = SendList(
        body="Menu",
        button_text="View Menu",
        sections=(ListSection("Menu", (ListRow("product_1", "Cookie", "$10.00"), ListRow("product_2", "Tart"))),),
    )

    action = list_payload("614", effect)["interactive"]["action"]

    assert action["button"] == "View Menu"
    assert action["sections"][0]["rows"] == [
        {"id": "product_1", "title": "Cookie", "description": "$10.00"},
        {"id": "product_2", "title": "Tart"},
    ]
