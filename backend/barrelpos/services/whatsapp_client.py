# Overview: Outbound WhatsApp Cloud API sender (httpx).

from __future__ import annotations

import logging

import httpx

from .conversation_state import Button, SendButtons, SendList, SendText
from .whatsapp_payloads import MAX_BUTTONS, buttons_payload, list_payload, text_payload


class WhatsAppClient:
    """
    Sends messages through POST {base}/{version}/{phone_number_id}/messages.

    Every send returns True/False and logs failures; a customer conversation
    must never crash because an outbound message could not be delivered.
    When disabled (no credentials or WHATSAPP_ENABLED off) sends are logged
    and skipped.
    """

    def __init__(
        self,
        *,
        access_token: str | None,
        phone_number_id: str | None,
        api_version: str = "v18.0",
        base_url: str = "https://graph.facebook.com",
        timeout: float = 10.0,
        enabled: bool = True,
        logger: logging.Logger | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.enabled = bool(enabled and access_token and phone_number_id)
        self.logger = logger or logging.getLogger(__name__)
        self.messages_url = f"{base_url.rstrip('/')}/{api_version}/{phone_number_id}/messages"
        self._client = httpx.Client(
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {access_token or ''}",
                "Content-Type": "application/json",
            },
        )

    @classmethod
    def from_config(cls, config, logger: logging.Logger | None = None,
                    transport: httpx.BaseTransport | None = None) -> "WhatsAppClient":
        return cls(
            access_token=config.get("WHATSAPP_ACCESS_TOKEN"),
            phone_number_id=config.get("WHATSAPP_PHONE_NUMBER_ID"),
            api_version=config.get("WHATSAPP_API_VERSION", "v18.0"),
            base_url=config.get("WHATSAPP_API_BASE_URL", "https://graph.facebook.com"),
            timeout=config.get("WHATSAPP_HTTP_TIMEOUT_SECONDS", 10),
            enabled=config.get("WHATSAPP_ENABLED", False),
            logger=logger,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def _post(self, payload: dict) -> bool:
        to = payload.get("to")
        if not self.enabled:
            self.logger.warning("WhatsApp disabled; dropping %s message to %s", payload.get("type"), to)
            return False
        try:
            response = self._client.post(self.messages_url, json=payload)
        except httpx.HTTPError as exc:
            self.logger.error("WhatsApp send to %s failed: %s", to, exc)
            return False
        if response.is_success:
            self.logger.info("WhatsApp %s message sent to %s", payload.get("type"), to)
            return True
        self.logger.error(
            "WhatsApp send to %s failed with %s: %s", to, response.status_code, response.text[:500]
        )
        return False

    def send_text(self, to: str, body: str) -> bool:
        return self._post(text_payload(to, body))

    def send_buttons(self, to: str, body: str, buttons, *, header: str | None = None,
                     footer: str | None = None) -> bool:
        """Reply buttons; WhatsApp allows three, extras are dropped with a warning."""
        buttons = [b if isinstance(b, Button) else Button(*b) for b in buttons]
        if len(buttons) > MAX_BUTTONS:
            self.logger.warning(
                "WhatsApp allows %s reply buttons; dropping %s", MAX_BUTTONS, len(buttons) - MAX_BUTTONS
            )
            buttons = buttons[:MAX_BUTTONS]
        effect = SendButtons(body=body, buttons=tuple(buttons), header=header, footer=footer)
        return self._post(buttons_payload(to, effect))

    def send_list(self, to: str, body: str, button_text: str, sections, *, header: str | None = None,
                  footer: str | None = None) -> bool:
        effect = SendList(body=body, button_text=button_text, sections=tuple(sections), header=header, footer=footer)
        return self._post(list_payload(to, effect))

    def send_effect(self, to: str, effect) -> bool:
        """Dispatch a conversation effect to the matching send call."""
        if isinstance(effect, SendText):
            return self.send_text(to, effect.body)
        if isinstance(effect, SendButtons):
            return self.send_buttons(to, effect.body, effect.buttons, header=effect.header, footer=effect.footer)
        if isinstance(effect, SendList):
            return self.send_list(to, effect.body, effect.button_text, effect.sections,
                                  header=effect.header, footer=effect.footer)
        raise TypeError(f"Not an outbound message effect: {effect!r}")
