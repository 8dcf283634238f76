"""
WhatsApp Gateway Module

Thin httpx client for the Evolution API, the WhatsApp bridge the agents
answer through.

Endpoints used:
- POST {base_url}/message/sendText/{instance}    {"number", "text"}
- POST {base_url}/chat/findMessages/{instance}   recent inbound messages

Every request carries the instance API key in the "apikey" header. Non-2xx
responses and transport errors raise GatewayError.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from config.settings import get_settings, WhatsAppConfig
from agentdesk.exceptions import GatewayError

logger = logging.getLogger(__name__)


class EvolutionGateway:
    """
    Evolution API client.

    Example:
        gateway = EvolutionGateway()
        gateway.send_message("store-1", "5511999990000", "We open at 9am.")
        recent = gateway.fetch_messages("store-1", limit=5)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        config: Optional[WhatsAppConfig] = None,
        client: Optional[httpx.Client] = None,
    ):
        """
        Initialize the gateway.

        Args:
            base_url: Evolution API URL (default from config)
            api_key: Evolution API key (default from config)
            config: Optional WhatsAppConfig
            client: Pre-built httpx.Client (for custom transports)
        """
        self.config = config or get_settings().whatsapp
        self.base_url = (base_url or self.config.base_url).rstrip("/")
        self.api_key = api_key or self.config.api_key
        self._client = client

        logger.info(f"EvolutionGateway initialized: url={self.base_url}")

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.config.request_timeout)
        return self._client

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
        return headers

    def _post(self, path: str, payload: Dict[str, Any]) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self._get_client().post(url, json=payload, headers=self._headers())
        except httpx.HTTPError as e:
            logger.error(f"Evolution API request to {path} failed: {e}")
            raise GatewayError(f"Request to {path} failed: {e}") from e

        if not response.is_success:
            logger.error(
                f"Evolution API {path} returned {response.status_code}: {response.text[:200]}"
            )
            raise GatewayError(
                f"Evolution API {path} returned {response.status_code}",
                status_code=response.status_code,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    def send_message(self, instance: str, recipient: str, text: str) -> Any:
        """
        Send a text message.

        Args:
            instance: Evolution instance name
            recipient: Phone number (no @s.whatsapp.net suffix)
            text: Message body

        Raises:
            GatewayError: If the API rejects the message
        """
        result = self._post(
            f"/message/sendText/{instance}",
            {"number": recipient, "text": text},
        )
        logger.info(f"Sent {len(text)} chars to {recipient} via {instance}")
        return result

    def fetch_messages(self, instance: str, limit: int = 5) -> List[Dict[str, Any]]:
        """
        Fetch the most recent inbound messages of an instance.

        Returns:
            Raw Evolution message objects (key / message / messageTimestamp)
        """
        data = self._post(
            f"/chat/findMessages/{instance}",
            {"where": {"key": {"fromMe": False}}, "limit": limit},
        )

        # v1 returns a bare list, v2 wraps it in {"messages": {"records": [...]}}
        if isinstance(data, list):
            return data
        if isinstance(data, dict):
            messages = data.get("messages", data.get("records", []))
            if isinstance(messages, dict):
                messages = messages.get("records", [])
            return messages if isinstance(messages, list) else []
        return []

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
