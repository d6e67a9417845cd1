"""HTTP client for the Recast.AI NLU and Bot Connector APIs."""
import logging
from typing import Any, Optional

import httpx

from chatbot.errors import InvalidPayloadError, NluError
from chatbot.models import Conversation, Message

logger = logging.getLogger(__name__)


class NluClient:
    """
    Thin async wrapper around the NLU request API and the Bot Connector.

    The request token authenticates converse calls. The connect token, when
    given, authenticates Bot Connector calls; otherwise the request token is
    used for both.
    """

    def __init__(
        self,
        request_token: str,
        language: str = "en",
        connect_token: Optional[str] = None,
        api_url: str = "https://api.recast.ai/v2",
        connect_url: str = "https://api.recast.ai/connect/v1",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.request_token = request_token
        self.connect_token = connect_token or request_token
        self.language = language
        self.api_url = api_url.rstrip("/")
        self.connect_url = connect_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @staticmethod
    def parse_message(body: Any) -> Message:
        """Build a Message from a Bot Connector webhook body."""
        if not isinstance(body, dict) or not isinstance(body.get("message"), dict):
            raise InvalidPayloadError("Webhook body has no message")

        message = body["message"]
        conversation_id = message.get("conversation")
        if not conversation_id:
            raise InvalidPayloadError("Webhook message has no conversation id")

        attachment = message.get("attachment") or {}
        return Message(
            conversation_id=str(conversation_id),
            type=attachment.get("type", "text"),
            content=attachment.get("content"),
            sender_id=body.get("senderId"),
            chat_id=body.get("chatId"),
            participant=message.get("participant"),
            raw=body,
        )

    async def converse_text(
        self,
        text: str,
        conversation_token: Optional[str] = None,
    ) -> Conversation:
        """Send text to the NLU and return its conversation result."""
        payload: dict[str, Any] = {"text": text, "language": self.language}
        if conversation_token:
            payload["conversation_token"] = conversation_token

        data = await self._post(
            f"{self.api_url}/converse",
            token=self.request_token,
            json_body=payload,
        )
        results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(results, dict):
            raise NluError("NLU response has no results")

        return Conversation(
            replies=[r for r in results.get("replies") or [] if isinstance(r, str)],
            conversation_token=results.get("conversation_token"),
            action=results.get("action"),
            intents=results.get("intents") or [],
            raw=results,
        )

    async def send_messages(self, conversation_id: str, messages: list[dict]) -> None:
        """Post reply messages to a Bot Connector conversation."""
        if not messages:
            return
        await self._post(
            f"{self.connect_url}/conversations/{conversation_id}/messages",
            token=self.connect_token,
            json_body={"messages": messages},
        )
        logger.debug("Sent %d message(s) to conversation %s", len(messages), conversation_id)

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def _post(self, url: str, *, token: str, json_body: dict) -> Any:
        try:
            resp = await self._client.post(
                url,
                headers={"Authorization": f"Token {token}"},
                json=json_body,
            )
        except httpx.HTTPError as e:
            logger.error("NLU request to %s failed: %s", url, e)
            raise NluError(f"NLU request failed: {e}") from e

        if resp.status_code >= 400:
            logger.warning("NLU returned %s for %s: %s", resp.status_code, url, resp.text[:200])
            raise NluError(
                f"NLU returned HTTP {resp.status_code}",
                status_code=resp.status_code,
            )

        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as e:
            raise NluError("NLU returned invalid JSON") from e
