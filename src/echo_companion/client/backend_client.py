"""HTTP client for the chat backend."""

from typing import Any, Dict, Optional

import httpx

from ..core.exceptions import InvalidInput, UpstreamTimeout, UpstreamUnavailable
from ..core.logging import get_logger

logger = get_logger(__name__)


class ChatBackendClient:
    """Sends one message to ``POST /chat`` and returns the reply text."""

    def __init__(
        self,
        base_url: str,
        timeout_s: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout_s,
                headers={"Accept": "application/json"},
            )
        return self._client

    async def send(self, message: str, session_id: Optional[str] = None) -> str:
        """Send ``message`` and return the agent reply.

        Raises:
            InvalidInput: on HTTP 400.
            UpstreamUnavailable: on timeout, transport error, any other non-200
                status or a malformed body.
        """
        payload: Dict[str, Any] = {"message": message}
        if session_id:
            payload["sessionId"] = session_id

        try:
            response = await self._get_client().post("/chat", json=payload)
        except httpx.TimeoutException as e:
            raise UpstreamTimeout(self.timeout_s, component="backend_client") from e
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(
                "Chat backend unreachable", reason=str(e), component="backend_client"
            ) from e

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if response.status_code == 400:
            raise InvalidInput(
                str(body.get("error", "Message is required")), component="backend_client"
            )
        if response.status_code != 200:
            logger.warning(
                "Chat backend error", status_code=response.status_code, body=body
            )
            raise UpstreamUnavailable(
                str(body.get("error", f"HTTP error! status: {response.status_code}")),
                component="backend_client",
            )

        reply = body.get("reply")
        if not isinstance(reply, str):
            raise UpstreamUnavailable(
                "Chat backend returned no reply", component="backend_client"
            )
        return reply

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None
