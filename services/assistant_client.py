# services/assistant_client.py
import logging
import requests
from typing import Callable, Dict, List, Optional
from config import load_settings
from services.action_stream import ActionStreamParser

logger = logging.getLogger(__name__)


class AssistantClientError(Exception):
    pass


class AssistantClient:
    """Client for the language-model completion endpoints.

    ``send_chat`` returns one JSON object; ``send_chat_stream`` consumes a
    chunked text response and keeps any embedded action JSON out of the text
    handed to ``on_chunk``.
    """

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None, http=None):
        settings = load_settings()
        self.base_url = (base_url or settings.assistant_api_base).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.assistant_timeout
        self.http = http or requests.Session()

    def send_chat(self, messages: List[Dict[str, str]], mode: str = "request") -> dict:
        logger.info("[API CALL] → chat (%d messages)", len(messages))
        try:
            res = self.http.post(
                f"{self.base_url}/api/assistant/chat",
                json={"messages": messages, "mode": mode},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise AssistantClientError(f"Chat request failed: {e}") from e
        if not res.ok:
            raise AssistantClientError(f"Chat request failed: {res.status_code}")
        try:
            data = res.json()
        except ValueError as e:
            raise AssistantClientError("Chat response was not valid JSON") from e
        if not isinstance(data, dict):
            raise AssistantClientError("Chat response was not a JSON object")
        action = data.get("action")
        return {
            "reply": str(data.get("reply") or ""),
            "action": action if isinstance(action, dict) else None,
        }

    def send_chat_stream(self, messages: List[Dict[str, str]], on_chunk: Callable[[str], None]) -> dict:
        logger.info("[API CALL] → chat stream (%d messages)", len(messages))
        parser = ActionStreamParser()
        try:
            with self.http.post(
                f"{self.base_url}/api/assistant/chat/stream",
                json={"messages": messages},
                timeout=self.timeout,
                stream=True,
            ) as res:
                if not res.ok:
                    raise AssistantClientError(f"Chat stream failed: {res.status_code}")
                if not res.encoding:
                    res.encoding = "utf-8"
                for chunk in res.iter_content(chunk_size=None, decode_unicode=True):
                    text = parser.feed(chunk)
                    if text:
                        on_chunk(text)
        except requests.RequestException as e:
            raise AssistantClientError(f"Chat stream failed: {e}") from e
        tail = parser.close()
        if tail:
            on_chunk(tail)
        logger.info("[API RESPONSE] ← streamed %d chars, action=%s", len(parser.raw), bool(parser.action))
        return {"full": parser.raw, "action": parser.action}
