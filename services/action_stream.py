# services/action_stream.py
"""Incremental separation of display text from embedded action JSON.

The completion endpoint may embed a structured action anywhere in its reply:

    Sure, I'll add that. [ACTION_JSON]{"action": "create_request"}[/ACTION_JSON]

``ActionStreamParser`` consumes the reply chunk by chunk and yields two
channels: display text (returned from ``feed``/``close``) and the deferred
action (``parser.action``, available once the stream has ended). A marker may
be split across any number of chunks; text that could still turn out to be the
start of a marker is held back until the next chunk settles it.
"""
import json
import logging
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

OPEN_MARKER = "[ACTION_JSON]"
CLOSE_MARKER = "[/ACTION_JSON]"


def _partial_suffix(text: str, marker: str) -> int:
    """Length of the longest suffix of ``text`` that is a proper prefix of ``marker``."""
    for size in range(min(len(text), len(marker) - 1), 0, -1):
        if marker.startswith(text[-size:]):
            return size
    return 0


def _decode_action(payload: str) -> Optional[dict]:
    payload = payload.strip()
    if payload.startswith("```"):
        payload = payload.strip("`")
        if payload.lower().startswith("json"):
            payload = payload[4:]
    if not payload:
        return None
    try:
        action = json.loads(payload)
    except ValueError:
        logger.warning("Discarding malformed action JSON: %.80s", payload)
        return None
    return action if isinstance(action, dict) else None


class ActionStreamParser:
    def __init__(self):
        self.raw = ""
        self.display = ""
        self.action: Optional[dict] = None
        self._buffer = ""
        self._payload: Optional[str] = None  # not None while inside a block

    def feed(self, chunk: str) -> str:
        """Consume a chunk, return the display text it settles (possibly empty)."""
        if not chunk:
            return ""
        self.raw += chunk
        self._buffer += chunk
        out = []
        while True:
            if self._payload is None:
                idx = self._buffer.find(OPEN_MARKER)
                if idx == -1:
                    cut = len(self._buffer) - _partial_suffix(self._buffer, OPEN_MARKER)
                    out.append(self._buffer[:cut])
                    self._buffer = self._buffer[cut:]
                    break
                out.append(self._buffer[:idx])
                self._buffer = self._buffer[idx + len(OPEN_MARKER):]
                self._payload = ""
            else:
                idx = self._buffer.find(CLOSE_MARKER)
                if idx == -1:
                    cut = len(self._buffer) - _partial_suffix(self._buffer, CLOSE_MARKER)
                    self._payload += self._buffer[:cut]
                    self._buffer = self._buffer[cut:]
                    break
                self._payload += self._buffer[:idx]
                self._buffer = self._buffer[idx + len(CLOSE_MARKER):]
                self._finish_block()
        text = "".join(out)
        self.display += text
        return text

    def close(self) -> str:
        """Flush at end of stream. An unterminated block is parsed but never shown."""
        if self._payload is not None:
            self._buffer = ""
            self._finish_block()
            return ""
        tail, self._buffer = self._buffer, ""
        self.display += tail
        return tail

    def _finish_block(self):
        payload, self._payload = self._payload, None
        action = _decode_action(payload)
        if action is not None:
            # last complete block wins
            self.action = action


def split_action(text: str) -> Tuple[str, Optional[dict]]:
    parser = ActionStreamParser()
    parser.feed(text)
    parser.close()
    return parser.display, parser.action
