# services/assistant_sessions.py
import logging
from typing import Optional
from services.warehouse_api import BackendClient, WarehouseAPIError

logger = logging.getLogger(__name__)


class SessionStoreClient(BackendClient):
    """Server-persisted conversation log (one record per session, messages beneath it)."""

    def start_session(self, user_id: str) -> str:
        data = self._post("/api/assistant/sessions", {"userId": user_id, "status": "active"})
        session_id = data.get("id") if isinstance(data, dict) else None
        if not session_id:
            raise WarehouseAPIError("Session store returned no session id")
        logger.info("[API RESPONSE] ← started assistant session %s", session_id)
        return str(session_id)

    def save_message(self, session_id: str, role: str, content: str, action_type: Optional[str] = None):
        record = {"role": role, "content": content}
        if action_type:
            record["actionType"] = action_type
        self._post(f"/api/assistant/sessions/{session_id}/messages", record)

    def update_session(self, session_id: str, status: str):
        self._patch(f"/api/assistant/sessions/{session_id}", {"status": status})


class SessionLogger:
    """Best-effort mirror of the transcript into the session store.

    Logging never affects the dialogue: every failure is swallowed here.
    """

    def __init__(self, store: SessionStoreClient, session_id: Optional[str] = None):
        self.store = store
        self.session_id = session_id

    @property
    def active(self) -> bool:
        return self.session_id is not None

    def log(self, role: str, content: str, action_type: Optional[str] = None):
        if not self.session_id:
            return
        try:
            self.store.save_message(self.session_id, role, content, action_type)
        except Exception as e:
            logger.debug("Session log write failed for %s: %s", self.session_id, e)
