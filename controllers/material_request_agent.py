# controllers/material_request_agent.py
import uuid
import logging
import threading
from typing import List, Optional
from config import load_settings
from schemas import ConversationState, Message, Step, Submitter
from services.warehouse_api import WarehouseAPI, WarehouseAPIError
from services.assistant_client import AssistantClient
from services.assistant_sessions import SessionStoreClient, SessionLogger
from controllers.commands import parse_command
from controllers.matching import CatalogIndex
from controllers.ai_actions import CREATE_REQUEST
from controllers.submission_gate import authorize, submit
from controllers.dialogue import (
    EFFECT_END_SESSION, EFFECT_NEW_SESSION, EFFECT_SUBMIT, WELCOME_TEXT,
    apply_ai_action, build_ai_prompt, initial_state, mark_submitted, reset_draft, transition,
)

logger = logging.getLogger(__name__)

STREAM_PLACEHOLDER = "[AI] (streaming...)"


class MaterialRequestAgent:
    """One conversation: dialogue state, catalog snapshot and session log.

    Callers must not start a turn while ``processing`` is set.
    """

    def __init__(self, user: Optional[Submitter] = None, api=None, chat=None, store=None,
                 reset_delay: Optional[float] = None):
        self.user = user
        self.api = api or WarehouseAPI()
        self.chat = chat or AssistantClient()
        self.store = store or SessionStoreClient()
        self.reset_delay = load_settings().submit_reset_delay if reset_delay is None else reset_delay
        self.session_log = SessionLogger(self.store)
        self.catalog = CatalogIndex()
        self.state: ConversationState = initial_state()
        self.processing = False
        self._turn_replies: List[Message] = []
        # guards the hand-off between a turn and the post-submit reset timer
        self._lock = threading.Lock()
        self._reset_due = False

    @property
    def session_id(self) -> Optional[str]:
        return self.session_log.session_id

    def start(self) -> "MaterialRequestAgent":
        self.catalog = CatalogIndex.load(self.api)
        self.state.messages = [Message(id="welcome", role="assistant", content=WELCOME_TEXT)]
        if self.user and self.user.user_id:
            try:
                self.session_log.session_id = self.store.start_session(self.user.user_id)
            except WarehouseAPIError as e:
                logger.error("Failed to start session: %s", e)
            self.session_log.log("assistant", "Session started")
        return self

    def process(self, user_text: str) -> List[str]:
        """Run one turn and return the assistant replies it produced."""
        text = user_text.strip()
        if not text:
            return []
        with self._lock:
            self.processing = True
        self._turn_replies = []
        try:
            self._push("user", text)
            snapshot = self.state.model_copy(deep=True)
            try:
                self._handle(text)
            except Exception as e:
                logger.exception("Unexpected failure while handling %r", text)
                self.state = snapshot
                self._turn_replies = []
                self._push("assistant", f"[Error] {e}")
        finally:
            with self._lock:
                self.processing = False
                if self._reset_due:
                    self._reset_due = False
                    self._reset_after_submit()
        return [m.content for m in self._turn_replies]

    def _push(self, role: str, content: str, action: Optional[str] = None, log: bool = True) -> Message:
        msg = Message(id=uuid.uuid4().hex, role=role, content=content, meta={"action": action} if action else None)
        self.state.messages.append(msg)
        if role == "assistant":
            self._turn_replies.append(msg)
        if log:
            self.session_log.log(role, content, action)
        return msg

    def _handle(self, text: str):
        turn = transition(self.state, parse_command(text), self.catalog)
        self.state = turn.state
        for reply in turn.replies:
            self._push("assistant", reply)

        if turn.effect == EFFECT_SUBMIT:
            self._submit()
        elif turn.effect == EFFECT_END_SESSION:
            self._end_session()
        elif turn.effect == EFFECT_NEW_SESSION:
            self._new_session()

        if turn.fallback and self.state.ai_mode:
            self._augment(text)

    # --- submission ---

    def _submit(self):
        problem = authorize(self.user)
        if problem:
            self._push("assistant", problem)
            return
        try:
            submit(self.state.draft, self.user, self.api)
        except Exception as e:
            logger.warning("Submission failed: %s", e)
            self._push("assistant", f"Submission failed: {e}")
            return
        self.state = mark_submitted(self.state)
        self._push("assistant", "Request submitted successfully ✅", action="submit_request")
        if self.reset_delay <= 0:
            self._reset_after_submit()
        else:
            timer = threading.Timer(self.reset_delay, self._on_reset_timer)
            timer.daemon = True
            timer.start()

    def _on_reset_timer(self):
        with self._lock:
            if self.processing:
                # applied by process() once the running turn has settled
                self._reset_due = True
                return
            self._reset_after_submit()

    def _reset_after_submit(self):
        if self.state.step != Step.SUBMITTED:
            return
        self.state = reset_draft(self.state)
        self._push("assistant", "You can start a new request. Provide site name.")

    # --- session lifecycle ---

    def _end_session(self):
        if not self.session_log.active:
            self._push("assistant", "No active session.")
            return
        try:
            self.store.update_session(self.session_id, "closed")
        except WarehouseAPIError:
            self._push("assistant", "Failed to end session (already closed or network issue).")
            return
        self._push("assistant", 'Session ended. Type "new session" to start a fresh one.')
        self.session_log.session_id = None

    def _new_session(self):
        if not (self.user and self.user.user_id):
            self._push("assistant", "You must be logged in to start a session.")
            return
        if self.session_log.active:
            try:
                self.store.update_session(self.session_id, "closed")
            except WarehouseAPIError as e:
                logger.debug("Could not close session %s: %s", self.session_id, e)
        try:
            session_id = self.store.start_session(self.user.user_id)
        except WarehouseAPIError:
            self._push("assistant", "Could not start new session.")
            return
        self.session_log.session_id = session_id
        state = reset_draft(self.state)
        state.awaiting_categories = False
        state.ai_messages = []
        state.messages = [Message(id="welcome", role="assistant",
                                  content="New session started. Provide the site name to begin.")]
        self.state = state
        self._push("assistant", "Ready. Provide a site name.")

    # --- AI augmentation ---

    def _augment(self, text: str):
        prompt = build_ai_prompt(self.state, text)
        self.state.ai_messages.append(Message(id=uuid.uuid4().hex, role="user", content=text))
        try:
            if self.state.stream_mode:
                action = self._stream_reply(prompt)
            else:
                response = self.chat.send_chat(prompt)
                reply = response.get("reply", "")
                self.state.ai_messages.append(Message(id=uuid.uuid4().hex, role="assistant", content=reply))
                self._push("assistant", f"[AI] {reply}")
                action = response.get("action")
            self._apply_action(action)
        except Exception as e:
            # AI is advisory: any failure becomes a transcript line
            logger.warning("AI augmentation failed: %s", e)
            self._push("assistant", f"[AI Error] {e}")

    def _stream_reply(self, prompt) -> Optional[dict]:
        ai_msg = Message(id=uuid.uuid4().hex, role="assistant", content="")
        self.state.ai_messages.append(ai_msg)
        placeholder = self._push("assistant", STREAM_PLACEHOLDER, log=False)
        assembled = []

        def on_chunk(chunk: str):
            assembled.append(chunk)
            ai_msg.content = "".join(assembled)
            placeholder.content = f"[AI] {ai_msg.content}"

        try:
            result = self.chat.send_chat_stream(prompt, on_chunk)
        finally:
            self.session_log.log("assistant", placeholder.content)
        return result.get("action")

    def _apply_action(self, action: Optional[dict]):
        if not action or action.get("action") != CREATE_REQUEST:
            return
        self.state, updates = apply_ai_action(self.state, action, self.catalog)
        if updates:
            self._push("assistant", "[AI] Applied: " + ", ".join(updates), action=CREATE_REQUEST)
        if self.state.step == Step.CONFIRM:
            self._push("assistant", '[AI] Detected submission intent. Type "submit" to finalize or continue editing.')
