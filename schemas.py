# schemas.py
from enum import Enum
from pydantic import BaseModel, Field
from typing import Dict, Any, Optional, List, Literal


class Step(str, Enum):
    WELCOME = "welcome"
    SITE = "site"
    PRIORITY = "priority"
    ITEMS = "items"
    DISAMBIGUATE = "disambiguate"
    NOTES = "notes"
    CONFIRM = "confirm"
    SUBMITTED = "submitted"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


PRIORITIES = [p.value for p in Priority]


class MaterialRef(BaseModel):
    """Read-only catalog record as returned by the warehouse."""
    id: str
    item_name: Optional[str] = None
    material_name: Optional[str] = None
    category: Optional[str] = None
    unit: Optional[str] = None
    available_quantity: Optional[float] = None

    @property
    def display_name(self) -> str:
        return self.item_name or self.material_name or ""


class DraftItem(BaseModel):
    material_id: str
    material_name: str = ""
    quantity: int


class Draft(BaseModel):
    site_name: str = ""
    priority: Optional[Priority] = None
    items: List[DraftItem] = Field(default_factory=list)
    notes: str = ""

    def to_payload(self) -> Dict[str, Any]:
        """Wire shape expected by the submission sink."""
        return {
            "siteName": self.site_name,
            "priority": self.priority.value if self.priority else None,
            "items": [
                {"materialId": i.material_id, "materialName": i.material_name, "quantity": i.quantity}
                for i in self.items
            ],
            "notes": self.notes,
        }


class Message(BaseModel):
    id: str
    role: Literal["user", "assistant", "system"]
    content: str
    meta: Optional[Dict[str, Any]] = None


class PendingDisambiguation(BaseModel):
    base_token: str
    qty: int
    options: List[MaterialRef]


class ConversationState(BaseModel):
    step: Step = Step.WELCOME
    draft: Draft = Field(default_factory=Draft)
    pending: Optional[PendingDisambiguation] = None
    awaiting_categories: bool = False
    ai_mode: bool = False
    stream_mode: bool = False
    messages: List[Message] = Field(default_factory=list)
    ai_messages: List[Message] = Field(default_factory=list)


class Submitter(BaseModel):
    user_id: Optional[str] = None
    username: str = ""
    role: str = ""

    def to_meta(self) -> Dict[str, str]:
        return {"userId": self.user_id or "", "username": self.username, "role": self.role}


# --- HTTP bodies ---

class ChatMessage(BaseModel):
    message: str
    session_id: Optional[str] = None
    user_id: Optional[str] = None
    username: Optional[str] = None
    role: Optional[str] = None


class ChatResponse(BaseModel):
    responses: List[str]
    payload_preview: Optional[Dict[str, Any]] = None
    current_step: str
    completed: bool = False
    session_id: str
    ai_mode: bool = False
    stream_mode: bool = False


class ConversationView(BaseModel):
    session_id: str
    current_step: str
    messages: List[Message]
    payload_preview: Dict[str, Any]


class CompletionMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str


class CompletionRequest(BaseModel):
    messages: List[CompletionMessage]
    mode: str = "request"


class CompletionResponse(BaseModel):
    reply: str
    action: Optional[Dict[str, Any]] = None
