# main.py
import uuid
import logging
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from config import load_settings
from schemas import (
    ChatMessage, ChatResponse, CompletionRequest, CompletionResponse, ConversationView, Step, Submitter,
)
from controllers.material_request_agent import MaterialRequestAgent
from services.bedrock_service import BedrockService, BedrockError

settings = load_settings()
if not logging.getLogger().handlers:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

app = FastAPI(title="Material Request Assistant", version="1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# In-memory conversations (use Redis in production)
sessions = {}
_bedrock = None


def create_agent(user):
    return MaterialRequestAgent(user=user).start()


def get_bedrock():
    global _bedrock
    if _bedrock is None:
        _bedrock = BedrockService()
    return _bedrock


def _get_agent(session_id: str) -> MaterialRequestAgent:
    session = sessions.get(session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Unknown session")
    return session["agent"]


@app.post("/chat", response_model=ChatResponse)
def chat(request: ChatMessage):
    session_id = request.session_id or str(uuid.uuid4())
    if session_id not in sessions:
        user = None
        if request.user_id:
            user = Submitter(user_id=request.user_id, username=request.username or "", role=request.role or "")
        sessions[session_id] = {"agent": create_agent(user)}

    agent = sessions[session_id]["agent"]
    if agent.processing:
        raise HTTPException(status_code=409, detail="Still processing the previous message")
    responses = agent.process(request.message)
    state = agent.state

    return ChatResponse(
        responses=responses,
        payload_preview=state.draft.to_payload(),
        current_step=state.step.value,
        completed=state.step == Step.SUBMITTED,
        session_id=session_id,
        ai_mode=state.ai_mode,
        stream_mode=state.stream_mode,
    )


@app.get("/chat/{session_id}", response_model=ConversationView)
def conversation(session_id: str):
    agent = _get_agent(session_id)
    return ConversationView(
        session_id=session_id,
        current_step=agent.state.step.value,
        messages=agent.state.messages,
        payload_preview=agent.state.draft.to_payload(),
    )


@app.post("/api/assistant/chat", response_model=CompletionResponse)
def assistant_chat(request: CompletionRequest):
    messages = [m.model_dump() for m in request.messages]
    try:
        result = get_bedrock().chat(messages, request.mode)
    except BedrockError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return CompletionResponse(**result)


@app.post("/api/assistant/chat/stream")
def assistant_chat_stream(request: CompletionRequest):
    messages = [m.model_dump() for m in request.messages]
    try:
        chunks = get_bedrock().chat_stream(messages, request.mode)
    except BedrockError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return StreamingResponse(chunks, media_type="text/plain; charset=utf-8")


@app.get("/")
async def root():
    return {"message": "Material Request Assistant is running!"}
