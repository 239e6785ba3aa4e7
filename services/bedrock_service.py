# services/bedrock_service.py
import boto3
import json
import logging
from botocore.exceptions import BotoCoreError, ClientError
from typing import Dict, Iterator, List
from config import load_settings
from services.action_stream import split_action, OPEN_MARKER, CLOSE_MARKER

logger = logging.getLogger(__name__)

BASE_PROMPT = """You are the assistant of a warehouse material request tool used by site engineers.
Help the user assemble a material request: a site name, a priority (low, medium, high or urgent),
a list of materials with quantities, and optional notes. Keep replies short and practical.
A system message at the end of the conversation shows the current draft and dialogue step."""

ACTION_PROMPT = f"""
When the user's message states or changes request details, end your reply with exactly one block:
{OPEN_MARKER}{{"action": "create_request", "siteName": "...", "priority": "high", "items": [{{"materialId": "MTR-1001", "quantity": 5}}], "notes": "..."}}{CLOSE_MARKER}
Include only the fields the user actually gave. Use "materialName" instead of "materialId" when no id is known.
Never mention the block or its format in the visible reply."""


class BedrockError(Exception):
    pass


class BedrockService:
    """Completion backend: Anthropic models on AWS Bedrock."""

    def __init__(self, client=None, model_id: str = None, max_tokens: int = 1000):
        settings = load_settings()
        self.client = client or boto3.client(
            'bedrock-runtime',
            region_name=settings.aws_region,
            aws_access_key_id=settings.aws_access_key_id or None,
            aws_secret_access_key=settings.aws_secret_access_key or None,
        )
        self.model_id = model_id or settings.model_id
        self.max_tokens = max_tokens

    def _body(self, messages: List[Dict[str, str]], mode: str) -> str:
        system_parts = [BASE_PROMPT + (ACTION_PROMPT if mode == "request" else "")]
        turns = []
        for m in messages:
            role, content = m.get("role"), str(m.get("content") or "")
            if role == "system":
                system_parts.append(content)
            elif role in ("user", "assistant"):
                if turns and turns[-1]["role"] == role:
                    turns[-1]["content"] += "\n\n" + content
                else:
                    turns.append({"role": role, "content": content})
        # The Messages API requires the first turn to come from the user
        while turns and turns[0]["role"] != "user":
            turns.pop(0)
        if not turns:
            raise BedrockError("No user message to answer")
        return json.dumps({
            "anthropic_version": "bedrock-2023-05-31",
            "max_tokens": self.max_tokens,
            "system": "\n\n".join(system_parts),
            "messages": turns,
            "temperature": 0.2,
        })

    def chat(self, messages: List[Dict[str, str]], mode: str = "request") -> dict:
        """Single-shot completion returning {"reply", "action"}."""
        body = self._body(messages, mode)
        try:
            response = self.client.invoke_model(modelId=self.model_id, body=body)
            result_body = json.loads(response['body'].read())
        except (BotoCoreError, ClientError, ValueError) as e:
            logger.error("Error calling Bedrock: %s", e)
            raise BedrockError(str(e)) from e

        text = "".join(
            block.get("text", "") for block in result_body.get("content", []) if block.get("type") == "text"
        )
        reply, action = split_action(text)
        return {"reply": reply.strip(), "action": action}

    def chat_stream(self, messages: List[Dict[str, str]], mode: str = "request") -> Iterator[str]:
        """Yield raw model text as it arrives, action markers included."""
        body = self._body(messages, mode)
        try:
            response = self.client.invoke_model_with_response_stream(modelId=self.model_id, body=body)
        except (BotoCoreError, ClientError) as e:
            logger.error("Error opening Bedrock stream: %s", e)
            raise BedrockError(str(e)) from e
        return self._iter_text(response["body"])

    @staticmethod
    def _iter_text(events) -> Iterator[str]:
        try:
            for event in events:
                chunk = event.get("chunk")
                if not chunk:
                    continue
                data = json.loads(chunk["bytes"])
                if data.get("type") != "content_block_delta":
                    continue
                delta = data.get("delta", {})
                if delta.get("type") == "text_delta" and delta.get("text"):
                    yield delta["text"]
        except (BotoCoreError, ClientError, ValueError) as e:
            logger.error("Bedrock stream interrupted: %s", e)
            yield "\n[Error] Model stream interrupted."
