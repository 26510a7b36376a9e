"""
AI assistant endpoints
Chat about the account's campaigns, with a rule-based fallback
"""
import json
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from typing import Dict, List, Optional
from pydantic import BaseModel

from adpilot.api.auth import require_user
from adpilot.models.user import User
from adpilot.services.llm_service import LLMService, fallback_response
from adpilot.config import get_settings
from adpilot.utils.logger import log

router = APIRouter(prefix="/api/ai", tags=["ai"])

llm_service = LLMService()


class ChatMessage(BaseModel):
    role: str = "user"
    content: str = ""


class ChatRequest(BaseModel):
    messages: List[ChatMessage] = []
    campaigns: Optional[List[Dict]] = None


def _messages(body: ChatRequest) -> List[Dict]:
    messages = [m.model_dump() for m in body.messages if m.content]
    if not messages:
        raise HTTPException(status_code=400, detail="Messages required")
    return messages


@router.get("/status")
async def get_status(user: User = Depends(require_user)):
    available = llm_service.is_available()
    return {
        "available": available,
        "model": get_settings().llm_model if available else None,
        "message": "AI assistant is ready" if available else "AI assistant not configured - using rule-based answers",
    }


@router.post("/chat")
async def chat(body: ChatRequest, user: User = Depends(require_user)):
    """
    Example: {"messages": [{"role": "user", "content": "Which campaigns waste budget?"}]}
    """
    messages = _messages(body)
    try:
        reply = llm_service.chat(messages, body.campaigns)
        if reply is not None:
            return {"message": reply, "source": "llm"}
        return {"message": fallback_response(messages, body.campaigns), "source": "fallback"}
    except Exception as e:
        log.error(f"Error in AI chat: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/chat-stream")
async def chat_stream(body: ChatRequest, user: User = Depends(require_user)):
    """Server-sent events: data: {"content": ...} frames, then data: [DONE]"""
    messages = _messages(body)

    def events():
        for text in llm_service.stream_chat(messages, body.campaigns):
            yield f"data: {json.dumps({'content': text})}\n\n"
        yield "data: [DONE]\n\n"

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )
