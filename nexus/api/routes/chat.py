"""Text-generation passthrough route."""
from typing import Any, List, Literal

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from nexus.api.deps import get_text_client
from nexus.providers.text_generation import TextGenerationClient

router = APIRouter()


class ChatTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: Any = Field(...)  # string or content blocks, forwarded as-is


class ChatRequest(BaseModel):
    system: str = ""
    messages: List[ChatTurn] = Field(default_factory=list)


@router.post("/chat")
async def chat(body: ChatRequest, client: TextGenerationClient = Depends(get_text_client)):
    """Forward {system, messages} and relay the provider's status and JSON."""
    turns = [t.model_dump() for t in body.messages]
    status_code, data = await client.create_message(body.system, turns)
    return JSONResponse(status_code=status_code, content=data)
