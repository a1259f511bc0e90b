from __future__ import annotations

from pydantic import BaseModel, Field


class ModelCard(BaseModel):
    id: str
    object: str = "model"
    owned_by: str | None = None


class ModelList(BaseModel):
    object: str = Field(..., description="Always 'list' for OpenAI-compatible servers")
    data: list[ModelCard] = Field(default_factory=list)


class ChatMessage(BaseModel):
    role: str
    content: str | None = None


class ChatChoice(BaseModel):
    index: int = 0
    message: ChatMessage
    finish_reason: str | None = None


class Usage(BaseModel):
    prompt_tokens: int = Field(0, ge=0)
    completion_tokens: int = Field(0, ge=0)
    total_tokens: int = Field(0, ge=0)


class ChatCompletion(BaseModel):
    id: str | None = None
    model: str | None = None
    choices: list[ChatChoice] = Field(..., min_length=1)
    usage: Usage | None = None


class ChatRequest(BaseModel):
    model: str
    messages: list[ChatMessage]
    max_tokens: int = Field(32, ge=1, le=4096)
    temperature: float = Field(0.1, ge=0.0, le=2.0)
