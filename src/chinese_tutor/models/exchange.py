"""Conversation exchange models and the completion endpoint contract."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class Exchange(BaseModel):
    """One learner utterance paired with the tutor's reply."""

    model_config = ConfigDict(frozen=True)

    user_text: str
    ai_text: str
    timestamp: datetime = Field(default_factory=datetime.now)


class ChatRequest(BaseModel):
    """Body of ``POST /api/chat``."""

    message: str
    history: list[Exchange] = Field(default_factory=list)


class ChatResponse(BaseModel):
    response: str


class ChatError(BaseModel):
    error: str
