"""
Wire schema for /groq. Roles and styles are closed sets: anything else is
rejected at the boundary instead of being forwarded to the provider.
"""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class OutputStyle(str, Enum):
    SHORT = "short"
    LONG = "long"


class ChatTurn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    role: Role
    content: str


class CompletionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    history: List[ChatTurn] = Field(default_factory=list)
    prompt: Optional[str] = None
    output_style: OutputStyle = Field(OutputStyle.SHORT, alias="outputStyle")


class TranscriptionResponse(BaseModel):
    text: str


class ErrorResponse(BaseModel):
    error: str
