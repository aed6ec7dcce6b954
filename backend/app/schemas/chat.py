from pydantic import BaseModel, Field, field_validator
from typing import Literal

from app.models.chat import MAX_MESSAGE_LENGTH


def _strip(v):
    return v.strip() if isinstance(v, str) else v


class InitiateConversation(BaseModel):
    pitch_id: str
    message: str = Field(..., min_length=1, max_length=MAX_MESSAGE_LENGTH)

    _strip_message = field_validator('message', mode='before')(_strip)


class SendMessage(BaseModel):
    content: str = Field(..., min_length=1, max_length=MAX_MESSAGE_LENGTH)
    message_type: Literal["text", "image", "file"] = "text"

    _strip_content = field_validator('content', mode='before')(_strip)
