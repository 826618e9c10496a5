from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

Role = Literal["user", "assistant"]


class ChatMessageSchema(BaseModel):
    model_config = ConfigDict(extra="ignore", from_attributes=True)

    role: Role
    content: str
    timestamp: Optional[datetime] = None


class ChatThreadSchema(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: int
    analysis_id: int
    message_count: int
    remaining_turns: int
    updated_at: Optional[datetime] = None
    messages: List[ChatMessageSchema] = []


class ChatResponse(BaseModel):
    response: str
