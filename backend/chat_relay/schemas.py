from typing import Optional, Any, List, Union
from pydantic import BaseModel, Field, field_validator


class ChatRelayRequest(BaseModel):
    bot_id: Union[str, int] = Field(..., description="Upstream bot to chat with; numeric ids are accepted")
    user_id: Union[str, int] = Field(..., description="Caller-scoped user identifier")
    additional_messages: List[Any] = Field(..., description="Ordered messages appended to the conversation")
    conversation_id: Optional[str] = Field(None, description="Continue an existing upstream conversation")
    stream: bool = Field(True, description="Relay as SSE when true, otherwise buffer into one JSON document")

    @field_validator("bot_id", "user_id")
    @classmethod
    def _non_empty_id(cls, value: Union[str, int]) -> str:
        # Upstream ids are strings; empty strings and 0 count as missing
        if isinstance(value, bool) or not value:
            raise ValueError("must be a non-empty string or number")
        return str(value)


REQUIRED_FIELDS_MESSAGE = "Missing required fields: bot_id, user_id, additional_messages[]"
