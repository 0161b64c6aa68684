"""Chat message models, validated at the provider boundary."""
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter


class SystemMessage(BaseModel):
    role: Literal["system"] = "system"
    content: str


class UserMessage(BaseModel):
    role: Literal["user"] = "user"
    content: str


class AssistantMessage(BaseModel):
    role: Literal["assistant"] = "assistant"
    content: str


ChatMessage = Annotated[
    Union[SystemMessage, UserMessage, AssistantMessage],
    Field(discriminator="role"),
]

_message_list = TypeAdapter(list[ChatMessage])


def parse_messages(raw: list[dict]) -> list[ChatMessage]:
    """Validate loosely-typed message dicts (e.g. conversation history)."""
    return _message_list.validate_python(raw)


def to_payload(messages: list[ChatMessage]) -> list[dict]:
    """Convert messages to the provider wire format."""
    return [m.model_dump() for m in messages]


class Usage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class Completion(BaseModel):
    """Generated message returned by the chat provider."""
    content: str
    usage: Usage = Field(default_factory=Usage)
    model: str = ""
