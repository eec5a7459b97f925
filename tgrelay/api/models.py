"""Request and response bodies for the control API."""

from __future__ import annotations

from pydantic import BaseModel, Field, ValidationError


class SendMessageRequest(BaseModel):
    # Kept as a string on the wire; parsed into a 64-bit id by the handler
    chat_id: str = Field(min_length=1)
    message: str = Field(min_length=1)


class BroadcastRequest(BaseModel):
    message: str = Field(min_length=1)


class SendMessageResponse(BaseModel):
    success: bool
    message: str
    chat_id: int | None = None


class BroadcastResponse(BaseModel):
    success: bool
    message: str
    success_count: int = 0
    fail_count: int = 0


class ChatsResponse(BaseModel):
    success: bool = True
    message: str
    chat_ids: list[int]
    count: int


class HealthResponse(BaseModel):
    status: str = "ok"
    message: str


def describe_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"])
        parts.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return "; ".join(parts)
