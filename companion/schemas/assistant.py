"""Schemas for the legal assistant."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class ChatTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str = Field(..., min_length=1, max_length=8000)


class AssistantRequest(BaseModel):
    """Conversation so far; the last turn must come from the user."""

    messages: list[ChatTurn] = Field(..., min_length=1, max_length=40)
    focus_mode: Literal["general", "contracts", "litigation", "compliance"] = "general"
    tone: Literal["formal", "friendly"] = "formal"
    expertise_level: Literal["beginner", "expert"] = "beginner"
    project_id: str | None = Field(
        default=None,
        description="Ground the answer on this project's documents.",
    )


class AssistantReply(BaseModel):
    reply: str = Field(..., description="Answer in Markdown.")
    suggestions: list[str] = Field(
        default_factory=list,
        description="Follow-up questions the user may ask next.",
    )
    disclaimer: str = Field(
        default=(
            "This answer is general legal information, not legal advice. "
            "Consult a qualified lawyer for your specific situation."
        ),
    )
