from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


# --- Auth ---


class MobileSignInRequest(BaseModel):
    provider: str
    id_token: str | None = None
    email: str | None = None
    name: str | None = None
    image: str | None = None
    provider_account_id: str | None = None


class RefreshRequest(BaseModel):
    refresh_token: str | None = None


# --- Chat ---


class ChatRequest(BaseModel):
    conversation_id: str | None = None
    message: str | None = None
    message_id: str | None = None
    attachments: list[dict[str, Any]] = Field(default_factory=list)
    referenced_conversations: list[Any] = Field(default_factory=list)
    referenced_folders: list[Any] = Field(default_factory=list)


class GuestChatRequest(ChatRequest):
    use_reasoning: str = "auto"


class TitleRequest(BaseModel):
    conversation_id: str | None = None
    message_content: str | None = None


class AgenticChatRequest(BaseModel):
    message: str | None = None
    conversation_id: str | None = None
    user_message_id: str | None = None
    assistant_message_id: str | None = None


# --- Conversations ---


class ConversationCreate(BaseModel):
    title: str = "New Conversation"
    project_id: str | None = None


class ConversationUpdate(BaseModel):
    title: str | None = None
    tags: list[str] | None = None
    is_pinned: bool | None = None
    project_id: str | None = None


class MessageCreate(BaseModel):
    role: str
    content: str
    attachments: list[dict[str, Any]] = Field(default_factory=list)
    referenced_conversations: list[Any] = Field(default_factory=list)
    referenced_folders: list[Any] = Field(default_factory=list)


class GuestConversationUpdate(ConversationUpdate):
    path: list[str] | None = None


class MessageDeleteRequest(BaseModel):
    message_ids: list[str] | None = None


class PinRequest(BaseModel):
    is_pinned: bool


class BranchRequest(BaseModel):
    conversation_id: str | None = None
    message_id: str | None = None


class MessageEditRequest(BaseModel):
    conversation_id: str | None = None
    message_id: str | None = None
    new_content: str | None = None
    attachments: list[dict[str, Any]] | None = None


class VersionSwitchRequest(BaseModel):
    conversation_id: str | None = None


# --- Folders & projects ---


class FolderCreate(BaseModel):
    name: str = ""
    description: str | None = None
    conversation_ids: list[str] = Field(default_factory=list)


class FolderUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    conversation_ids: list[str] | None = None


class FolderConversationRequest(BaseModel):
    conversation_id: str | None = None


class ProjectCreate(BaseModel):
    name: str
    description: str | None = None
    instructions: str | None = None
    attachments: list[dict[str, Any]] = Field(default_factory=list)


class ProjectUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    instructions: str | None = None
    attachments: list[dict[str, Any]] | None = None


# --- Sub-chats ---


class SubChatCreate(BaseModel):
    conversation_id: str | None = None
    source_message_id: str | None = None
    quoted_text: str | None = None
    source_message_content: str | None = None


class SubChatMessage(BaseModel):
    content: str | None = None


class SubChatAppend(BaseModel):
    role: str | None = None
    content: str | None = None


class SubChatStreamRequest(BaseModel):
    sub_chat_id: str | None = None
    quoted_text: str | None = None


# --- Tools ---


class SummarizerRequest(BaseModel):
    text: str = ""
    length: str = "standard"
    format: str = "paragraph"


class ParaphraserRequest(BaseModel):
    text: str = ""
    mode: str = "standard"


class GrammarRequest(BaseModel):
    text: str = ""
    tone: str = "neutral"


class TextRequest(BaseModel):
    text: str = ""


class BlogTitleRequest(BaseModel):
    topic: str = ""
    style: str = "viral"
    count: int = Field(default=10, ge=1, le=20)


class EmailSubjectRequest(BaseModel):
    content: str = ""


class InstagramCaptionRequest(BaseModel):
    description: str = ""
    vibe: str = "funny"


class MermaidFixRequest(BaseModel):
    code: str | None = None
    message_id: str | None = None
    conversation_id: str | None = None


class HumanizeRequest(BaseModel):
    text: str | None = None
