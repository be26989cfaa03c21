"""
Narration request schemas — what the classifier sees and what the prompt builder gets.
"""

from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field


class Category(Enum):
    """Mutually exclusive outcomes of classifying one inbound message."""

    SECRET_ACTION = "secret_action"
    ACTION = "action"                  # collected, then narrated
    EVENT = "event"                    # collected, then turned into context
    TIME_ADVANCE = "time_advance"
    DIPLOMACY = "diplomacy"
    CONTEXT_HYGIENE = "context_hygiene"
    MENTION_QA = "mention_qa"


class WindowKind(Enum):
    """Which collection window class a window belongs to."""

    ACTION = "action"
    EVENT = "event"


class MessageFacts(BaseModel):
    """Everything the classifier needs from a Discord message.

    parent_id is the thread's parent channel, or the category of a plain
    channel. grandparent_id is the category of a thread's parent channel.
    """

    author_id: str
    author_is_bot: bool = False
    author_role_ids: List[str] = []
    channel_id: str
    parent_id: Optional[str] = None
    grandparent_id: Optional[str] = None
    channel_type: str = "text"
    clean_content: str = ""
    content: str = ""
    mentions_bot: bool = False


class NarrationRequest(BaseModel):
    """Built when a window closes (or immediately for diplomacy / Q&A). Never persisted."""

    category: Category
    guild_name: str = ""
    player: str = ""
    action_text: str = ""
    current_date: str = ""
    roster: str = ""
    wars: str = ""
    context: str = ""
    extra_prompt: str = ""
    chat_history: str = ""
    image_urls: List[str] = Field(default_factory=list)
