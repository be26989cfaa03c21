"""
Pydantic v2 data models — the contract for guild settings, world state and model replies.

Every write to MongoDB and every model reply passes through these models first.
If validation fails, nothing is written or applied.
"""

from models.guild_config import (
    GuildRoleplayConfig,
    GuildSetup,
    GuildChannels,
    GuildRoles,
    GuildPreferences,
    GuildServerSettings,
)
from models.world_state import Player, War, ContextEntry
from models.narration import Category, WindowKind, MessageFacts, NarrationRequest
from models.directives import (
    NarrationDirective,
    EventDirective,
    DiplomacyDirective,
    DiplomacyKind,
    REQUIRED_FIELDS,
)

__all__ = [
    "GuildRoleplayConfig",
    "GuildSetup",
    "GuildChannels",
    "GuildRoles",
    "GuildPreferences",
    "GuildServerSettings",
    "Player",
    "War",
    "ContextEntry",
    "Category",
    "WindowKind",
    "MessageFacts",
    "NarrationRequest",
    "NarrationDirective",
    "EventDirective",
    "DiplomacyDirective",
    "DiplomacyKind",
    "REQUIRED_FIELDS",
]
