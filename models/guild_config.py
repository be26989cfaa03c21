"""
Guild configuration schemas — the per-server roleplay settings.

Documents are written by the setup flow (outside this bot process) and are
read-only here. Discord snowflakes are kept as strings because that is how
the setup flow stores them; ints are coerced on the way in.
"""

from typing import List, Optional
from pydantic import BaseModel, Field, field_validator


def _as_id(value):
    if value is None or value == "":
        return None
    return str(value)


def _as_id_list(value):
    if value is None:
        return []
    if isinstance(value, (str, int)):
        value = [value]
    return [str(v) for v in value if v not in (None, "")]


class GuildChannels(BaseModel):
    """Channel-role mapping. List fields accept a single id or a list."""

    actions: List[str] = []
    country_category: List[str] = []
    events: List[str] = []
    diplomacy: List[str] = []
    time: List[str] = []
    context: List[str] = []
    secret_actions: List[str] = []
    narrations: Optional[str] = None
    war: Optional[str] = None
    secret_actions_log: Optional[str] = None

    @field_validator(
        "actions", "country_category", "events", "diplomacy",
        "time", "context", "secret_actions",
        mode="before",
    )
    @classmethod
    def coerce_id_list(cls, v):
        return _as_id_list(v)

    @field_validator("narrations", "war", "secret_actions_log", mode="before")
    @classmethod
    def coerce_id(cls, v):
        return _as_id(v)

    model_config = {"extra": "allow"}


class GuildRoles(BaseModel):
    player: Optional[str] = None

    @field_validator("player", mode="before")
    @classmethod
    def coerce_id(cls, v):
        return _as_id(v)

    model_config = {"extra": "allow"}


class GuildPreferences(BaseModel):
    """Numeric and free-text preferences. Defaults match the setup flow's."""

    min_action_length: int = Field(default=500, ge=0)
    min_event_length: int = Field(default=256, ge=0)
    min_diplomacy_length: int = Field(default=200, ge=0)
    action_timing: float = Field(default=20, gt=0)  # seconds
    action_keyword: str = "acao"
    extra_prompt: str = ""
    global_palpites: bool = False  # mention-driven Q&A opt-in

    @field_validator(
        "min_action_length", "min_event_length", "min_diplomacy_length", "action_timing",
        mode="before",
    )
    @classmethod
    def falsy_to_default(cls, v, info):
        # The setup flow writes 0 / "" / null for "not set"
        if v in (None, "", 0):
            return cls.model_fields[info.field_name].default
        return v

    @field_validator("action_keyword", mode="before")
    @classmethod
    def keyword_default(cls, v):
        return v or "acao"

    @field_validator("extra_prompt", mode="before")
    @classmethod
    def extra_default(cls, v):
        return v or ""

    model_config = {"extra": "allow"}


class GuildServerSettings(BaseModel):
    channels: GuildChannels = Field(default_factory=GuildChannels)
    roles: GuildRoles = Field(default_factory=GuildRoles)
    preferences: GuildPreferences = Field(default_factory=GuildPreferences)

    @field_validator("channels", "roles", "preferences", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return {} if v is None else v

    model_config = {"extra": "allow"}


class GuildRoleplayConfig(BaseModel):
    """A configured guild. Narration is inert at tier 1 and below."""

    server_id: str
    server_tier: int = 0
    server: GuildServerSettings = Field(default_factory=GuildServerSettings)

    @field_validator("server_id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        return str(v)

    @property
    def channels(self) -> GuildChannels:
        return self.server.channels

    @property
    def roles(self) -> GuildRoles:
        return self.server.roles

    @property
    def preferences(self) -> GuildPreferences:
        return self.server.preferences

    @property
    def narration_enabled(self) -> bool:
        return self.server_tier > 1

    model_config = {"extra": "allow"}


class GuildSetup(BaseModel):
    """An in-progress setup flow. While one exists the guild is not narrated."""

    server_id: str
    server_tier: int = 0
    server_setup_step: int = 0

    @field_validator("server_id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        return str(v)

    model_config = {"extra": "allow"}
