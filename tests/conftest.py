"""
Shared pytest fixtures for the roleplay narrator test suite.

Discord objects are MagicMocks with AsyncMock coroutine methods; nothing
here talks to Discord, Gemini or MongoDB.
"""

import itertools

import discord
import pytest
from unittest.mock import AsyncMock, MagicMock

from models.guild_config import GuildRoleplayConfig


# ---------------------------------------------------------------------------
# Gemini Mock Helpers (reusable classes)
# ---------------------------------------------------------------------------

class MockGeminiResponse:
    """Simulates a Gemini response with .text property."""

    def __init__(self, text: str):
        self.text = text


class MockGeminiClient:
    """Mock Gemini client that returns canned text responses.

    Exceptions in the list are raised instead of returned, which is how
    tests simulate a model failing.

    Usage:
        client = MockGeminiClient(["response1", RuntimeError("quota")])
        resp = await client.aio.models.generate_content(model=..., contents=...)
        assert resp.text == "response1"
    """

    def __init__(self, responses=None):
        self._responses = responses or []
        self._call_count = 0
        self.calls = []

    @property
    def aio(self):
        return self

    @property
    def models(self):
        return self

    async def generate_content(self, **kwargs):
        self.calls.append(kwargs)
        if self._call_count < len(self._responses):
            resp = self._responses[self._call_count]
        else:
            resp = RuntimeError("no more canned responses")
        self._call_count += 1
        if isinstance(resp, Exception):
            raise resp
        if isinstance(resp, str):
            return MockGeminiResponse(resp)
        # Allow passing pre-built response objects
        return resp


# ---------------------------------------------------------------------------
# Discord Mock Helpers
# ---------------------------------------------------------------------------

_message_ids = itertools.count(5000)

BOT_USER_ID = 4242
GUILD_ID = 999
NARRATIONS_ID = 300
ACTIONS_ID = 301
EVENTS_ID = 302
DIPLOMACY_ID = 303
TIME_ID = 304
CONTEXT_ID = 305
SECRET_ID = 306
SECRET_LOG_ID = 307
WAR_FORUM_ID = 308
COUNTRY_CATEGORY_ID = 400
PLAYER_ROLE_ID = 50


def make_status_message():
    status = MagicMock()
    status.id = next(_message_ids)
    status.edit = AsyncMock()
    status.delete = AsyncMock()
    status.reply = AsyncMock(side_effect=lambda *a, **k: make_status_message())
    return status


def make_channel(channel_id=ACTIONS_ID, category_id=None, channel_type=discord.ChannelType.text):
    channel = MagicMock()
    channel.id = channel_id
    channel.category_id = category_id
    channel.type = channel_type
    channel.send = AsyncMock(side_effect=lambda *a, **k: make_status_message())
    channel.webhooks = AsyncMock(return_value=[])
    channel.create_webhook = AsyncMock()
    return channel


def make_guild(channels=None):
    guild = MagicMock()
    guild.id = GUILD_ID
    guild.name = "Mundo Moderno RP"
    registry = {c.id: c for c in (channels or [])}
    guild.get_channel = MagicMock(side_effect=lambda cid: registry.get(cid))
    guild.get_thread = MagicMock(return_value=None)
    return guild


def make_message(
    content="",
    author_id=111,
    channel=None,
    guild=None,
    roles=(),
    bot=False,
    attachments=(),
    display_name="Jogador",
    admin=False,
):
    message = MagicMock()
    message.id = next(_message_ids)
    message.content = content
    message.clean_content = content
    message.jump_url = f"https://discord.com/channels/{GUILD_ID}/1/{message.id}"

    message.author.id = author_id
    message.author.bot = bot
    message.author.name = display_name.lower()
    message.author.display_name = display_name
    message.author.roles = [MagicMock(id=r) for r in roles]
    message.author.guild_permissions.administrator = admin
    message.author.display_avatar.url = "https://cdn.example/avatar.png"

    message.channel = channel or make_channel()
    message.guild = guild or make_guild([message.channel])
    message.attachments = list(attachments)
    message.mentions = []

    message.reply = AsyncMock(side_effect=lambda *a, **k: make_status_message())
    message.add_reaction = AsyncMock()
    message.clear_reactions = AsyncMock()
    message.delete = AsyncMock()
    return message


def make_attachment(url, content_type="image/png"):
    attachment = MagicMock()
    attachment.url = url
    attachment.content_type = content_type
    return attachment


# ---------------------------------------------------------------------------
# Pytest fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def guild_config():
    """A tier-2 guild with every channel role configured."""
    return GuildRoleplayConfig.model_validate({
        "server_id": str(GUILD_ID),
        "server_tier": 2,
        "server": {
            "channels": {
                "narrations": str(NARRATIONS_ID),
                "actions": [str(ACTIONS_ID)],
                "country_category": [str(COUNTRY_CATEGORY_ID)],
                "events": [str(EVENTS_ID)],
                "diplomacy": [str(DIPLOMACY_ID)],
                "time": [str(TIME_ID)],
                "context": [str(CONTEXT_ID)],
                "secret_actions": [str(SECRET_ID)],
                "secret_actions_log": str(SECRET_LOG_ID),
                "war": str(WAR_FORUM_ID),
            },
            "roles": {"player": str(PLAYER_ROLE_ID)},
            "preferences": {
                "min_action_length": 500,
                "min_event_length": 256,
                "min_diplomacy_length": 200,
                "action_timing": 20,
                "action_keyword": "acao",
                "global_palpites": True,
            },
        },
    })


@pytest.fixture
def mock_store():
    """AsyncMock ContextStore with an empty world."""
    store = MagicMock()
    store.is_connected = True
    store.get_guild_config = AsyncMock(return_value=None)
    store.get_guild_setup = AsyncMock(return_value=None)
    store.get_current_date = AsyncMock(return_value="Janeiro de 2025")
    store.get_all_players = AsyncMock(return_value=[])
    store.get_wars = AsyncMock(return_value=[])
    store.get_context = AsyncMock(return_value="O mundo está em paz.")
    store.append_context = AsyncMock(return_value=True)
    store.advance_year = AsyncMock(return_value="Janeiro de 2026")
    store.mark_setup_started = AsyncMock(return_value=True)
    store.add_war = AsyncMock(return_value=True)
    store.update_war_synopsis = AsyncMock(return_value=True)
    return store


@pytest.fixture
def mock_bot():
    bot = MagicMock()
    bot.user.id = BOT_USER_ID
    return bot


@pytest.fixture
def message_factory():
    return make_message
