"""
Category Classifier — Decides what, if anything, the bot does with a message.

Pure and synchronous. No Discord imports: the caller extracts a MessageFacts
from the message first. Rules are evaluated in a fixed priority order and
the first match wins, so a message in a channel listed both as an action
channel and as a context channel is always treated as an action.
"""

import logging
from typing import Optional

from models.guild_config import GuildRoleplayConfig
from models.narration import Category, MessageFacts, WindowKind
from tools.collector_state import CollectorState
from tools.text_utils import contains_simplified

logger = logging.getLogger("Classifier")

# Players write "não narrar" when an action-channel message must be skipped
NEGATION_PHRASE = "nao narr"

ACTION_CHANNEL_TYPES = {"text", "public_thread"}
EVENT_CHANNEL_TYPES = {"text", "news", "public_thread"}
QA_CHANNEL_TYPES = {"text", "public_thread", "private_thread", "news"}


def _in(channel_ids, *candidates) -> bool:
    return any(c is not None and c in channel_ids for c in candidates)


def _long_or_keyword(text: str, min_length: int, keyword: str) -> bool:
    return len(text) >= min_length or contains_simplified(text, keyword)


def is_secret_action(facts: MessageFacts, config: GuildRoleplayConfig) -> bool:
    player_role = config.roles.player
    return (
        player_role is not None
        and player_role in facts.author_role_ids
        and facts.channel_id in config.channels.secret_actions
    )


def is_action(facts: MessageFacts, config: GuildRoleplayConfig, state: CollectorState) -> bool:
    channels = config.channels
    prefs = config.preferences
    text = facts.clean_content
    return (
        _long_or_keyword(text, prefs.min_action_length, prefs.action_keyword)
        and not contains_simplified(text, NEGATION_PHRASE)
        and not state.has_open(WindowKind.ACTION, facts.author_id)
        and (
            _in(channels.actions, facts.channel_id, facts.parent_id)
            or _in(channels.country_category, facts.parent_id, facts.grandparent_id)
        )
        and facts.channel_type in ACTION_CHANNEL_TYPES
    )


def is_event(facts: MessageFacts, config: GuildRoleplayConfig, state: CollectorState) -> bool:
    return (
        len(facts.clean_content) >= config.preferences.min_event_length
        and _in(config.channels.events, facts.channel_id, facts.parent_id)
        and not state.has_open(WindowKind.EVENT, facts.author_id)
        and facts.channel_type in EVENT_CHANNEL_TYPES
    )


def is_time_advance(facts: MessageFacts, config: GuildRoleplayConfig) -> bool:
    return facts.channel_id in config.channels.time


def is_diplomacy(facts: MessageFacts, config: GuildRoleplayConfig) -> bool:
    prefs = config.preferences
    return (
        facts.channel_id in config.channels.diplomacy
        and _long_or_keyword(facts.content, prefs.min_diplomacy_length, prefs.action_keyword)
    )


def lacks_context_markers(content: str) -> bool:
    """Context posts must carry a heading or bold text, and a subtext line."""
    return ("###" not in content and "**" not in content) or "-#" not in content


def is_context_pollution(facts: MessageFacts, config: GuildRoleplayConfig) -> bool:
    return (
        _in(config.channels.context, facts.channel_id, facts.parent_id)
        and lacks_context_markers(facts.content)
    )


def is_mention_qa(facts: MessageFacts, config: GuildRoleplayConfig) -> bool:
    return (
        facts.mentions_bot
        and config.server_tier >= 2
        and config.preferences.global_palpites
        and facts.channel_type in QA_CHANNEL_TYPES
    )


def classify(
    facts: MessageFacts,
    config: GuildRoleplayConfig,
    state: CollectorState,
) -> Optional[Category]:
    """Map a message to its narration category, or None to ignore it."""
    if facts.author_is_bot:
        return None

    if is_secret_action(facts, config):
        category = Category.SECRET_ACTION
    elif is_action(facts, config, state):
        category = Category.ACTION
    elif is_event(facts, config, state):
        category = Category.EVENT
    elif is_time_advance(facts, config):
        category = Category.TIME_ADVANCE
    elif is_diplomacy(facts, config):
        category = Category.DIPLOMACY
    elif is_context_pollution(facts, config):
        category = Category.CONTEXT_HYGIENE
    elif is_mention_qa(facts, config):
        category = Category.MENTION_QA
    else:
        return None

    logger.debug(f"Message in {facts.channel_id} from {facts.author_id} -> {category.value}")
    return category
