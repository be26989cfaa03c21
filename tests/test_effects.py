"""
Tests for bot/effects.py — chunked posting, routing, personas, wars and cleanup.

Discord objects are MagicMocks; channels that must pass isinstance checks
(threads, forums) use spec=.
"""

import asyncio

import discord
from unittest.mock import AsyncMock, MagicMock

from bot.effects import (
    EffectApplier,
    attribution_line,
    build_narration_chunks,
    channel_lineage,
)
from models.directives import DiplomacyDirective, EventDirective, NarrationDirective

from conftest import (
    BOT_USER_ID,
    COUNTRY_CATEGORY_ID,
    NARRATIONS_ID,
    SECRET_LOG_ID,
    WAR_FORUM_ID,
    make_channel,
    make_guild,
    make_message,
    make_status_message,
)


def http_error():
    return discord.HTTPException(MagicMock(status=500, reason="err"), "boom")


def make_forum():
    forum = MagicMock(spec=discord.ForumChannel)
    forum.id = WAR_FORUM_ID
    thread = MagicMock()
    thread.id = 8888
    thread.send = AsyncMock(side_effect=lambda *a, **k: make_status_message())
    forum.create_thread = AsyncMock(return_value=MagicMock(thread=thread))
    forum.get_thread = MagicMock(return_value=None)
    return forum, thread


def setup_guild(*extra):
    narrations = make_channel(NARRATIONS_ID)
    origin = make_channel(301)
    guild = make_guild([narrations, origin, *extra])
    return guild, narrations, origin


class TestChunks:
    def test_header_main_diff_attribution(self):
        narration = "O Brasil investe em ferrovias.\n```diff\n+ PIB 1%\n```"
        chunks = build_narration_chunks(narration, "Ana", 111, "https://link", site="https://site")
        assert chunks[0] == (
            "# Ação de Ana\n- Ação original: https://link\n- Menções: <@111>\n"
            "O Brasil investe em ferrovias.\n"
        )
        assert chunks[1] == "```diff\n+ PIB 1%\n```"
        assert chunks[2] == attribution_line("https://site")

    def test_concatenation_reconstructs_narration(self):
        narration = ("Parágrafo longo de narração. " * 200) + "\n```diff\n+ exército\n```"
        chunks = build_narration_chunks(narration, "Ana", 111, "u")
        assert all(len(c) <= 2000 for c in chunks)
        header = "# Ação de Ana\n- Ação original: u\n- Menções: <@111>\n"
        assert "".join(chunks[:-1]) == header + narration

    def test_attribution_without_site(self):
        assert attribution_line("") == "\n-# Narração gerada por Inteligência Artificial."


class TestLineage:
    def test_plain_channel(self):
        channel = make_channel(10, category_id=COUNTRY_CATEGORY_ID)
        assert channel_lineage(channel) == (str(COUNTRY_CATEGORY_ID), None)

    def test_thread(self):
        parent = make_channel(10, category_id=COUNTRY_CATEGORY_ID)
        thread = MagicMock(spec=discord.Thread)
        thread.parent = parent
        thread.parent_id = 10
        assert channel_lineage(thread) == ("10", str(COUNTRY_CATEGORY_ID))


class TestNarration:
    def test_posts_to_narrations_channel(self, mock_bot, mock_store, guild_config):
        guild, narrations, origin = setup_guild()
        message = make_message("ação", channel=origin, guild=guild)
        effects = EffectApplier(mock_bot, mock_store, site="https://site")
        directive = NarrationDirective(valid=True, narration="texto", context_update="ctx")

        assert asyncio.run(effects.apply_narration(directive, message, guild_config)) is True
        assert narrations.send.await_count == 2
        origin.send.assert_not_awaited()
        mock_store.append_context.assert_awaited_once_with("ctx", str(guild.id))

    def test_country_category_posts_in_place(self, mock_bot, mock_store, guild_config):
        narrations = make_channel(NARRATIONS_ID)
        origin = make_channel(901, category_id=COUNTRY_CATEGORY_ID)
        guild = make_guild([narrations, origin])
        message = make_message("ação", channel=origin, guild=guild)
        effects = EffectApplier(mock_bot, mock_store)
        directive = NarrationDirective(valid=True, narration="texto", context_update="ctx")

        asyncio.run(effects.apply_narration(directive, message, guild_config))
        assert origin.send.await_count == 2
        narrations.send.assert_not_awaited()

    def test_invalid_narration_does_nothing(self, mock_bot, mock_store, guild_config):
        guild, narrations, origin = setup_guild()
        message = make_message("ação", channel=origin, guild=guild)
        effects = EffectApplier(mock_bot, mock_store)
        directive = NarrationDirective(valid=False, reason="impossível")

        assert asyncio.run(effects.apply_narration(directive, message, guild_config)) is False
        narrations.send.assert_not_awaited()
        mock_store.append_context.assert_not_awaited()

    def test_chunk_failure_does_not_stop_later_chunks(self, mock_bot, mock_store):
        channel = make_channel(1)
        channel.send = AsyncMock(side_effect=[http_error(), None, None])
        effects = EffectApplier(mock_bot, mock_store)
        sent = asyncio.run(effects.send_chunks(channel, ["a", "b", "c"]))
        assert sent == 2
        assert channel.send.await_count == 3

    def test_whitespace_chunks_skipped(self, mock_bot, mock_store):
        channel = make_channel(1)
        effects = EffectApplier(mock_bot, mock_store)
        asyncio.run(effects.send_chunks(channel, ["a", "  \n", ""]))
        assert channel.send.await_count == 1

    def test_missing_narrations_channel_still_appends_context(self, mock_bot, mock_store, guild_config):
        origin = make_channel(301)
        guild = make_guild([origin])
        message = make_message("ação", channel=origin, guild=guild)
        effects = EffectApplier(mock_bot, mock_store)
        directive = NarrationDirective(valid=True, narration="texto", context_update="ctx")

        asyncio.run(effects.apply_narration(directive, message, guild_config))
        origin.send.assert_not_awaited()
        mock_store.append_context.assert_awaited_once()


class TestEvent:
    def test_irrelevant_event_appends_nothing(self, mock_bot, mock_store):
        effects = EffectApplier(mock_bot, mock_store)
        assert asyncio.run(effects.apply_event(EventDirective(irrelevant=True), 1)) is False
        mock_store.append_context.assert_not_awaited()

    def test_event_appends_context(self, mock_bot, mock_store):
        effects = EffectApplier(mock_bot, mock_store)
        asyncio.run(effects.apply_event(EventDirective(context_update="Crise"), 1))
        mock_store.append_context.assert_awaited_once_with("Crise", "1")


class TestDiplomacy:
    def test_npc_reply_creates_webhook_with_avatar(self, mock_bot, mock_store, guild_config):
        guild, narrations, origin = setup_guild()
        webhook = MagicMock()
        webhook.send = AsyncMock()
        origin.create_webhook = AsyncMock(return_value=webhook)
        message = make_message("proposta", channel=origin, guild=guild)
        image_search = MagicMock()
        image_search.search_image = AsyncMock(return_value="https://img/flag.png")
        effects = EffectApplier(mock_bot, mock_store, image_search=image_search)
        directive = DiplomacyDirective(kind=1, country="Japão", npc_reply="Aceitamos.", context_update="acordo")

        asyncio.run(effects.apply_diplomacy(directive, message, guild_config, "1939"))

        origin.create_webhook.assert_awaited_once_with(name="Webhook do salazar")
        image_search.search_image.assert_awaited_once_with("Bandeira Japão 1939")
        webhook.send.assert_awaited_once_with(
            content="Aceitamos.\n<@111>", username="Japão", avatar_url="https://img/flag.png"
        )
        mock_store.append_context.assert_awaited_once_with("acordo", str(guild.id))
        narrations.send.assert_not_awaited()

    def test_existing_webhook_reused(self, mock_bot, mock_store):
        channel = make_channel(1)
        ours = MagicMock()
        ours.user.id = BOT_USER_ID
        theirs = MagicMock()
        theirs.user.id = 1
        channel.webhooks = AsyncMock(return_value=[theirs, ours])
        effects = EffectApplier(mock_bot, mock_store)
        assert asyncio.run(effects.get_persona_webhook(channel)) is ours
        channel.create_webhook.assert_not_awaited()

    def test_npc_reply_in_thread_uses_parent_webhook(self, mock_bot, mock_store):
        parent = make_channel(10)
        webhook = MagicMock()
        webhook.send = AsyncMock()
        parent.create_webhook = AsyncMock(return_value=webhook)
        thread = MagicMock(spec=discord.Thread)
        thread.parent = parent
        thread.parent_id = 10
        effects = EffectApplier(mock_bot, mock_store)

        asyncio.run(effects.send_npc_reply(thread, "Peru", "Não aceitamos."))
        webhook.send.assert_awaited_once_with(content="Não aceitamos.", username="Peru", thread=thread)

    def test_war_declared(self, mock_bot, mock_store, guild_config):
        forum, thread = make_forum()
        guild, narrations, origin = setup_guild(forum)
        message = make_message("guerra!", channel=origin, guild=guild)
        effects = EffectApplier(mock_bot, mock_store)
        directive = DiplomacyDirective(
            kind=2, country="Peru", narration="Tropas cruzam a fronteira.",
            context_update="guerra", war_title="Guerra do Pacífico", war_synopsis="Chile x Peru",
        )

        asyncio.run(effects.apply_diplomacy(directive, message, guild_config))

        assert narrations.send.await_count == 2
        forum.create_thread.assert_awaited_once_with(name="Guerra do Pacífico", content="Chile x Peru")
        assert "embed" in thread.send.await_args_list[0].kwargs
        assert thread.send.await_args_list[1].args[0] == "<@111>"
        mock_store.add_war.assert_awaited_once_with(guild.id, 8888, "Guerra do Pacífico", "Chile x Peru")

    def test_war_declared_without_forum_still_narrates(self, mock_bot, mock_store, guild_config):
        guild, narrations, origin = setup_guild()
        message = make_message("guerra!", channel=origin, guild=guild)
        effects = EffectApplier(mock_bot, mock_store)
        directive = DiplomacyDirective(
            kind=2, country="Peru", narration="n", context_update="c",
            war_title="G", war_synopsis="S",
        )
        asyncio.run(effects.apply_diplomacy(directive, message, guild_config))
        assert narrations.send.await_count == 2
        mock_store.append_context.assert_awaited_once()
        mock_store.add_war.assert_not_awaited()

    def test_war_updated_edits_starter(self, mock_bot, mock_store, guild_config):
        forum, _ = make_forum()
        war_thread = MagicMock()
        war_thread.id = 8888
        starter = MagicMock()
        starter.author.id = BOT_USER_ID
        starter.edit = AsyncMock()
        war_thread.fetch_message = AsyncMock(return_value=starter)
        forum.get_thread = MagicMock(return_value=war_thread)
        guild, _, origin = setup_guild(forum)
        message = make_message("trégua", channel=origin, guild=guild)
        effects = EffectApplier(mock_bot, mock_store)
        directive = DiplomacyDirective(
            kind=3, country="Peru", narration="n", context_update="c",
            war_id="8888", war_synopsis="Trégua assinada",
        )

        asyncio.run(effects.apply_diplomacy(directive, message, guild_config))
        forum.get_thread.assert_called_once_with(8888)
        starter.edit.assert_awaited_once_with(content="Trégua assinada")
        mock_store.update_war_synopsis.assert_awaited_once_with(guild.id, 8888, "Trégua assinada")

    def test_unknown_war_is_noop(self, mock_bot, mock_store, guild_config):
        forum, _ = make_forum()
        guild, _, origin = setup_guild(forum)
        message = make_message("trégua", channel=origin, guild=guild)
        effects = EffectApplier(mock_bot, mock_store)
        assert asyncio.run(effects.update_war(message, guild_config, "1234", "s")) is False
        mock_store.update_war_synopsis.assert_not_awaited()


class TestSecretAndCleanup:
    def test_secret_action_relayed_then_deleted(self, mock_bot, mock_store, guild_config):
        log_channel = make_channel(SECRET_LOG_ID)
        guild = make_guild([log_channel])
        message = make_message("plano secreto", guild=guild, display_name="Ana")
        effects = EffectApplier(mock_bot, mock_store)

        assert asyncio.run(effects.relay_secret_action(message, guild_config)) is True
        embed = log_channel.send.await_args.kwargs["embed"]
        assert embed.title == "Nova ação secreta de Ana"
        assert embed.description == "plano secreto"
        message.delete.assert_awaited_once()

    def test_secret_action_kept_without_log_channel(self, mock_bot, mock_store, guild_config):
        message = make_message("plano secreto", guild=make_guild([]))
        effects = EffectApplier(mock_bot, mock_store)
        assert asyncio.run(effects.relay_secret_action(message, guild_config)) is False
        message.delete.assert_not_awaited()

    def test_cleanup_tolerates_failures(self, mock_bot, mock_store):
        first = make_message("a")
        first.clear_reactions = AsyncMock(side_effect=http_error())
        second = make_message("b")
        placeholder = make_status_message()
        placeholder.delete = AsyncMock(side_effect=discord.NotFound(MagicMock(status=404, reason="x"), "gone"))
        effects = EffectApplier(mock_bot, mock_store)

        asyncio.run(effects.cleanup([first, second], placeholder))
        second.clear_reactions.assert_awaited_once()
        placeholder.delete.assert_awaited_once()
