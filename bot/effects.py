"""
EffectApplier — Turns validated directives into Discord side effects.

Best-effort and non-transactional: every chunk, reaction and deletion is
attempted on its own, failures are logged and the next one still runs.
Nothing here is retried. A missing destination raises DestinationUnavailable
inside the effect that needs it and only that effect is skipped.
"""

import logging
from typing import Any, Iterable, List, Optional, Tuple

import discord

from models.directives import DiplomacyDirective, DiplomacyKind, EventDirective, NarrationDirective
from models.guild_config import GuildRoleplayConfig
from tools.context_store import ContextStore
from tools.errors import DestinationUnavailable
from tools.image_search import ImageSearch
from tools.text_utils import DISCORD_MESSAGE_LIMIT, split_narration

logger = logging.getLogger("EffectApplier")

WEBHOOK_NAME = "Webhook do salazar"
ACK_REACTION = "📝"

WAR_ACTION_TEXT = (
    "Use este tópico para enviar as ações militares desta guerra.\n"
    "- Descreva objetivo, tropas envolvidas e estratégia em cada ação.\n"
    "- A narração de cada ação será publicada no canal de narrações.\n"
    "- A sinopse no topo do tópico é atualizada conforme a guerra avança."
)


def channel_lineage(channel: Any) -> Tuple[Optional[str], Optional[str]]:
    """Return (parent_id, grandparent_id) of a channel as strings.

    For a thread the parent is its channel and the grandparent that channel's
    category. For a plain channel the parent is its category.
    """
    if isinstance(channel, discord.Thread):
        parent = channel.parent
        parent_id = channel.parent_id
        grandparent_id = getattr(parent, "category_id", None) if parent else None
    else:
        parent_id = getattr(channel, "category_id", None)
        grandparent_id = None
    return (
        str(parent_id) if parent_id else None,
        str(grandparent_id) if grandparent_id else None,
    )


def attribution_line(site: str = "") -> str:
    line = "\n-# Narração gerada por Inteligência Artificial."
    if site:
        line += f" [Saiba mais]({site})"
    return line


def build_narration_chunks(
    narration: str,
    author_name: str,
    author_id: Any,
    jump_url: str,
    site: str = "",
    limit: int = DISCORD_MESSAGE_LIMIT,
) -> List[str]:
    """Header + main text chunks, then the diff block, then the attribution chunk."""
    header = (
        f"# Ação de {author_name}\n"
        f"- Ação original: {jump_url}\n"
        f"- Menções: <@{author_id}>\n"
    )
    chunks = split_narration(header + narration, limit)
    chunks.append(attribution_line(site))
    return chunks


def war_action_embed() -> discord.Embed:
    return discord.Embed(
        title="Ações de guerra",
        description=WAR_ACTION_TEXT,
        color=discord.Color.red(),
    )


def secret_action_embed(message: Any) -> discord.Embed:
    embed = discord.Embed(
        title=f"Nova ação secreta de {message.author.display_name}",
        description=message.content,
        color=discord.Color.blurple(),
        timestamp=discord.utils.utcnow(),
    )
    embed.set_thumbnail(url=message.author.display_avatar.url)
    return embed


def _get_channel(guild: Any, channel_id: Optional[str]) -> Optional[Any]:
    if not channel_id:
        return None
    try:
        return guild.get_channel(int(channel_id))
    except (TypeError, ValueError):
        return None


class EffectApplier:
    """Applies directives for one bot. Holds no per-request state."""

    def __init__(
        self,
        bot,
        store: ContextStore,
        image_search: Optional[ImageSearch] = None,
        site: str = "",
        webhook_name: str = WEBHOOK_NAME,
    ):
        self.bot = bot
        self.store = store
        self.image_search = image_search
        self.site = site
        self.webhook_name = webhook_name

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    def narration_destination(
        self,
        message: Any,
        config: GuildRoleplayConfig,
        follow_origin: bool = True,
    ) -> Any:
        """Country-category channels get their narration in place; everything else goes to the narrations channel."""
        if follow_origin:
            parent_id, grandparent_id = channel_lineage(message.channel)
            categories = config.channels.country_category
            if parent_id in categories or grandparent_id in categories:
                return message.channel

        channel_id = config.channels.narrations
        channel = _get_channel(message.guild, channel_id)
        if channel is None:
            raise DestinationUnavailable("narrations channel", channel_id)
        return channel

    async def send_chunks(self, destination: Any, chunks: Iterable[str]) -> int:
        """Send chunks in order. Returns how many were delivered."""
        sent = 0
        for chunk in chunks:
            if not chunk or not chunk.strip():
                continue
            try:
                await destination.send(chunk)
                sent += 1
            except discord.HTTPException as e:
                logger.warning(f"Chunk send failed in {getattr(destination, 'id', '?')}: {e}")
        return sent

    async def post_narration(
        self,
        message: Any,
        narration: str,
        config: GuildRoleplayConfig,
        follow_origin: bool = True,
    ) -> int:
        try:
            destination = self.narration_destination(message, config, follow_origin)
        except DestinationUnavailable as e:
            logger.warning(f"Narration not posted: {e}")
            return 0

        chunks = build_narration_chunks(
            narration,
            message.author.display_name,
            message.author.id,
            message.jump_url,
            site=self.site,
        )
        sent = await self.send_chunks(destination, chunks)
        logger.info(f"Narration for {message.author.id} posted: {sent}/{len(chunks)} chunk(s)")
        return sent

    async def append_context(self, guild_id: Any, text: Optional[str]) -> bool:
        try:
            return await self.store.append_context(text or "", str(guild_id))
        except Exception as e:
            logger.error(f"Context append failed for guild {guild_id}: {e}", exc_info=True)
            return False

    # ------------------------------------------------------------------
    # Directives
    # ------------------------------------------------------------------

    async def apply_narration(
        self,
        directive: NarrationDirective,
        trigger: Any,
        config: GuildRoleplayConfig,
    ) -> bool:
        """Post a valid narration and record its context. Invalid ones are only logged."""
        if not directive.valid:
            logger.info(f"Action from {trigger.author.id} rejected by the model: {directive.reason}")
            return False
        await self.post_narration(trigger, directive.narration, config)
        await self.append_context(trigger.guild.id, directive.context_update)
        return True

    async def apply_event(self, directive: EventDirective, guild_id: Any) -> bool:
        if directive.irrelevant:
            logger.info(f"Event in guild {guild_id} judged irrelevant")
            return False
        return await self.append_context(guild_id, directive.context_update)

    async def apply_diplomacy(
        self,
        directive: DiplomacyDirective,
        message: Any,
        config: GuildRoleplayConfig,
        current_date: str = "",
    ) -> bool:
        kind = directive.kind
        if kind == DiplomacyKind.NOT_ACTIONABLE:
            logger.info(f"Diplomacy from {message.author.id} not actionable: {directive.reason}")
            return False

        guild_id = message.guild.id

        if kind == DiplomacyKind.NPC_RESPONSE:
            try:
                await self.send_npc_reply(
                    message.channel,
                    directive.country,
                    f"{directive.npc_reply}\n<@{message.author.id}>",
                    current_date,
                )
            except (DestinationUnavailable, discord.HTTPException) as e:
                logger.warning(f"NPC reply from {directive.country} not sent: {e}")
            await self.append_context(guild_id, directive.context_update)
            return True

        await self.post_narration(message, directive.narration, config, follow_origin=False)
        await self.append_context(guild_id, directive.context_update)

        try:
            if kind == DiplomacyKind.WAR_DECLARED:
                await self.declare_war(message, config, directive.war_title, directive.war_synopsis)
            elif kind == DiplomacyKind.WAR_UPDATED:
                await self.update_war(message, config, directive.war_id, directive.war_synopsis)
        except DestinationUnavailable as e:
            logger.warning(f"War effect skipped: {e}")
        except discord.HTTPException as e:
            logger.warning(f"War effect failed: {e}")
        return True

    # ------------------------------------------------------------------
    # NPC persona (webhook)
    # ------------------------------------------------------------------

    async def get_persona_webhook(self, channel: Any) -> Any:
        """Reuse this bot's webhook on the channel or create one."""
        if not hasattr(channel, "webhooks"):
            raise DestinationUnavailable("webhook-capable channel", str(getattr(channel, "id", "")))
        bot_id = self.bot.user.id
        for webhook in await channel.webhooks():
            if webhook.user and webhook.user.id == bot_id:
                return webhook
        logger.info(f"Creating persona webhook in {channel.id}")
        return await channel.create_webhook(name=self.webhook_name)

    async def send_npc_reply(self, channel: Any, country: str, content: str, current_date: str = ""):
        """Send `content` as the country's persona. Threads post through their parent's webhook."""
        thread = None
        if isinstance(channel, discord.Thread):
            thread = channel
            channel = channel.parent
            if channel is None:
                raise DestinationUnavailable("thread parent", str(thread.parent_id))

        webhook = await self.get_persona_webhook(channel)

        kwargs = {"content": content, "username": country}
        if self.image_search:
            avatar_url = await self.image_search.search_image(f"Bandeira {country} {current_date}".strip())
            if avatar_url:
                kwargs["avatar_url"] = avatar_url
        if thread is not None:
            kwargs["thread"] = thread

        await webhook.send(**kwargs)
        logger.info(f"NPC reply sent as {country} in {channel.id}")

    # ------------------------------------------------------------------
    # Wars
    # ------------------------------------------------------------------

    def _war_forum(self, guild: Any, config: GuildRoleplayConfig) -> Any:
        forum = _get_channel(guild, config.channels.war)
        if not isinstance(forum, discord.ForumChannel):
            raise DestinationUnavailable("war forum", config.channels.war)
        return forum

    async def declare_war(self, message: Any, config: GuildRoleplayConfig, title: str, synopsis: str):
        forum = self._war_forum(message.guild, config)
        created = await forum.create_thread(name=title[:100], content=synopsis)
        thread = created.thread
        logger.info(f"War thread '{title}' created ({thread.id})")

        await thread.send(embed=war_action_embed())
        try:
            ping = await thread.send(f"<@{message.author.id}>")
            await ping.delete()
        except discord.HTTPException as e:
            logger.warning(f"War ping failed: {e}")

        await self.store.add_war(message.guild.id, thread.id, title, synopsis)

    async def update_war(self, message: Any, config: GuildRoleplayConfig, war_id: str, synopsis: str) -> bool:
        """Edit the war thread's starter message. Unknown war ids are a logged no-op."""
        forum = self._war_forum(message.guild, config)
        try:
            thread_id = int(war_id)
        except (TypeError, ValueError):
            logger.warning(f"War id '{war_id}' is not a thread id")
            return False

        thread = forum.get_thread(thread_id) or message.guild.get_thread(thread_id)
        if thread is None:
            logger.info(f"War thread {war_id} not found, nothing to update")
            return False

        starter = await thread.fetch_message(thread.id)
        if starter.author.id != self.bot.user.id:
            logger.info(f"Starter message of war {war_id} is not ours, not editing")
            return False

        await starter.edit(content=synopsis)
        await self.store.update_war_synopsis(message.guild.id, thread.id, synopsis)
        logger.info(f"War {war_id} synopsis updated")
        return True

    # ------------------------------------------------------------------
    # Secret actions
    # ------------------------------------------------------------------

    async def relay_secret_action(self, message: Any, config: GuildRoleplayConfig) -> bool:
        """Copy the action to the staff log as an embed, then delete the original."""
        log_channel = _get_channel(message.guild, config.channels.secret_actions_log)
        if log_channel is None:
            logger.warning(f"No secret action log channel in guild {message.guild.id}; original kept")
            return False
        try:
            await log_channel.send(embed=secret_action_embed(message))
        except discord.HTTPException as e:
            logger.warning(f"Secret action relay failed: {e}")
            return False
        await self.delete_message(message)
        return True

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    async def delete_message(self, message: Optional[Any]):
        if message is None:
            return
        try:
            await message.delete()
        except discord.HTTPException as e:
            logger.debug(f"Delete skipped: {e}")

    async def cleanup(self, messages: Iterable[Any], placeholder: Optional[Any] = None):
        """Clear acknowledgment reactions and delete the placeholder, if still there."""
        for message in messages:
            try:
                await message.clear_reactions()
            except discord.HTTPException as e:
                logger.debug(f"Reaction clear skipped for {getattr(message, 'id', '?')}: {e}")
        await self.delete_message(placeholder)
