"""
NarrationPipeline — Routes every guild message to its narration category.

Flow for one message:
    fragment join → guild config lookup → onboarding notice → inert check
    → classify → maintenance check → category handler

Action and event messages open a collection window; the work happens when
the window closes (_on_window_close). Diplomacy and mention Q&A are answered
immediately. Every failure is contained in the task handling that message.
"""

import asyncio
import logging
from typing import Any, Iterable, List, Optional

import discord

from bot.effects import ACK_REACTION, EffectApplier, channel_lineage
from models.guild_config import GuildRoleplayConfig, GuildSetup
from models.narration import Category, MessageFacts, NarrationRequest, WindowKind
from tools.classifier import classify
from tools.collector_state import CollectorState
from tools.context_store import ContextStore
from tools.errors import GatewayExhausted, ReplyParseError
from tools.gemini_gateway import GeminiGateway
from tools.message_collector import CollectionWindow, MessageCollector, message_image_urls
from tools.prompt_builder import PromptBuilder, format_roster, format_wars
from tools.reply_parser import parse_diplomacy_reply, parse_event_reply, parse_narration_reply
from tools.text_utils import chunkify_text, first_integer

logger = logging.getLogger("NarrationPipeline")

CHAT_HISTORY_LIMIT = 50
MAINTENANCE_NOTICE_SECONDS = 5
RAW_LOG_LIMIT = 500

WELCOME_TEXT = "\n".join([
    "# Obrigado por me adicionar!",
    "Configure o {name} para iniciar os trabalhos!",
    "## Narração automatizada",
    "Não perca tempo com o trabalho difícil que é narrar um roleplay. Agora, você tem uma IA a sua disposição para isso!",
    "## Features secundárias",
    "- Adicione bandeiras arredondadas automaticamente com o **/gerar bandeira**",
    "- Defina um canal de ações secretas, para que somente a staff possa narrar, sem outros jogadores bisbilhotarem",
    "## Preço baixo",
    "Planos diferentes para o quão completo você quiser o seu servidor",
])
WELCOME_PAID = (
    "\n-# Como você já fez o pagamento, pode começar a configuração do servidor o quanto antes "
    "com o comando **/setup**, ou pedir para outro administrador fazer. "
    "Assim que concluído, o {name} está operando no seu servidor!"
)
WELCOME_UNPAID = (
    "\n-# Não foi detectado pagamento para esse servidor... "
    "Entre em contato com o meu dono se você quiser começar a configurar o {name}."
)

MAINTENANCE_NOTICES = {
    Category.ACTION: "-# O {name} está em manutenção e essa ação não será narrada. "
                     "Aguarde a finalização da manutenção e reenvie se possível.",
    Category.EVENT: "-# O {name} está em manutenção e não produzirá contexto para esse evento. "
                    "Aguarde a finalização da manutenção e reenvie se possível.",
    Category.DIPLOMACY: "-# O {name} está em manutenção e essa ação não será analisada. "
                        "Aguarde a finalização da manutenção e reenvie se possível.",
}

WINDOW_OPEN_TEXT = {
    WindowKind.ACTION: (
        "-# A partir de agora, você pode começar a enviar as outras partes da sua ação. "
        "Envie todas as partes da sua ação <t:{expires}:R>. "
        "Se sua ação não for dividida em múltiplas partes, apenas aguarde o tempo acabar."
    ),
    WindowKind.EVENT: (
        "-# A partir de agora, você pode começar a enviar as outras partes do evento. "
        "Envie todas as partes desse evento <t:{expires}:R>"
    ),
}

GENERATING_TEXT = {
    WindowKind.ACTION: "-# Gerando narração...",
    WindowKind.EVENT: "-# Gerando contextualização...",
}

ANALYZING_TEXT = "-# Analisando ação..."
COOLDOWN_NOTICE = "-# Foi mal... Aguarde o cooldown individual de 10 minutos para falar comigo de novo."


def extract_facts(message: Any, bot_user_id: Optional[int]) -> MessageFacts:
    """Everything the classifier needs, pulled out of a discord.Message."""
    parent_id, grandparent_id = channel_lineage(message.channel)
    roles = getattr(message.author, "roles", None) or []
    content = message.content or ""
    channel_type = getattr(message.channel, "type", None)

    mentions_bot = False
    if bot_user_id is not None:
        mentions_bot = f"<@{bot_user_id}>" in content or f"<@!{bot_user_id}>" in content

    return MessageFacts(
        author_id=str(message.author.id),
        author_is_bot=bool(message.author.bot),
        author_role_ids=[str(r.id) for r in roles],
        channel_id=str(message.channel.id),
        parent_id=parent_id,
        grandparent_id=grandparent_id,
        channel_type=channel_type.name if isinstance(channel_type, discord.ChannelType) else str(channel_type or "text"),
        clean_content=message.clean_content or "",
        content=content,
        mentions_bot=mentions_bot,
    )


def format_history_line(message: Any) -> str:
    author = message.author
    name = getattr(author, "display_name", None) or author.name
    when = message.created_at.astimezone()
    return f"-- {name} (ID {author.id}) às {when.strftime('%d/%m/%Y, %H:%M:%S')}: {message.clean_content}"


class NarrationPipeline:
    """Owns the collector state and wires classifier, gateway, parser and effects together."""

    def __init__(
        self,
        bot,
        store: ContextStore,
        gateway: GeminiGateway,
        prompts: PromptBuilder,
        effects: EffectApplier,
        state: Optional[CollectorState] = None,
        owners: Iterable[str] = (),
        bot_name: str = "Salazar",
        maintenance: bool = False,
        qa_model_ids: Optional[List[str]] = None,
    ):
        self.bot = bot
        self.store = store
        self.gateway = gateway
        self.prompts = prompts
        self.effects = effects
        self.state = state or CollectorState()
        self.collector = MessageCollector(self.state, on_close=self._on_window_close)
        self.owners = {str(o) for o in owners}
        self.bot_name = bot_name
        self.maintenance = maintenance
        self.qa_model_ids = qa_model_ids

        self._handlers = {
            Category.SECRET_ACTION: self._handle_secret_action,
            Category.ACTION: self._start_action_window,
            Category.EVENT: self._start_event_window,
            Category.TIME_ADVANCE: self._handle_time_advance,
            Category.DIPLOMACY: self._handle_diplomacy,
            Category.CONTEXT_HYGIENE: self._handle_context_hygiene,
            Category.MENTION_QA: self._handle_mention_qa,
        }

    @property
    def bot_user_id(self) -> Optional[int]:
        user = getattr(self.bot, "user", None)
        return user.id if user else None

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def handle_message(self, message: Any) -> Optional[Category]:
        """Process one inbound message. Returns the category it was handled as, if any."""
        if message.author.bot or message.guild is None:
            return None
        if message.author.id == self.bot_user_id:
            return None

        try:
            # Later parts of an open submission
            if self.collector.join(message.author.id, message.channel.id, message):
                await self._acknowledge(message)
                return None

            guild_id = str(message.guild.id)
            config = await self.store.get_guild_config(guild_id)

            # The author's window may have opened while the config was loading
            if self.collector.join(message.author.id, message.channel.id, message):
                await self._acknowledge(message)
                return None

            if config is None:
                setup = await self.store.get_guild_setup(guild_id)
                await self._maybe_onboard(message, setup)
                return None
            if not config.narration_enabled:
                return None

            facts = extract_facts(message, self.bot_user_id)
            category = classify(facts, config, self.state)
            if category is None:
                return None

            if self.maintenance and category in MAINTENANCE_NOTICES:
                await self._maintenance_notice(message, category)
                return category

            await self._handlers[category](message, config)
            return category
        except Exception as e:
            logger.error(f"Error handling message {message.id}: {e}", exc_info=True)
            return None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _is_admin(self, message: Any) -> bool:
        if str(message.author.id) in self.owners:
            return True
        permissions = getattr(message.author, "guild_permissions", None)
        return bool(permissions and permissions.administrator)

    async def _acknowledge(self, message: Any):
        try:
            await message.add_reaction(ACK_REACTION)
        except discord.HTTPException as e:
            logger.debug(f"Reaction failed on {message.id}: {e}")

    async def _safe_reply(self, message: Any, content: str) -> Optional[Any]:
        try:
            return await message.reply(content)
        except discord.HTTPException as e:
            logger.warning(f"Reply to {message.id} failed: {e}")
            return None

    async def _edit_status(self, status: Optional[Any], content: str):
        if status is None:
            return
        try:
            await status.edit(content=content)
        except discord.HTTPException as e:
            logger.debug(f"Status edit failed: {e}")

    async def _maintenance_notice(self, message: Any, category: Category):
        logger.info(f"Maintenance mode: {category.value} from {message.author.id} not processed")
        notice = await self._safe_reply(message, MAINTENANCE_NOTICES[category].format(name=self.bot_name))
        if notice is not None:
            try:
                await notice.delete(delay=MAINTENANCE_NOTICE_SECONDS)
            except discord.HTTPException:
                pass

    async def _build_request(
        self,
        category: Category,
        message: Any,
        config: GuildRoleplayConfig,
        action_text: str,
        image_urls: Optional[List[str]] = None,
        chat_history: str = "",
    ) -> NarrationRequest:
        guild_id = str(message.guild.id)
        current_date = await self.store.get_current_date(guild_id)
        players = await self.store.get_all_players(guild_id)
        wars = await self.store.get_wars(guild_id)
        context = await self.store.get_context(guild_id)

        return NarrationRequest(
            category=category,
            guild_name=message.guild.name,
            player=message.author.display_name,
            action_text=action_text,
            current_date=current_date,
            roster=format_roster(players),
            wars=format_wars(wars),
            context=context,
            extra_prompt=config.preferences.extra_prompt,
            chat_history=chat_history,
            image_urls=image_urls or [],
        )

    def _log_discarded(self, what: str, error: ReplyParseError):
        logger.warning(f"{what} reply discarded: {error}. Raw: {error.raw[:RAW_LOG_LIMIT]!r}")

    # ------------------------------------------------------------------
    # Onboarding
    # ------------------------------------------------------------------

    async def _maybe_onboard(self, message: Any, setup: Optional[GuildSetup]):
        """Welcome an administrator of a guild that has not started the setup flow."""
        if not self._is_admin(message):
            return
        if setup is not None and setup.server_setup_step != 0:
            return

        paid = setup is not None and setup.server_tier > 0
        footer = WELCOME_PAID if paid else WELCOME_UNPAID
        await self._safe_reply(message, (WELCOME_TEXT + footer).format(name=self.bot_name))
        await self.store.mark_setup_started(message.guild.id, existing=setup is not None)
        logger.info(f"Onboarding notice sent in guild {message.guild.id} (paid={paid})")

    # ------------------------------------------------------------------
    # Category handlers
    # ------------------------------------------------------------------

    async def _handle_secret_action(self, message: Any, config: GuildRoleplayConfig):
        await self.effects.relay_secret_action(message, config)

    async def _start_action_window(self, message: Any, config: GuildRoleplayConfig):
        await self._start_window(WindowKind.ACTION, message, config)

    async def _start_event_window(self, message: Any, config: GuildRoleplayConfig):
        await self._start_window(WindowKind.EVENT, message, config)

    async def _start_window(self, kind: WindowKind, message: Any, config: GuildRoleplayConfig):
        window = self.collector.open(
            kind,
            message,
            message.author.id,
            message.channel.id,
            duration=config.preferences.action_timing,
            context={"config": config, "status": None, "status_ready": asyncio.Event()},
        )
        if window is None:
            return

        try:
            await self._acknowledge(message)
            window.context["status"] = await self._safe_reply(
                message, WINDOW_OPEN_TEXT[kind].format(expires=int(window.expires_at))
            )
        finally:
            window.context["status_ready"].set()

    async def _handle_time_advance(self, message: Any, config: GuildRoleplayConfig):
        guild_id = str(message.guild.id)
        current_date = await self.store.get_current_date(guild_id)
        from_year = first_integer(current_date)
        to_year = first_integer(message.clean_content)
        if from_year is None or to_year is None:
            logger.warning(
                f"Time advance skipped in guild {guild_id}: "
                f"current date {current_date!r}, message {message.clean_content[:50]!r}"
            )
            return
        await self.store.advance_year(guild_id, from_year, to_year)

    async def _handle_diplomacy(self, message: Any, config: GuildRoleplayConfig):
        status = await self._safe_reply(message, ANALYZING_TEXT)
        try:
            request = await self._build_request(Category.DIPLOMACY, message, config, message.clean_content)
            prompt, _ = self.prompts.build(request)
            logger.info(f"Diplomacy from {message.author.id} being analyzed in {message.guild.name}")

            reply = await self.gateway.generate(prompt)
            directive = parse_diplomacy_reply(reply)
            await self.effects.apply_diplomacy(directive, message, config, request.current_date)
        except GatewayExhausted as e:
            logger.error(f"Diplomacy analysis aborted: {e}")
        except ReplyParseError as e:
            self._log_discarded("Diplomacy", e)
        finally:
            await self.effects.delete_message(status)

    async def _handle_context_hygiene(self, message: Any, config: GuildRoleplayConfig):
        logger.info(f"Removing unformatted message {message.id} from context channel {message.channel.id}")
        await self.effects.delete_message(message)

    async def _handle_mention_qa(self, message: Any, config: GuildRoleplayConfig):
        if not self.state.try_start_cooldown(message.author.id):
            await self._safe_reply(message, COOLDOWN_NOTICE)
            return

        logger.info(f"Answering {message.author.id} in {message.guild.name}")
        try:
            async with message.channel.typing():
                history = await self._chat_history(message.channel)
                request = await self._build_request(
                    Category.MENTION_QA,
                    message,
                    config,
                    message.clean_content,
                    image_urls=message_image_urls(message),
                    chat_history=history,
                )
                if not request.context:
                    logger.info(f"No context in guild {message.guild.id}, not answering")
                    return
                prompt, images = self.prompts.build(request)
                reply = await self.gateway.generate(prompt, images, model_ids=self.qa_model_ids)
        except GatewayExhausted as e:
            logger.error(f"Q&A aborted: {e}")
            return

        await self._reply_chain(message, chunkify_text(reply))

    async def _chat_history(self, channel: Any) -> str:
        messages = [m async for m in channel.history(limit=CHAT_HISTORY_LIMIT)]
        messages.sort(key=lambda m: m.created_at)
        return "\n\n".join(format_history_line(m) for m in messages)

    async def _reply_chain(self, message: Any, chunks: List[str]):
        """Each chunk replies to the previous one so long answers read as a thread."""
        last = message
        for chunk in chunks:
            sent = await self._safe_reply(last, chunk)
            if sent is not None:
                last = sent

    # ------------------------------------------------------------------
    # Window close
    # ------------------------------------------------------------------

    async def _on_window_close(self, window: CollectionWindow):
        # Short windows can expire before the status reply is recorded
        ready = window.context.get("status_ready")
        if ready is not None:
            await ready.wait()

        if window.kind == WindowKind.ACTION:
            await self._narrate_action(window)
        else:
            await self._contextualize_event(window)

    async def _narrate_action(self, window: CollectionWindow):
        trigger = window.trigger
        config = window.context["config"]
        status = window.context.get("status")
        try:
            await self._edit_status(status, GENERATING_TEXT[WindowKind.ACTION])
            request = await self._build_request(
                Category.ACTION, trigger, config, window.text(), window.image_urls()
            )
            prompt, images = self.prompts.build(request)
            logger.info(f"Narrating action in {trigger.guild.name} ({trigger.guild.id})")

            reply = await self.gateway.generate(prompt, images)
            directive = parse_narration_reply(reply)
            await self.effects.apply_narration(directive, trigger, config)
        except GatewayExhausted as e:
            logger.error(f"Narration aborted: {e}")
        except ReplyParseError as e:
            self._log_discarded("Narration", e)
        finally:
            await self.effects.cleanup(window.messages, status)

    async def _contextualize_event(self, window: CollectionWindow):
        trigger = window.trigger
        config = window.context["config"]
        status = window.context.get("status")
        try:
            await self._edit_status(status, GENERATING_TEXT[WindowKind.EVENT])
            request = await self._build_request(
                Category.EVENT, trigger, config, window.text(), window.image_urls()
            )
            prompt, images = self.prompts.build(request)
            logger.info(f"Contextualizing event in {trigger.guild.name} ({trigger.guild.id})")

            reply = await self.gateway.generate(prompt, images)
            directive = parse_event_reply(reply)
            await self.effects.apply_event(directive, trigger.guild.id)
        except GatewayExhausted as e:
            logger.error(f"Event contextualization aborted: {e}")
        except ReplyParseError as e:
            self._log_discarded("Event", e)
        finally:
            await self.effects.cleanup(window.messages, status)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def status(self) -> dict:
        return {
            "maintenance": self.maintenance,
            "open_windows": self.state.open_count,
            "cooldowns": self.state.cooldown_count,
            "models": list(self.gateway.model_ids),
            "store_connected": self.store.is_connected,
        }
