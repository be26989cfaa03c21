"""
Roleplay Narrator — Discord Bot Client

Core bot setup, shared services and event handling. Admin !commands live
in Cogs (bot/cogs/). All narration logic lives in bot/pipeline.py; this
module only builds the services and forwards messages to it.
"""

import os
import asyncio
import logging
from collections import deque
import discord
from discord.ext import commands
from dotenv import load_dotenv

from google import genai

from bot.effects import EffectApplier
from bot.pipeline import NarrationPipeline
from tools.collector_state import CollectorState
from tools.context_store import ContextStore
from tools.gemini_gateway import GeminiGateway, parse_model_list
from tools.image_search import ImageSearch
from tools.prompt_builder import PromptBuilder

logger = logging.getLogger("Narrator_Bot")

# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------
load_dotenv()
DISCORD_TOKEN = os.getenv("DISCORD_BOT_TOKEN")
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
BOT_NAME = os.getenv("BOT_NAME", "Salazar")
BOT_SITE = os.getenv("BOT_SITE", "")
MAINTENANCE = bool(os.getenv("MAINTENANCE"))

BOT_OWNERS = [o.strip() for o in os.getenv("BOT_OWNERS", "").split(",") if o.strip()]

MODEL_IDS = parse_model_list(os.getenv("GEMINI_MODELS"))
QA_MODEL_ID = os.getenv("GEMINI_QA_MODEL")

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
if not os.path.exists("logs"):
    os.makedirs("logs")

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[
        logging.FileHandler("logs/narrator.log", encoding="utf-8"),
        logging.StreamHandler(),
    ],
)

# ---------------------------------------------------------------------------
# Gemini Client
# ---------------------------------------------------------------------------
if not GEMINI_API_KEY:
    print("Error: GEMINI_API_KEY not found in environment.")
    gemini_client = None
else:
    gemini_client = genai.Client(api_key=GEMINI_API_KEY)

gateway = GeminiGateway(gemini_client, MODEL_IDS)
logger.info(f"Gemini models (in order): {', '.join(MODEL_IDS)}")

# ---------------------------------------------------------------------------
# Shared services
# ---------------------------------------------------------------------------
store = ContextStore()  # async connect happens in on_ready
image_search = ImageSearch()
if not image_search.enabled:
    logger.info("Image search disabled (GOOGLE_SEARCH_API_KEY / GOOGLE_SEARCH_ENGINE_ID not set).")

# Unknown placeholders fail here, before the bot logs in
prompts = PromptBuilder.from_env()

collector_state = CollectorState()

# ---------------------------------------------------------------------------
# Discord Bot Instance
# ---------------------------------------------------------------------------
intents = discord.Intents.default()
intents.message_content = True
intents.members = True
bot = commands.Bot(command_prefix="!", intents=intents, help_command=None)

effects = EffectApplier(bot, store, image_search=image_search, site=BOT_SITE)
pipeline = NarrationPipeline(
    bot,
    store,
    gateway,
    prompts,
    effects,
    state=collector_state,
    owners=BOT_OWNERS,
    bot_name=BOT_NAME,
    maintenance=MAINTENANCE,
    qa_model_ids=[QA_MODEL_ID] if QA_MODEL_ID else None,
)

# Discord can re-deliver on gateway reconnections
_seen_messages: deque = deque(maxlen=1000)

# ---------------------------------------------------------------------------
# Attach shared services to bot so cogs can access them via self.bot
# ---------------------------------------------------------------------------
bot.store = store
bot.gateway = gateway
bot.pipeline = pipeline


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------
@bot.event
async def on_ready():
    logger.info(f"Logged in as {bot.user.name} ({bot.user.id})")

    if await store.connect():
        logger.info("ContextStore connected.")
    else:
        logger.warning("ContextStore unavailable — messages will be ignored until it connects.")

    if pipeline.maintenance:
        logger.warning("Starting in maintenance mode.")

    print(f"{BOT_NAME} online. Narrating {len(bot.guilds)} guild(s).")


@bot.event
async def on_message(message):
    if message.author == bot.user:
        return

    if message.author.bot:
        return

    if message.id in _seen_messages:
        return
    _seen_messages.append(message.id)

    # Let commands go through the normal handler
    if message.content.startswith("!"):
        await bot.process_commands(message)
        return

    if not store.is_connected:
        return

    await pipeline.handle_message(message)


# ---------------------------------------------------------------------------
# Cog Loading & Entry Point
# ---------------------------------------------------------------------------
async def load_cogs():
    """Load all Cog extensions."""
    await bot.load_extension("bot.cogs.admin_cog")
    logger.info("All Cogs loaded.")


async def main():
    """Async entry point — load cogs then start the bot."""
    try:
        async with bot:
            await load_cogs()
            await bot.start(DISCORD_TOKEN)
    finally:
        await store.close()


def run():
    """Synchronous entry point for scripts."""
    if not DISCORD_TOKEN:
        print("Error: DISCORD_BOT_TOKEN not found via os.getenv")
        return
    asyncio.run(main())
