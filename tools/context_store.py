"""
ContextStore — Async MongoDB service for per-guild roleplay state.

Every write passes through Pydantic validation. Raw dicts are never written
directly. The context log is append-only: entries are inserted, never
updated or removed by the bot.

Requires:
  - MONGODB_URI in .env (default: mongodb://localhost:27017)
  - MONGODB_DB (default: roleplay_narrator)
"""

import os
import re
import logging
from typing import List, Optional, Dict, Any

from motor.motor_asyncio import AsyncIOMotorClient
from pydantic import ValidationError

from models.guild_config import GuildRoleplayConfig, GuildSetup
from models.world_state import ContextEntry, Player, War

logger = logging.getLogger("ContextStore")

DEFAULT_CONTEXT_LIMIT = 30

_YEAR = re.compile(r"\d+")


class ContextStore:
    """Async MongoDB-backed store, scoped by guild id on every call.

    Collections:
        configs  — Finished guild configurations (written by the setup flow)
        setup    — In-progress setup flows
        roleplay — One document per guild holding the current roleplay date
        players  — Player ↔ country roster
        wars     — Wars tracked as forum threads
        context  — Append-only world context log
    """

    def __init__(
        self,
        uri: Optional[str] = None,
        db_name: Optional[str] = None,
    ):
        self.uri = uri or os.getenv("MONGODB_URI", "mongodb://localhost:27017")
        self.db_name = db_name or os.getenv("MONGODB_DB", "roleplay_narrator")
        self._client: Any = None
        self._db: Any = None

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def connect(self) -> bool:
        """Connect to MongoDB. Returns True on success."""
        try:
            self._client = AsyncIOMotorClient(self.uri)
            await self._client.admin.command("ping")
            self._db = self._client[self.db_name]
            logger.info(f"ContextStore connected to MongoDB: {self.db_name}")
            return True
        except Exception as e:
            logger.error(f"MongoDB connection failed: {e}")
            self._client = None
            self._db = None
            return False

    async def close(self):
        """Close the MongoDB connection."""
        if self._client:
            self._client.close()
            self._client = None
            self._db = None

    @property
    def is_connected(self) -> bool:
        return self._db is not None

    def _require_connection(self):
        if not self.is_connected:
            raise RuntimeError("ContextStore is not connected to MongoDB.")

    # ------------------------------------------------------------------
    # Guild configuration
    # ------------------------------------------------------------------

    async def get_guild_config(self, guild_id: str) -> Optional[GuildRoleplayConfig]:
        """The guild's finished configuration, or None if it has none (or it is invalid)."""
        self._require_connection()
        doc = await self._db.configs.find_one({"server_id": str(guild_id)})
        if not doc:
            return None
        doc.pop("_id", None)
        try:
            return GuildRoleplayConfig.model_validate(doc)
        except ValidationError as e:
            logger.error(f"Invalid config document for guild {guild_id}: {e}")
            return None

    async def get_guild_setup(self, guild_id: str) -> Optional[GuildSetup]:
        self._require_connection()
        doc = await self._db.setup.find_one({"server_id": str(guild_id)})
        if not doc:
            return None
        doc.pop("_id", None)
        try:
            return GuildSetup.model_validate(doc)
        except ValidationError as e:
            logger.error(f"Invalid setup document for guild {guild_id}: {e}")
            return None

    async def mark_setup_started(self, guild_id: str, existing: bool) -> bool:
        """Move the setup flow to step 1, creating a tier-0 document if there is none."""
        self._require_connection()
        guild_id = str(guild_id)
        if existing:
            await self._db.setup.update_one(
                {"server_id": guild_id},
                {"$set": {"server_setup_step": 1}},
            )
        else:
            doc = GuildSetup(server_id=guild_id, server_tier=0, server_setup_step=1).model_dump()
            doc["server"] = {}
            await self._db.setup.insert_one(doc)
        logger.info(f"Setup flow marked as started for guild {guild_id}")
        return True

    # ------------------------------------------------------------------
    # Roleplay date
    # ------------------------------------------------------------------

    async def get_current_date(self, guild_id: str) -> str:
        """The guild's current roleplay date string ("" if never set)."""
        self._require_connection()
        doc = await self._db.roleplay.find_one({"server_id": str(guild_id)})
        return (doc or {}).get("current_date") or ""

    async def advance_year(self, guild_id: str, from_year: int, to_year: int) -> Optional[str]:
        """Rewrite `from_year` to `to_year` inside the current date string.

        The first number equal to `from_year` is replaced; if the date has no
        such number the whole date becomes `to_year`. Returns the new date.
        """
        self._require_connection()
        guild_id = str(guild_id)
        current = await self.get_current_date(guild_id)

        replaced = False

        def _swap(match):
            nonlocal replaced
            if not replaced and int(match.group(0)) == from_year:
                replaced = True
                return str(to_year)
            return match.group(0)

        new_date = _YEAR.sub(_swap, current)
        if not replaced:
            new_date = str(to_year)

        await self._db.roleplay.update_one(
            {"server_id": guild_id},
            {"$set": {"current_date": new_date}},
            upsert=True,
        )
        logger.info(f"Guild {guild_id}: year {from_year} -> {to_year} ('{new_date}')")
        return new_date

    # ------------------------------------------------------------------
    # Players
    # ------------------------------------------------------------------

    async def get_all_players(self, guild_id: str) -> List[Player]:
        self._require_connection()
        docs = await self._db.players.find({"server_id": str(guild_id)}).to_list(length=None)
        players = []
        for doc in docs:
            doc.pop("_id", None)
            try:
                players.append(Player.model_validate(doc))
            except ValidationError as e:
                logger.warning(f"Skipping invalid player document: {e}")
        return players

    # ------------------------------------------------------------------
    # Wars
    # ------------------------------------------------------------------

    async def get_wars(self, guild_id: str) -> List[War]:
        self._require_connection()
        docs = await (
            self._db.wars.find({"server_id": str(guild_id)})
            .sort("created_at", 1)
            .to_list(length=None)
        )
        wars = []
        for doc in docs:
            doc.pop("_id", None)
            try:
                wars.append(War.model_validate(doc))
            except ValidationError as e:
                logger.warning(f"Skipping invalid war document: {e}")
        return wars

    async def add_war(self, guild_id: str, thread_id: str, title: str, synopsis: str) -> bool:
        """Validate and record a war. Returns True on success."""
        self._require_connection()
        try:
            war = War(server_id=guild_id, thread_id=thread_id, title=title, synopsis=synopsis)
        except ValidationError as e:
            logger.error(f"War validation failed: {e}")
            return False
        await self._db.wars.update_one(
            {"server_id": war.server_id, "thread_id": war.thread_id},
            {"$set": war.model_dump()},
            upsert=True,
        )
        return True

    async def update_war_synopsis(self, guild_id: str, thread_id: str, synopsis: str) -> bool:
        """Returns False if the war is not recorded."""
        self._require_connection()
        result = await self._db.wars.update_one(
            {"server_id": str(guild_id), "thread_id": str(thread_id)},
            {"$set": {"synopsis": synopsis}},
        )
        return result.matched_count > 0

    # ------------------------------------------------------------------
    # Context log (append-only)
    # ------------------------------------------------------------------

    async def get_context(self, guild_id: str, limit: int = DEFAULT_CONTEXT_LIMIT) -> str:
        """The most recent entries, oldest first, separated by blank lines."""
        self._require_connection()
        docs = await (
            self._db.context.find({"server_id": str(guild_id)})
            .sort("timestamp", -1)
            .limit(limit)
            .to_list(length=limit)
        )
        return "\n\n".join(doc.get("text", "") for doc in reversed(docs) if doc.get("text"))

    async def append_context(self, text: str, guild_id: str) -> bool:
        """Append one entry. Empty text is not written. Returns True if written."""
        self._require_connection()
        try:
            entry = ContextEntry(server_id=guild_id, text=text or "")
        except ValidationError:
            logger.warning(f"Empty context update for guild {guild_id} ignored")
            return False
        await self._db.context.insert_one(entry.model_dump())
        logger.info(f"Context appended for guild {guild_id} ({len(entry.text)} chars)")
        return True

    async def get_stats(self) -> Dict[str, int]:
        """Document counts per collection (for the status command)."""
        self._require_connection()
        stats = {}
        for name in ("configs", "setup", "players", "wars", "context"):
            stats[name] = await self._db[name].count_documents({})
        return stats
