"""
ImageSearch — Best-effort image lookup for NPC webhook avatars.

Uses the Google Custom Search JSON API in image mode. Every failure mode
(no keys, HTTP error, no results) returns None; callers proceed without
an avatar.
"""

import os
import asyncio
import logging
from typing import Optional

import aiohttp

logger = logging.getLogger("ImageSearch")

SEARCH_URL = "https://www.googleapis.com/customsearch/v1"


class ImageSearch:
    def __init__(
        self,
        api_key: Optional[str] = None,
        engine_id: Optional[str] = None,
        timeout: int = 10,
    ):
        self.api_key = api_key or os.getenv("GOOGLE_SEARCH_API_KEY")
        self.engine_id = engine_id or os.getenv("GOOGLE_SEARCH_ENGINE_ID")
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.api_key and self.engine_id)

    async def search_image(self, query: str) -> Optional[str]:
        """Return the URL of the first image result for `query`, or None."""
        if not self.enabled or not query:
            return None

        params = {
            "key": self.api_key,
            "cx": self.engine_id,
            "q": query,
            "searchType": "image",
            "num": 1,
            "safe": "active",
        }
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    SEARCH_URL,
                    params=params,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as resp:
                    if resp.status != 200:
                        logger.warning(f"Image search returned {resp.status} for '{query}'")
                        return None
                    data = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Image search failed for '{query}': {e}")
            return None

        items = data.get("items") or []
        if not items:
            return None
        return items[0].get("link")
