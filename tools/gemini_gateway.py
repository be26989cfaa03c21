"""
GeminiGateway — Ordered multi-model fallback over the Gemini API.

Tries each configured model in order until one returns text. Only raises
(GatewayExhausted) when every model failed. Image URLs are downloaded and
sent inline; if any image cannot be fetched the request goes out as text
only rather than failing.
"""

import asyncio
import logging
from typing import Any, List, Optional, Sequence

import aiohttp
from google import genai

from tools.errors import GatewayExhausted

logger = logging.getLogger("GeminiGateway")

DEFAULT_MODELS = ["gemini-2.5-flash", "gemini-2.0-flash", "gemini-2.0-flash-lite"]

_MIME_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
}


def detect_mime_type(url: str) -> str:
    """Guess an image MIME type from the URL's extension (default image/png)."""
    path = url.lower().split("?", 1)[0]
    extension = path.rsplit(".", 1)[-1] if "." in path else ""
    return _MIME_TYPES.get(extension, "image/png")


def parse_model_list(raw: Optional[str]) -> List[str]:
    """Parse a comma-separated model list, falling back to DEFAULT_MODELS."""
    models = [m.strip() for m in (raw or "").split(",") if m.strip()]
    return models or list(DEFAULT_MODELS)


class GeminiGateway:
    """Generates text with the first configured model that answers."""

    def __init__(
        self,
        client,
        model_ids: Optional[Sequence[str]] = None,
        image_timeout: int = 15,
    ):
        self.client = client
        self.model_ids = list(model_ids or DEFAULT_MODELS)
        self.image_timeout = image_timeout

    async def _fetch_image(self, session: aiohttp.ClientSession, url: str) -> Any:
        timeout = aiohttp.ClientTimeout(total=self.image_timeout)
        async with session.get(url, timeout=timeout) as resp:
            if resp.status >= 400:
                raise RuntimeError(f"Image fetch failed ({resp.status}): {url}")
            data = await resp.read()
        return genai.types.Part.from_bytes(data=data, mime_type=detect_mime_type(url))

    async def _image_parts(self, image_urls: Sequence[str]) -> List[Any]:
        urls = [u for u in image_urls if isinstance(u, str) and u]
        if not urls:
            return []
        try:
            async with aiohttp.ClientSession() as session:
                return list(await asyncio.gather(*(self._fetch_image(session, u) for u in urls)))
        except Exception as e:
            logger.warning(f"Ignoring {len(urls)} image(s) after fetch error: {e}")
            return []

    async def generate(
        self,
        prompt: str,
        image_urls: Optional[Sequence[str]] = None,
        model_ids: Optional[Sequence[str]] = None,
    ) -> str:
        """Return the text of the first successful model reply.

        Raises:
            ValueError: empty prompt.
            GatewayExhausted: every model failed or answered with empty text.
        """
        if not prompt or not isinstance(prompt, str):
            raise ValueError("Prompt must be a non-empty string")
        if not self.client:
            raise GatewayExhausted(["No Gemini client configured"])

        models = list(model_ids or self.model_ids)
        parts = await self._image_parts(image_urls or [])
        contents: Any = [prompt, *parts] if parts else prompt

        errors = []
        for model in models:
            try:
                response = await self.client.aio.models.generate_content(
                    model=model,
                    contents=contents,
                )
                text = getattr(response, "text", None)
                if not text:
                    raise RuntimeError("empty response")
                logger.info(f"Reply generated with {model}")
                return text
            except Exception as e:
                logger.warning(f"Model {model} failed: {e}")
                errors.append(f"{model}: {e}")

        logger.error(f"All models failed: {errors}")
        raise GatewayExhausted(errors)
