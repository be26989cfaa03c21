"""
Text helpers shared by the classifier, the reply parser and the effect applier.

Pure Python. Keyword matching is accent- and case-insensitive because players
write "ação", "Acao" and "AÇÃO" interchangeably.
"""

import re
import unicodedata
from typing import List, Optional, Tuple

# Discord rejects messages longer than this
DISCORD_MESSAGE_LIMIT = 2000

DIFF_MARKER = "```diff"

_FIRST_INT = re.compile(r"\d+")


def simplify_string(text: Optional[str]) -> str:
    """Lowercase and strip diacritics ("Ação" -> "acao")."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text)
    stripped = "".join(c for c in decomposed if unicodedata.category(c) != "Mn")
    return stripped.lower()


def contains_simplified(text: Optional[str], needle: Optional[str]) -> bool:
    """True if `needle` occurs in `text` ignoring case and accents."""
    simple_needle = simplify_string(needle)
    if not simple_needle:
        return False
    return simple_needle in simplify_string(text)


def first_integer(text: Optional[str]) -> Optional[int]:
    """Return the first run of digits in `text` as an int, or None."""
    if not text:
        return None
    match = _FIRST_INT.search(text)
    return int(match.group(0)) if match else None


def chunkify_text(text: Optional[str], limit: int = DISCORD_MESSAGE_LIMIT) -> List[str]:
    """Split text into contiguous slices of at most `limit` characters.

    Cuts after the last newline in the window, else after the last space,
    else hard at the limit. Separators stay attached to the chunk they end,
    so "".join(chunks) == text.
    """
    if not text:
        return []
    if limit <= 0:
        raise ValueError("limit must be positive")

    chunks: List[str] = []
    start = 0
    while len(text) - start > limit:
        window = text[start:start + limit]
        cut = window.rfind("\n")
        if cut <= 0:
            cut = window.rfind(" ")
        cut = limit if cut <= 0 else cut + 1
        chunks.append(text[start:start + cut])
        start += cut
    chunks.append(text[start:])
    return chunks


def split_diff_block(narration: str) -> Tuple[str, Optional[str]]:
    """Split a narration at the first ```diff fence.

    Returns (main_text, diff_text). diff_text runs from the marker to the
    end of the narration, or is None when there is no fenced diff.
    """
    index = narration.find(DIFF_MARKER)
    if index == -1:
        return narration, None
    return narration[:index], narration[index:]


def split_narration(narration: str, limit: int = DISCORD_MESSAGE_LIMIT) -> List[str]:
    """Chunk a narration keeping its diff block as a separate unit.

    The diff block is only cut when it alone exceeds the limit.
    """
    main_text, diff_text = split_diff_block(narration)
    chunks = chunkify_text(main_text, limit)
    if diff_text:
        chunks.extend(chunkify_text(diff_text, limit))
    return chunks
