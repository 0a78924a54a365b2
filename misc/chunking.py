from __future__ import annotations

from config.defaults import DISCORD_MAX_MESSAGE_LEN

# preferred split points, strongest first
_BREAKS = ("\n\n", "\n", " ", "\t")


def _split_index(window: str, limit: int) -> int:
    """Index just past the best whitespace break in the trailing half of window."""
    floor = limit // 2
    for sep in _BREAKS:
        idx = window.rfind(sep, floor, limit)
        if idx != -1:
            return idx + len(sep)
    return limit


def chunk_text(text: str, limit: int = DISCORD_MAX_MESSAGE_LEN, *, word_boundaries: bool = True) -> list[str]:
    """
    Split text into pieces of at most ``limit`` characters.

    Concatenating the pieces always reproduces the input. With word_boundaries the
    cut lands just after a paragraph break, newline or space when one exists in the
    trailing half of the window; otherwise it is a hard cut at the limit.
    """
    if limit <= 0:
        raise ValueError("limit must be positive")
    text = text or ""
    if len(text) <= limit:
        return [text] if text else []

    chunks: list[str] = []
    remaining = text
    while len(remaining) > limit:
        split_at = _split_index(remaining[:limit], limit) if word_boundaries else limit
        chunks.append(remaining[:split_at])
        remaining = remaining[split_at:]
    if remaining:
        chunks.append(remaining)
    return chunks


async def send_chunks(channel, chunks: list[str]) -> int:
    sent = 0
    for part in chunks:
        # the platform rejects whitespace-only messages
        if not part.strip():
            continue
        await channel.send(part)
        sent += 1
    return sent


async def send_chunked(channel, text: str, limit: int = DISCORD_MAX_MESSAGE_LEN) -> int:
    return await send_chunks(channel, chunk_text(text, limit))
