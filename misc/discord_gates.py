from __future__ import annotations

import discord
from controller.orchestrator import InboundMessage


def eligibility_channel_id(message: discord.Message) -> str:
    channel = message.channel
    # thread: the parent channel decides eligibility
    if isinstance(channel, discord.Thread) and channel.parent_id:
        return str(channel.parent_id)
    return str(getattr(channel, "id", "") or "")


def message_mentions_bot(message: discord.Message, bot_user) -> bool:
    if bot_user is None:
        return False
    if any(getattr(u, "id", None) == bot_user.id for u in (message.mentions or [])):
        return True
    # replying to one of the bot's messages counts as addressing it
    ref = getattr(message, "reference", None)
    resolved = getattr(ref, "resolved", None) if ref is not None else None
    author = getattr(resolved, "author", None)
    return author is not None and getattr(author, "id", None) == bot_user.id


def inbound_from_message(message: discord.Message, bot_user) -> InboundMessage:
    return InboundMessage(
        author_id=str(message.author.id),
        channel_id=eligibility_channel_id(message),
        is_direct_message=getattr(message, "guild", None) is None,
        mentions_bot=message_mentions_bot(message, bot_user),
        raw_text=message.content or "",
        bot_user_id=str(bot_user.id) if bot_user is not None else None,
    )
