from __future__ import annotations

import random
import re

from config.defaults import FALLBACK_REPLIES

_THINK_BLOCK_RE = re.compile(r"<think>.*?</think>", flags=re.S | re.I)
_BOILERPLATE_MARKERS = ("as an ai language model",)


def build_prompt_text(
    *,
    preamble: str,
    transcript: str,
    user_prompt: str,
    bot_name: str,
    max_chars: int = 12000,
) -> str:
    parts = [(preamble or "").strip()]
    if transcript:
        parts.append(transcript.strip())
    parts.append(f"User: {(user_prompt or '').strip()}\n{bot_name}:")
    text = "\n\n".join(p for p in parts if p)
    if len(text) > max_chars:
        # keep the tail: the current prompt and the freshest turns matter most
        text = text[-max_chars:]
    return text


def clean_completion_text(text: str, *, bot_name: str, fallback_replies: tuple[str, ...] = FALLBACK_REPLIES) -> str:
    out = _THINK_BLOCK_RE.sub("", text or "")
    # a dangling <think> without its closing tag swallows everything after it
    out = re.sub(r"<think>.*$", "", out, flags=re.S | re.I).strip()
    out = re.sub(rf"^(?:{re.escape(bot_name)}|Bot|Assistant)\s*:\s*", "", out, flags=re.I)
    out = out.strip()
    if not out or any(marker in out.lower() for marker in _BOILERPLATE_MARKERS):
        return random.choice(fallback_replies)
    return out
