from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from config.defaults import DEFAULT_BOT_NAME

DEFAULT_PREAMBLE = (
    "You are {name}, a friendly assistant for the community server. "
    "Be concise, natural, and direct. No third-person narration. "
    "User ID: {user_id}. Date: {date}."
)


@dataclass(slots=True)
class DeflectionRule:
    id: str
    keywords: list[str]
    reply: str

    def matches(self, prompt: str) -> bool:
        text = (prompt or "").lower()
        for keyword in self.keywords:
            kw = keyword.strip().lower()
            if kw and re.search(rf"(?<!\w){re.escape(kw)}(?!\w)", text):
                return True
        return False


@dataclass(slots=True)
class Persona:
    version: str = "persona_v1"
    name: str = DEFAULT_BOT_NAME
    preamble: str = DEFAULT_PREAMBLE
    deflections: list[DeflectionRule] = field(default_factory=list)

    def render_preamble(self, *, user_id: str, date: str) -> str:
        try:
            return self.preamble.format(name=self.name, user_id=user_id, date=date)
        except (KeyError, IndexError, ValueError):
            # unknown placeholders in a hand-edited file; use the text as written
            return self.preamble

    def match_deflection(self, prompt: str) -> DeflectionRule | None:
        for rule in self.deflections:
            if rule.matches(prompt):
                return rule
        return None


def default_persona() -> Persona:
    return Persona()


def _as_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    out: list[str] = []
    for item in value:
        text = str(item or "").strip()
        if text:
            out.append(text)
    return out


def _parse_deflections(value: Any) -> list[DeflectionRule]:
    if not isinstance(value, list):
        return []
    rules: list[DeflectionRule] = []
    for idx, item in enumerate(value):
        if not isinstance(item, dict):
            continue
        keywords = _as_list(item.get("keywords"))
        reply = str(item.get("reply") or "").strip()
        if not keywords or not reply:
            continue
        rules.append(DeflectionRule(id=str(item.get("id") or f"rule_{idx}"), keywords=keywords, reply=reply))
    return rules


def load_persona(path: str | Path | None, *, name_override: str | None = None) -> tuple[Persona, str | None]:
    """
    Returns (persona, warning_message). warning_message is None on clean load.
    """
    defaults = default_persona()
    if name_override:
        defaults.name = name_override
    if not path:
        return (defaults, "Persona path missing; using built-in defaults.")

    p = Path(path)
    if not p.exists():
        return (defaults, f"Persona file not found at {p}; using built-in defaults.")

    try:
        payload = yaml.safe_load(p.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        return (defaults, f"Failed to read persona from {p}: {exc}; using built-in defaults.")

    if not isinstance(payload, dict):
        return (defaults, f"Invalid persona format in {p}; using built-in defaults.")

    persona = Persona(
        version=str(payload.get("version") or defaults.version),
        name=name_override or str(payload.get("name") or defaults.name),
        preamble=str(payload.get("preamble") or defaults.preamble).strip(),
        deflections=_parse_deflections(payload.get("deflections")),
    )
    return (persona, None)
