from __future__ import annotations

import contextlib
from dataclasses import dataclass, field
from datetime import date
from typing import Callable

from completion.gateway import CompletionError
from completion.gateway import CompletionGateway
from completion.gateway import RateLimitError
from config.defaults import BUDGET_EXCEEDED_NOTICE
from config.defaults import COMPLETION_ERROR_NOTICE
from config.defaults import DISCORD_MAX_MESSAGE_LEN
from config.defaults import DM_RESTRICTED_NOTICE
from config.defaults import MIN_AMBIENT_PROMPT_CHARS
from config.defaults import RATE_LIMITED_NOTICE
from controller.context import ExemptIdentities
from controller.mode import OperatingMode
from controller.persona import Persona
from controller.prompt_assembly import build_prompt_text
from controller.prompt_assembly import clean_completion_text
from memory.service import ConversationMemory
from misc.chunking import chunk_text
from misc.mention_routes import strip_bot_mentions
from usage.service import UsageLedger

# outcomes
DISABLED = "disabled"
MAINTENANCE = "maintenance"
SILENCED = "silenced"
NOT_ELIGIBLE = "not_eligible"
DM_RESTRICTED = "dm_restricted"
OVER_BUDGET = "over_budget"
EMPTY_PROMPT = "empty_prompt"
DEFLECTED = "deflected"
COMPLETION_FAILED = "completion_failed"
ANSWERED = "answered"


@dataclass(frozen=True)
class InboundMessage:
    author_id: str
    channel_id: str
    is_direct_message: bool
    mentions_bot: bool
    raw_text: str
    bot_user_id: str | None = None


@dataclass
class OrchestratorResult:
    outcome: str
    chunks: list[str] = field(default_factory=list)
    tokens_used: int = 0

    @property
    def responded(self) -> bool:
        return bool(self.chunks)


@dataclass(frozen=True)
class OrchestratorPolicy:
    silenced_notice: str = ""
    maintenance_notice: str = ""
    dm_exempt_only: bool = False
    max_message_len: int = DISCORD_MAX_MESSAGE_LEN
    min_ambient_prompt_chars: int = MIN_AMBIENT_PROMPT_CHARS


class ResponseOrchestrator:
    """
    Decides, per inbound message, whether to answer and with what.

    Gates run in order and the first failing gate ends handling. Usage and memory
    are only touched after a successful completion, ledger first.
    """

    def __init__(
        self,
        *,
        mode: OperatingMode,
        ledger: UsageLedger,
        memory: ConversationMemory,
        gateway: CompletionGateway,
        persona: Persona,
        exempt: ExemptIdentities,
        today: Callable[[], date],
        policy: OrchestratorPolicy | None = None,
    ):
        self.mode = mode
        self.ledger = ledger
        self.memory = memory
        self.gateway = gateway
        self.persona = persona
        self.exempt = exempt
        self.today = today
        self.policy = policy or OrchestratorPolicy()

    def _notice(self, outcome: str, text: str) -> OrchestratorResult:
        if not text:
            return OrchestratorResult(outcome)
        return OrchestratorResult(outcome, chunk_text(text, self.policy.max_message_len))

    def is_eligible(self, message: InboundMessage) -> bool:
        if message.is_direct_message or message.mentions_bot:
            return True
        if self.mode.allow_all:
            return True
        return str(message.channel_id) in self.mode.allowed_channel_ids

    async def handle(self, message: InboundMessage, *, typing: Callable | None = None) -> OrchestratorResult:
        uid = str(message.author_id)
        exempt = self.exempt.is_exempt(uid)

        if not exempt:
            if self.mode.maintenance_mode:
                return self._notice(MAINTENANCE, self.policy.maintenance_notice)
            if not self.mode.enabled:
                return OrchestratorResult(DISABLED)
            if self.mode.silenced:
                if message.mentions_bot:
                    return self._notice(SILENCED, self.policy.silenced_notice)
                return OrchestratorResult(SILENCED)

        if not self.is_eligible(message):
            return OrchestratorResult(NOT_ELIGIBLE)

        if message.is_direct_message and self.policy.dm_exempt_only and not exempt:
            return self._notice(DM_RESTRICTED, DM_RESTRICTED_NOTICE)

        if not exempt and await self.ledger.is_over_budget(uid):
            return self._notice(
                OVER_BUDGET,
                BUDGET_EXCEEDED_NOTICE.format(limit=self.mode.token_limit_per_day),
            )

        user_prompt = strip_bot_mentions(message.raw_text, message.bot_user_id)
        if not user_prompt:
            return OrchestratorResult(EMPTY_PROMPT)
        ambient = not (message.is_direct_message or message.mentions_bot)
        if ambient and len(user_prompt) < self.policy.min_ambient_prompt_chars:
            return OrchestratorResult(EMPTY_PROMPT)

        rule = self.persona.match_deflection(user_prompt)
        if rule is not None:
            return self._notice(DEFLECTED, rule.reply)

        transcript = ""
        if self.mode.memory_enabled:
            history = await self.memory.get_history(uid)
            transcript = self.memory.format_for_prompt(history, bot_name=self.persona.name)
        prompt_text = build_prompt_text(
            preamble=self.persona.render_preamble(user_id=uid, date=self.today().isoformat()),
            transcript=transcript,
            user_prompt=user_prompt,
            bot_name=self.persona.name,
        )

        typing_cm = typing() if typing is not None else contextlib.nullcontext()
        try:
            async with typing_cm:
                result = await self.gateway.complete(prompt_text)
        except RateLimitError as e:
            print(f"[Completion] rate limited user={uid}: {e}")
            return self._notice(COMPLETION_FAILED, RATE_LIMITED_NOTICE)
        except CompletionError as e:
            print(f"[Completion] failed user={uid}: {e}")
            return self._notice(COMPLETION_FAILED, COMPLETION_ERROR_NOTICE)

        response_text = clean_completion_text(result.text, bot_name=self.persona.name)

        if not exempt:
            await self.ledger.record_usage(uid, result.tokens_used)
        if self.mode.memory_enabled:
            await self.memory.append_exchange(uid, user_prompt, response_text)

        return OrchestratorResult(
            ANSWERED,
            chunk_text(response_text, self.policy.max_message_len),
            tokens_used=result.tokens_used,
        )
