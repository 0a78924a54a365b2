from __future__ import annotations

import asyncio
from dataclasses import dataclass

import openai


class CompletionError(RuntimeError):
    """Base class for failed completion calls."""


class AuthError(CompletionError):
    pass


class RateLimitError(CompletionError):
    pass


class NetworkError(CompletionError):
    pass


@dataclass(frozen=True)
class CompletionOptions:
    max_tokens: int = 300
    temperature: float = 0.75


@dataclass(frozen=True)
class CompletionResult:
    text: str
    tokens_used: int


def translate_openai_error(exc: Exception) -> CompletionError:
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return AuthError(f"completion credential rejected: {exc}")
    if isinstance(exc, openai.RateLimitError):
        return RateLimitError(f"completion rate limited: {exc}")
    return NetworkError(f"completion transport failure: {exc}")


class CompletionGateway:
    """
    Prompt-in, text-and-token-cost-out wrapper around an OpenAI-compatible client.

    The client call is synchronous, so it runs in a worker thread bounded by
    ``timeout_seconds``. Nothing is retried here.
    """

    def __init__(
        self,
        *,
        client,
        model: str,
        options: CompletionOptions | None = None,
        timeout_seconds: float = 30.0,
    ):
        self.client = client
        self.model = model
        self.options = options or CompletionOptions()
        self.timeout_seconds = float(timeout_seconds)

    async def complete(self, prompt_text: str, options: CompletionOptions | None = None) -> CompletionResult:
        opts = options or self.options
        try:
            resp = await asyncio.wait_for(
                asyncio.to_thread(
                    self.client.chat.completions.create,
                    model=self.model,
                    messages=[{"role": "user", "content": prompt_text}],
                    max_tokens=int(opts.max_tokens),
                    temperature=float(opts.temperature),
                ),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise NetworkError(f"completion timed out after {self.timeout_seconds:.0f}s") from e
        except openai.OpenAIError as e:
            raise translate_openai_error(e) from e

        try:
            text = resp.choices[0].message.content or ""
        except (AttributeError, IndexError) as e:
            raise NetworkError(f"malformed completion response: {e}") from e

        usage = getattr(resp, "usage", None)
        tokens_used = int(getattr(usage, "total_tokens", 0) or 0) if usage is not None else 0
        return CompletionResult(text=text, tokens_used=max(0, tokens_used))
