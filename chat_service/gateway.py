import asyncio
import logging
from typing import Protocol, Sequence, cast

import openai
from openai import AsyncOpenAI
from openai.types.chat import ChatCompletionMessageParam

from shared.errors import GatewayError, GatewayErrorKind
from .models import ROLE_ASSISTANT, ROLE_USER, STATUS_COMMITTED, ChatMessage

logger = logging.getLogger("chat-service")


class CompletionGateway(Protocol):
    async def complete(self, history: Sequence[ChatMessage]) -> str:
        """Return the assistant reply for ``history`` or raise ``GatewayError``."""
        ...


def build_messages(history: Sequence[ChatMessage], system_prompt: str | None = None):
    msgs: list[dict] = []
    if system_prompt:
        msgs.append({"role": "system", "content": system_prompt})

    for m in history:
        # failed placeholders carry no content and mean nothing to the provider
        if m.role in (ROLE_USER, ROLE_ASSISTANT) and m.status == STATUS_COMMITTED and m.content:
            msgs.append({"role": m.role, "content": m.content})

    return cast(list[ChatCompletionMessageParam], msgs)


def get_or_client(api_key: str, base_url: str | None = None, timeout: float = 30.0) -> AsyncOpenAI:
    # max_retries=0: retrying is the caller's decision, never the SDK's.
    # Without a key every call fails with 401, which surfaces as an "invalid" turn.
    return AsyncOpenAI(api_key=api_key or "missing", base_url=base_url, timeout=timeout, max_retries=0)


class OpenAIGateway:
    """
    Stateless adapter over the chat-completions endpoint.

    One request per call, bounded by ``timeout`` seconds. Every failure comes
    out as a ``GatewayError`` with one of four kinds; the gateway never touches
    the conversation store.
    """

    def __init__(self, client: AsyncOpenAI, model: str, timeout: float = 30.0, system_prompt: str | None = None):
        self._client = client
        self._model = model
        self._timeout = timeout
        self._system_prompt = system_prompt

    async def complete(self, history: Sequence[ChatMessage]) -> str:
        input_messages = build_messages(history, self._system_prompt)

        try:
            resp = await asyncio.wait_for(
                self._client.chat.completions.create(model=self._model, messages=input_messages),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            raise GatewayError(GatewayErrorKind.TIMEOUT, f"No reply within {self._timeout:g}s")
        except openai.RateLimitError:
            raise GatewayError(GatewayErrorKind.RATE_LIMITED, "Rate limited. Please retry in a few seconds.")
        except openai.APITimeoutError:
            raise GatewayError(GatewayErrorKind.TIMEOUT, "Completion provider timed out")
        except openai.APIConnectionError as e:
            logger.warning("Completion provider unreachable: %s", e)
            raise GatewayError(GatewayErrorKind.UNAVAILABLE, "Completion provider unavailable")
        except openai.APIStatusError as e:
            logger.warning("Completion provider returned %s", e.status_code)
            if e.status_code >= 500:
                raise GatewayError(GatewayErrorKind.UNAVAILABLE, f"LLM provider error: {e.status_code}")
            raise GatewayError(GatewayErrorKind.INVALID, f"LLM provider rejected the request: {e.status_code}")

        if resp is not None and getattr(resp, "choices", None):
            reply = (resp.choices[0].message.content or "").strip()
        else:
            reply = ""
        if not reply:
            raise GatewayError(GatewayErrorKind.INVALID, "Completion provider returned no content")
        return reply
