import asyncio
from types import SimpleNamespace

import httpx
import openai
import pytest

from chat_service.gateway import OpenAIGateway, build_messages
from chat_service.models import ChatMessage
from shared.errors import GatewayError, GatewayErrorKind

_REQUEST = httpx.Request("POST", "https://api.example.test/v1/chat/completions")


def _msg(seq, role, content, status="committed"):
    return ChatMessage(conversation_id=1, seq=seq, role=role, content=content, status=status)


def _completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def _status_error(cls, code):
    response = httpx.Response(code, request=_REQUEST)
    return cls(f"status {code}", response=response, body=None)


class FakeCompletions:
    def __init__(self, outcome, delay=0.0):
        self.outcome = outcome
        self.delay = delay
        self.requests = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        if self.delay:
            await asyncio.sleep(self.delay)
        if isinstance(self.outcome, BaseException):
            raise self.outcome
        return self.outcome


def _gateway(outcome, delay=0.0, timeout=1.0, system_prompt=None):
    completions = FakeCompletions(outcome, delay)
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return OpenAIGateway(client, model="test-model", timeout=timeout, system_prompt=system_prompt), completions


def test_build_messages_skips_failed_placeholders():
    history = [
        _msg(1, "user", "hi"),
        _msg(2, "assistant", None, status="failed"),
        _msg(3, "user", "hi again"),
    ]
    assert build_messages(history, "be nice") == [
        {"role": "system", "content": "be nice"},
        {"role": "user", "content": "hi"},
        {"role": "user", "content": "hi again"},
    ]


@pytest.mark.anyio
async def test_success_returns_stripped_reply():
    gw, completions = _gateway(_completion("  hello  "), system_prompt="sys")
    assert await gw.complete([_msg(1, "user", "hi")]) == "hello"
    sent = completions.requests[0]
    assert sent["model"] == "test-model"
    assert sent["messages"][-1] == {"role": "user", "content": "hi"}


@pytest.mark.anyio
async def test_deadline_surfaces_as_timeout():
    gw, _ = _gateway(_completion("too late"), delay=0.5, timeout=0.01)
    with pytest.raises(GatewayError) as exc:
        await gw.complete([_msg(1, "user", "hi")])
    assert exc.value.gateway_kind is GatewayErrorKind.TIMEOUT
    assert exc.value.status_code == 504


@pytest.mark.anyio
@pytest.mark.parametrize(
    "error, kind",
    [
        (_status_error(openai.RateLimitError, 429), GatewayErrorKind.RATE_LIMITED),
        (openai.APITimeoutError(request=_REQUEST), GatewayErrorKind.TIMEOUT),
        (openai.APIConnectionError(request=_REQUEST), GatewayErrorKind.UNAVAILABLE),
        (_status_error(openai.InternalServerError, 500), GatewayErrorKind.UNAVAILABLE),
        (_status_error(openai.BadRequestError, 400), GatewayErrorKind.INVALID),
    ],
)
async def test_provider_errors_map_to_kinds(error, kind):
    gw, _ = _gateway(error)
    with pytest.raises(GatewayError) as exc:
        await gw.complete([_msg(1, "user", "hi")])
    assert exc.value.gateway_kind is kind
    assert exc.value.kind == kind.value


@pytest.mark.anyio
@pytest.mark.parametrize("response", [_completion(""), _completion(None), SimpleNamespace(choices=[]), None])
async def test_empty_or_malformed_response_is_invalid(response):
    gw, _ = _gateway(response)
    with pytest.raises(GatewayError) as exc:
        await gw.complete([_msg(1, "user", "hi")])
    assert exc.value.gateway_kind is GatewayErrorKind.INVALID
