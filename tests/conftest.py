import json
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

from govairn.domain.models import Persona, ProposalContext
from govairn.infrastructure.cache.completion_cache import CompletionCache
from govairn.infrastructure.llm.completion_gateway import CompletionGateway
from govairn.infrastructure.llm.retry import RetryPolicy
from govairn.utils.time import ManualClock


class SleepRecorder:
    """Stands in for asyncio.sleep; records requested delays"""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def chat_response(content: str, status_code: int = 200) -> httpx.Response:
    return httpx.Response(
        status_code,
        json={"choices": [{"index": 0, "message": {"role": "assistant", "content": content}}]},
    )


class FakeCompletionServer:
    """
    MockTransport handler serving queued responses.

    Queue items are a dict (JSON-encoded into the message), a raw string,
    an httpx.Response, or an exception instance to raise.
    """

    def __init__(self, *responses: Any):
        self.queue: List[Any] = list(responses)
        self.requests: List[Dict[str, Any]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content.decode("utf-8")))
        item = self.queue.pop(0) if len(self.queue) > 1 else self.queue[0]
        if isinstance(item, Exception):
            raise item
        if isinstance(item, httpx.Response):
            # fresh copy; a queued response may be served more than once
            return httpx.Response(item.status_code, headers=item.headers, content=item.content)
        if isinstance(item, dict):
            return chat_response(json.dumps(item))
        return chat_response(str(item))

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(start=1_000.0)


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def neutral_persona() -> Persona:
    return Persona.neutral()


@pytest.fixture
def treasury_proposal() -> ProposalContext:
    return ProposalContext(
        id="87",
        title="Deploy New Treasury Allocator",
        body="...",
        organization="Aave",
        status="active",
    )


@pytest.fixture
def funding_proposal() -> ProposalContext:
    return ProposalContext(
        id="0xabc123",
        title="Community Grants Program Q3",
        body=(
            "## Overview\n\n"
            "Fund **twelve** community projects focused on public good tooling and sustainable growth.\n\n"
            "Budget: 250k USDC over two quarters."
        ),
        organization="Gitcoin",
        status="active",
        choices=("Yes", "No", "Abstain"),
    )


@pytest.fixture
def make_gateway(clock, sleep) -> Callable[..., CompletionGateway]:
    def _make(server: Optional[FakeCompletionServer] = None, **kwargs: Any) -> CompletionGateway:
        params: Dict[str, Any] = dict(
            api_key="sk-test-1234567890",
            retry_policy=RetryPolicy(max_attempts=3, backoff_seconds=1.0),
            cache=CompletionCache(clock=clock),
            sleep=sleep,
            clock=clock,
        )
        if server is not None:
            params["transport"] = server.transport
        params.update(kwargs)
        return CompletionGateway(**params)

    return _make


@pytest.fixture
def completion_server() -> Callable[..., FakeCompletionServer]:
    return FakeCompletionServer
