from __future__ import annotations

import json
from collections import deque
from typing import Any

import httpx
import pytest

import linkbrain_mcp_server
import threads_mcp_server
from linkbrain_mcp_server import LinkbrainClient
from mcp_bridge_common import Credential
from threads_mcp_server import ThreadsClient


class FakeUpstream:
    """Scripted REST upstream behind an httpx.MockTransport.

    Routes are keyed by (method, path). Each route holds a queue of replies;
    the last reply is repeated once the queue is down to one.
    """

    def __init__(self) -> None:
        self._routes: dict[tuple[str, str], deque] = {}
        self.requests: list[httpx.Request] = []
        self.events: list[tuple[str, Any]] = []
        self.sleeps: list[float] = []

    def add(
        self,
        method: str,
        path: str,
        status: int = 200,
        json_body: Any = None,
        content: bytes | None = None,
        exc: type[Exception] | None = None,
        replace: bool = False,
    ) -> None:
        if replace:
            self._routes.pop((method, path), None)
        self._routes.setdefault((method, path), deque()).append(
            {"status": status, "json": json_body, "content": content, "exc": exc}
        )

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.events.append(("request", (request.method, request.url.path)))
        queue = self._routes.get((request.method, request.url.path))
        if not queue:
            raise AssertionError(f"unexpected request {request.method} {request.url}")
        reply = queue.popleft() if len(queue) > 1 else queue[0]
        if reply["exc"] is not None:
            raise reply["exc"]("scripted failure", request=request)
        if reply["content"] is not None:
            return httpx.Response(reply["status"], content=reply["content"])
        if reply["json"] is None:
            return httpx.Response(reply["status"])
        return httpx.Response(reply["status"], json=reply["json"])

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.events.append(("sleep", seconds))

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    @staticmethod
    def body(request: httpx.Request) -> Any:
        return json.loads(request.content) if request.content else None


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def linkbrain(upstream: FakeUpstream):
    client = LinkbrainClient(
        Credential(token="lb-test-key", base_url="https://linkbrain.test/"),
        transport=upstream.transport,
    )
    linkbrain_mcp_server.set_client(client)
    yield client
    linkbrain_mcp_server.set_client(None)


def _threads_client(upstream: FakeUpstream, wait_for_container: bool) -> ThreadsClient:
    upstream.add("GET", "/v1.0/me", json_body={"id": "42"})
    return ThreadsClient(
        Credential(token="th-test-token", base_url="https://graph.threads.test/v1.0"),
        transport=upstream.transport,
        wait_for_container=wait_for_container,
        sleep=upstream.sleep,
    )


@pytest.fixture
def threads(upstream: FakeUpstream):
    client = _threads_client(upstream, wait_for_container=False)
    threads_mcp_server.set_client(client)
    yield client
    threads_mcp_server.set_client(None)


@pytest.fixture
def threads_polling(upstream: FakeUpstream):
    client = _threads_client(upstream, wait_for_container=True)
    threads_mcp_server.set_client(client)
    yield client
    threads_mcp_server.set_client(None)

