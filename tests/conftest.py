from typing import AsyncIterator, Optional

import pytest
from fastapi.testclient import TestClient

from gateway.config import Settings
from gateway.main import create_app
from gateway.providers.base import GenerationProvider
from gateway.schemas import UpstreamCandidate, UpstreamContent, UpstreamPart, UpstreamRequest, UpstreamResult

API_KEY = "sk-test-1"


def make_result(text: Optional[str], finish_reason: Optional[str] = None, usage: Optional[dict] = None) -> UpstreamResult:
    candidates = []
    if text is not None:
        candidates.append(
            UpstreamCandidate(
                content=UpstreamContent(role="model", parts=[UpstreamPart(text=text)]),
                finish_reason=finish_reason,
            )
        )
    return UpstreamResult.model_validate({"candidates": candidates, "usageMetadata": usage})


class FakeProvider(GenerationProvider):
    """Counts calls and replays canned upstream results."""

    def __init__(self, result=None, chunks=(), fail_on_call=None, fail_after=None):
        self.result = result or make_result("hi there", "STOP")
        self.chunks = list(chunks)
        self.fail_on_call = fail_on_call
        self.fail_after = fail_after
        self.calls = 0
        self.pulled = 0
        self.closed = False
        self.requests: list[UpstreamRequest] = []

    async def generate(self, request):
        self.calls += 1
        self.requests.append(request)
        if self.fail_on_call:
            raise self.fail_on_call
        return self.result

    async def stream(self, request):
        self.calls += 1
        self.requests.append(request)
        if self.fail_on_call:
            raise self.fail_on_call
        return self._iter()

    async def _iter(self) -> AsyncIterator[UpstreamResult]:
        try:
            for i, chunk in enumerate(self.chunks):
                if self.fail_after is not None and i == self.fail_after:
                    raise RuntimeError("upstream connection reset")
                self.pulled += 1
                yield chunk
        finally:
            self.closed = True


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def client(provider):
    settings = Settings(api_keys=f"{API_KEY}, sk-test-2", model_id="gemini-test", backend="echo", _env_file=None)
    app = create_app(settings, provider=provider)
    return TestClient(app)


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {API_KEY}"}
