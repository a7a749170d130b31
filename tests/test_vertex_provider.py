import asyncio

import pytest

from gateway.converters import to_upstream_request
from gateway.providers import vertex_provider
from gateway.providers.vertex_provider import SAFETY_SETTINGS, VertexAIProvider
from gateway.schemas import ChatCompletionRequest


class FakeResponse:
    def __init__(self, payload):
        self.payload = payload

    def to_dict(self):
        return self.payload


def _sdk_payload(text, finish_reason=None, usage=None):
    candidate = {"content": {"role": "model", "parts": [{"text": text}]}}
    if finish_reason:
        candidate["finish_reason"] = finish_reason
    payload = {"candidates": [candidate]}
    if usage:
        payload["usage_metadata"] = usage
    return payload


class FakeGenerativeModel:
    instances: list = []
    stream_payloads: list = []

    def __init__(self, model_name, **kwargs):
        self.model_name = model_name
        self.kwargs = kwargs
        self.calls = []
        FakeGenerativeModel.instances.append(self)

    async def generate_content_async(self, contents, generation_config=None, stream=False):
        self.calls.append({"contents": contents, "generation_config": generation_config, "stream": stream})
        if stream:
            async def _responses():
                for payload in FakeGenerativeModel.stream_payloads:
                    yield FakeResponse(payload)

            return _responses()
        usage = {"prompt_token_count": 4, "candidates_token_count": 2, "total_token_count": 6}
        return FakeResponse(_sdk_payload("hi there", "STOP", usage))


@pytest.fixture
def provider(monkeypatch):
    init_calls = []
    monkeypatch.setattr(vertex_provider.vertexai, "init", lambda **kw: init_calls.append(kw))
    monkeypatch.setattr(vertex_provider, "GenerativeModel", FakeGenerativeModel)
    monkeypatch.setattr(vertex_provider, "GenerationConfig", lambda **kw: kw)
    FakeGenerativeModel.instances = []
    FakeGenerativeModel.stream_payloads = []
    p = VertexAIProvider("proj-1", "europe-west4", "gemini-test")
    assert init_calls == [{"project": "proj-1", "location": "europe-west4"}]
    return p


def _upstream_request(**kwargs):
    return to_upstream_request(
        ChatCompletionRequest.model_validate(
            {
                "messages": [
                    {"role": "system", "content": "be terse"},
                    {"role": "user", "content": "hi"},
                    {"role": "assistant", "content": "hello"},
                    {"role": "user", "content": "again"},
                ],
                **kwargs,
            }
        )
    )


def test_generate_passes_translated_request_to_sdk(provider):
    result = asyncio.run(provider.generate(_upstream_request(temperature=0.3, max_tokens=32)))

    model = FakeGenerativeModel.instances[-1]
    assert model.model_name == "gemini-test"
    assert [p.text for p in model.kwargs["system_instruction"]] == ["be terse"]
    assert model.kwargs["safety_settings"] is SAFETY_SETTINGS

    call = model.calls[0]
    assert call["stream"] is False
    assert [(c.role, c.parts[0].text) for c in call["contents"]] == [("user", "hi"), ("model", "hello"), ("user", "again")]
    assert call["generation_config"] == {"temperature": 0.3, "max_output_tokens": 32}

    assert result.candidates[0].content.parts[0].text == "hi there"
    assert result.candidates[0].finish_reason == "STOP"
    assert result.usage_metadata.total_token_count == 6


def test_generation_config_omits_unset_fields(provider):
    asyncio.run(provider.generate(_upstream_request(top_k=5)))
    assert FakeGenerativeModel.instances[-1].calls[0]["generation_config"] == {"top_k": 5}


def test_no_system_message_leaves_system_instruction_unset(provider):
    req = to_upstream_request(ChatCompletionRequest(messages=[{"role": "user", "content": "x"}]))
    asyncio.run(provider.generate(req))
    assert FakeGenerativeModel.instances[-1].kwargs["system_instruction"] is None


def test_stream_parses_each_sdk_response(provider):
    FakeGenerativeModel.stream_payloads = [_sdk_payload("Hel"), _sdk_payload("lo", "STOP")]

    async def run():
        upstream = await provider.stream(_upstream_request())
        return [r async for r in upstream]

    results = asyncio.run(run())
    assert FakeGenerativeModel.instances[-1].calls[0]["stream"] is True
    assert [r.candidates[0].content.parts[0].text for r in results] == ["Hel", "lo"]
    assert [r.candidates[0].finish_reason for r in results] == [None, "STOP"]
