"""Echo Provider

Vertex AIの応答を模した擬似プロバイダです。最後の`user`パートをそのまま返すことで、
認証や変換、SSEストリーミングの挙動をクラウド接続なしで検証できます。
"""

import asyncio
from typing import AsyncIterator

from ..schemas import UpstreamCandidate, UpstreamContent, UpstreamPart, UpstreamRequest, UpstreamResult
from .base import GenerationProvider


class EchoProvider(GenerationProvider):
    """エコー応答を生成するプロバイダ。

    `contents`から最後の`user`テキストを取り出し、`Echo from {model}: ...`の形式で返します。
    ストリーム時は小さなチャンクに分割し、最後のチャンクだけに`STOP`を付けます。
    """

    def __init__(self, model_id: str, chunk_size: int = 20):
        self.model_id = model_id
        self.chunk_size = chunk_size

    def _reply(self, request: UpstreamRequest) -> str:
        last_user = next(
            (c.parts[0].text or "" for c in reversed(request.contents) if c.role == "user" and c.parts),
            "",
        )
        return f"Echo from {self.model_id}: {last_user}"

    async def generate(self, request: UpstreamRequest) -> UpstreamResult:
        return _result(self._reply(request), "STOP")

    async def stream(self, request: UpstreamRequest) -> AsyncIterator[UpstreamResult]:
        reply = self._reply(request)
        pieces = [reply[i : i + self.chunk_size] for i in range(0, len(reply), self.chunk_size)]

        async def _iter() -> AsyncIterator[UpstreamResult]:
            for i, piece in enumerate(pieces):
                # simulate upstream latency between partial results
                await asyncio.sleep(0.01)
                yield _result(piece, "STOP" if i == len(pieces) - 1 else None)

        return _iter()


def _result(text: str, finish_reason) -> UpstreamResult:
    return UpstreamResult(
        candidates=[
            UpstreamCandidate(
                content=UpstreamContent(role="model", parts=[UpstreamPart(text=text)]),
                finish_reason=finish_reason,
            )
        ]
    )
