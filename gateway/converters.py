"""OpenAI互換形式とVertex AI形式の相互変換。

- `to_upstream_request`: ChatCompletionリクエスト → `contents`/`generationConfig`/`systemInstruction`
- `to_chat_completion`: 上流の完了レスポンス → ChatCompletionレスポンス
- `to_sse_frames`: 上流の部分結果ストリーム → SSEフレーム列(最後に`[DONE]`)

`id`と`created`はレスポンス/チャンクごとに生成時刻から採番する。
"""

from __future__ import annotations
import time
from typing import AsyncIterator, Optional

import orjson

from .errors import BadRequest
from .schemas import (
    ChatCompletionRequest,
    ChatCompletionResponse,
    ChatCompletionChoice,
    ChatCompletionMessage,
    ChatCompletionUsage,
    ChatCompletionChunk,
    ChatCompletionChunkChoice,
    DeltaMessage,
    UpstreamContent,
    UpstreamGenerationConfig,
    UpstreamPart,
    UpstreamRequest,
    UpstreamResult,
)

DONE_FRAME = b"data: [DONE]\n\n"

_ROLE_TO_UPSTREAM = {"user": "user", "assistant": "model"}


def to_upstream_request(req: ChatCompletionRequest) -> UpstreamRequest:
    """会話履歴全体を順に上流の`contents`へ変換する。

    `system`メッセージは`contents`に入れず、システム指示として扱う(最後のものが有効)。
    空白のみのメッセージは上流が受け付けないため送らない。
    生成パラメータは指定されたものだけを設定し、上流の既定値を尊重する。
    """
    if not any(m.role == "user" and m.content.strip() for m in req.messages):
        raise BadRequest("No user message found.")

    contents: list[UpstreamContent] = []
    system_instruction: Optional[UpstreamContent] = None
    for message in req.messages:
        if not message.content.strip():
            continue
        part = UpstreamPart(text=message.content)
        if message.role == "system":
            system_instruction = UpstreamContent(parts=[part])
        else:
            contents.append(UpstreamContent(role=_ROLE_TO_UPSTREAM[message.role], parts=[part]))

    generation_config = UpstreamGenerationConfig()
    if req.temperature is not None:
        generation_config.temperature = req.temperature
    if req.max_tokens is not None:
        generation_config.max_output_tokens = req.max_tokens
    if req.top_p is not None:
        generation_config.top_p = req.top_p
    if req.top_k is not None:
        generation_config.top_k = req.top_k

    return UpstreamRequest(
        contents=contents,
        generation_config=generation_config,
        system_instruction=system_instruction,
    )


def _first_text(result: UpstreamResult) -> str:
    if not result.candidates:
        return ""
    content = result.candidates[0].content
    if content is None or not content.parts:
        return ""
    return content.parts[0].text or ""


def _upstream_finish_reason(result: UpstreamResult) -> Optional[str]:
    if not result.candidates:
        return None
    return result.candidates[0].finish_reason


def map_finish_reason(reason: Optional[str]) -> str:
    """`STOP`→`stop`、その他の理由→`length`、理由なし→`stop`。"""
    if reason is None or reason == "STOP":
        return "stop"
    return "length"


def map_stream_finish_reason(reason: Optional[str]) -> Optional[str]:
    # only an explicit STOP terminates a chunk; everything else is mid-stream
    return "stop" if reason == "STOP" else None


def _completion_id() -> str:
    return f"chatcmpl-{time.time_ns() // 1_000_000}"


def to_chat_completion(result: UpstreamResult, model: str) -> ChatCompletionResponse:
    """上流の完了レスポンスをOpenAI互換レスポンスへ変換する。

    候補やパートが無い場合は空文字の回答として扱う。使用量は上流の値をそのまま使い、
    欠けているカウンタは0とする。
    """
    usage = result.usage_metadata
    return ChatCompletionResponse(
        id=_completion_id(),
        created=int(time.time()),
        model=model,
        choices=[
            ChatCompletionChoice(
                index=0,
                message=ChatCompletionMessage(role="assistant", content=_first_text(result)),
                finish_reason=map_finish_reason(_upstream_finish_reason(result)),
            )
        ],
        usage=ChatCompletionUsage(
            prompt_tokens=(usage and usage.prompt_token_count) or 0,
            completion_tokens=(usage and usage.candidates_token_count) or 0,
            total_tokens=(usage and usage.total_token_count) or 0,
        ),
    )


def to_chunk(result: UpstreamResult, model: str) -> ChatCompletionChunk:
    return ChatCompletionChunk(
        id=_completion_id(),
        created=int(time.time()),
        model=model,
        choices=[
            ChatCompletionChunkChoice(
                index=0,
                delta=DeltaMessage(content=_first_text(result)),
                finish_reason=map_stream_finish_reason(_upstream_finish_reason(result)),
            )
        ],
    )


def format_sse(chunk: ChatCompletionChunk) -> bytes:
    return b"data: " + orjson.dumps(chunk.model_dump()) + b"\n\n"


async def to_sse_frames(upstream: AsyncIterator[UpstreamResult], model: str) -> AsyncIterator[bytes]:
    """上流の部分結果を1件ずつ取り出し、1件につき1フレームを返す。

    空のデルタも省略しない。上流が正常に尽きたときだけ`[DONE]`を1回送る。
    上流が途中で例外を送出した場合はそれ以上取り出さずに例外を伝播させる。
    クライアント切断などで中断されたときも上流イテレータは必ず閉じる。
    """
    try:
        async for result in upstream:
            yield format_sse(to_chunk(result, model))
        yield DONE_FRAME
    finally:
        aclose = getattr(upstream, "aclose", None)
        if aclose is not None:
            await aclose()
