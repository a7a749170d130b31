"""FastAPI application providing OpenAI互換の`/v1/chat/completions`ゲートウェイ。

主な機能:
- `POST /v1/chat/completions`: OpenAI形式のリクエストをVertex AI(Gemini)へ中継し、
  ChatCompletionレスポンス(非ストリーム/ストリームSSE)として返す
- `GET /v1/chat/completions`: 認証不要のヘルスチェック
- `GET /v1/models`: 設定済みモデルの一覧

認証は`APP_API_KEYS`(カンマ区切り)に含まれるBearerトークンを要求します。
許可リストが空の場合はすべてのリクエストを拒否します。
バックエンドは`APP_BACKEND`で切替可能(`vertex`/`echo`)。
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from fastapi import APIRouter, FastAPI, Depends, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError

from .auth import require_api_key
from .config import Settings, configure_logging
from .converters import to_chat_completion, to_sse_frames, to_upstream_request
from .errors import BadRequest, GatewayError, InternalError, UpstreamError
from .providers.base import GenerationProvider
from .providers.echo_provider import EchoProvider
from .schemas import (
    ChatCompletionRequest,
    ErrorResponse,
    HealthResponse,
    ModelsList,
    UpstreamResult,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GatewayContext:
    """プロセス起動時に一度だけ構築し、以後は読み取り専用で各リクエストに渡す。"""
    authorized_keys: frozenset[str]
    provider: GenerationProvider
    model_id: str


def build_provider(settings: Settings) -> GenerationProvider:
    """`APP_BACKEND`に応じて上流アダプタを生成する。"""
    if settings.backend == "vertex":
        if not settings.gcp_project_id:
            raise RuntimeError("Vertex backend selected but APP_GCP_PROJECT_ID is not set.")
        from .providers.vertex_provider import VertexAIProvider

        return VertexAIProvider(settings.gcp_project_id, settings.gcp_location, settings.model_id)
    if settings.backend != "echo":
        logger.warning("Unknown backend %r; falling back to echo", settings.backend)
    logger.warning("Echo backend active; replies are not generated by Vertex AI (set APP_BACKEND=vertex)")
    return EchoProvider(settings.model_id)


router = APIRouter()


@router.get("/chat/completions", response_model=HealthResponse)
async def health(request: Request):
    """簡易ヘルスチェック。認証不要。"""
    return HealthResponse(model=request.app.state.context.model_id)


@router.get("/models", response_model=ModelsList, dependencies=[Depends(require_api_key)])
async def list_models(request: Request):
    """OpenAI互換のモデル一覧(設定済みモデルのみ)を返す。"""
    return ModelsList(data=[{"id": request.app.state.context.model_id, "object": "model"}])


async def parse_chat_request(request: Request) -> ChatCompletionRequest:
    """認証を通過した後にボディを検証する。形状の不一致は`BadRequest`。"""
    raw = await request.body()
    try:
        return ChatCompletionRequest.model_validate_json(raw)
    except ValidationError as e:
        details = jsonable_encoder(e.errors(include_url=False, include_context=False))
        raise BadRequest("Invalid request body.", details=details) from e


@router.post("/chat/completions", dependencies=[Depends(require_api_key)])
async def chat_completions(request: Request):
    """OpenAI互換のChat Completions。

    `stream: true`の場合は上流の部分結果ごとにSSEチャンクを返し、正常終了時のみ
    最後に`[DONE]`を送る。非ストリーム時は完了レスポンスを通常のJSONで返す。
    上流の呼び出しは1回のみ。
    """
    context: GatewayContext = request.app.state.context
    body = await parse_chat_request(request)
    upstream_request = to_upstream_request(body)

    if body.stream:
        try:
            upstream = await context.provider.stream(upstream_request)
        except Exception as e:
            logger.exception("Upstream stream error")
            raise UpstreamError("Failed to stream from upstream service.", details=str(e)) from e

        return StreamingResponse(
            _event_stream(upstream, context.model_id),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    try:
        result = await context.provider.generate(upstream_request)
    except Exception as e:
        logger.exception("Upstream non-stream error")
        raise UpstreamError("Failed to call upstream service.", details=str(e)) from e

    try:
        resp = to_chat_completion(result, context.model_id)
    except Exception as e:
        logger.exception("Failed to translate upstream response")
        raise InternalError("Internal Server Error", details=str(e)) from e
    return JSONResponse(resp.model_dump())


async def _event_stream(upstream: AsyncIterator[UpstreamResult], model: str) -> AsyncIterator[bytes]:
    # headers are already committed here; a failure can only truncate the stream
    try:
        async for frame in to_sse_frames(upstream, model):
            yield frame
    except Exception:
        logger.exception("Upstream stream failed mid-response; closing without [DONE]")
        return
    logger.debug("Stream completed")


async def _gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    body = ErrorResponse(error=exc.message, details=exc.details)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(exclude_none=True))


async def _unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error while serving %s", request.url.path, exc_info=exc)
    return await _gateway_error_handler(request, InternalError("Internal Server Error", details=str(exc)))


def create_app(settings: Optional[Settings] = None, provider: Optional[GenerationProvider] = None) -> FastAPI:
    """設定と上流アダプタからアプリを組み立てる。テストでは`provider`を差し替える。"""
    settings = settings or Settings()
    configure_logging(settings)

    app = FastAPI(title="OpenAI-Compatible Gateway for Vertex AI")
    app.state.context = GatewayContext(
        authorized_keys=settings.authorized_keys(),
        provider=provider or build_provider(settings),
        model_id=settings.model_id,
    )
    if not app.state.context.authorized_keys:
        logger.warning("APP_API_KEYS is empty; every chat request will be rejected")

    app.add_exception_handler(GatewayError, _gateway_error_handler)
    app.add_exception_handler(Exception, _unexpected_error_handler)
    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
